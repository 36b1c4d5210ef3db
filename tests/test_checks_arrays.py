"""Tests for the array checks."""

import pytest

from shellpit.core.constructs import Position


class TestDesignatedInitializerCollision:
    """designated-initializer-collision."""

    RULE = "designated-initializer-collision"

    def test_positional_overwrites_designated(self, run_rule):
        """A=(A [2]=B [1]=C D) loses B."""
        (diagnostic,) = run_rule("A=(A [2]=B [1]=C D)\n", self.RULE)
        assert diagnostic.position == Position(1, 6)
        assert diagnostic.data == {"array": "A", "index": 2, "lost": ["B"], "winner": "D"}
        assert "'B' at 1:6" in diagnostic.message
        assert "'D' at 1:18" in diagnostic.message

    def test_one_diagnostic_per_index(self, run_rule):
        """Each colliding index is reported once."""
        diagnostics = run_rule("A=([0]=a [1]=b [0]=c [1]=d [1]=e)\n", self.RULE)
        assert [d.data["index"] for d in diagnostics] == [0, 1]
        assert diagnostics[1].data["lost"] == ["b", "d"]

    @pytest.mark.parametrize(
        "text",
        [
            "A=(A [1]=B C [3]=D)\n",
            "A=(x y z)\n",
            "A=([2]=x [0]=y)\n",
            "A[1]=x\nA[1]=y\n",
            "A+=(x [1]=y)\n",
        ],
    )
    def test_no_collision(self, run_rule, text):
        """Literals without repeated indices are clean."""
        assert run_rule(text, self.RULE) == []

    def test_declare_initializer(self, run_rule):
        """Literals given to declare are checked as well."""
        (diagnostic,) = run_rule("declare -a A=([1]=x y [2]=z)\n", self.RULE)
        assert diagnostic.data["index"] == 2

    def test_associative_duplicate_key(self, run_rule):
        """Associative literals collide on repeated keys."""
        (diagnostic,) = run_rule("declare -A m=([k]=1 [j]=2 ['k']=3)\n", self.RULE)
        assert diagnostic.data == {"array": "m", "index": "k", "lost": ["1"], "winner": "3"}


class TestLengthIndexedTraversal:
    """length-indexed-traversal."""

    RULE = "length-indexed-traversal"

    def test_seq_loop_with_offset_index(self, run_rule):
        """seq 1 ${#A[@]} with ${A[i-1]} is flagged at the loop header."""
        text = """
            A=(a b c)
            for i in $(seq 1 ${#A[@]}); do
              echo "${A[i-1]}"
            done
        """
        (diagnostic,) = run_rule(text, self.RULE)
        assert diagnostic.position == Position(2, 1)
        assert diagnostic.data == {"array": "A", "variable": "i", "index": "i-1"}
        assert diagnostic.message.startswith("Loop bounded by ${#A[@]} indexes 'A' by 'i'")

    def test_seq_loop_with_dollar_index(self, run_rule):
        """${A[$i]} counts as indexing by the loop variable."""
        text = """
            for i in $(seq 0 $((${#A[@]} - 1))); do
              printf '%s\\n' "${A[$i]}"
            done
        """
        assert len(run_rule(text, self.RULE)) == 1

    def test_c_style_loop(self, run_rule):
        """for ((i=0; i<${#A[@]}; i++)) is the same hazard."""
        text = """
            for ((i=0; i<${#A[@]}; i++)); do
              echo "${A[i]}"
            done
        """
        assert len(run_rule(text, self.RULE)) == 1

    def test_arithmetic_access(self, run_rule):
        """Element reads inside (( )) are indexing too."""
        text = """
            for i in $(seq 1 ${#A[@]}); do
              (( total += A[i-1] ))
            done
        """
        assert len(run_rule(text, self.RULE)) == 1

    def test_one_diagnostic_per_loop(self, run_rule):
        """Several indexed reads in one body report once."""
        text = """
            for i in $(seq 1 ${#A[@]}); do
              echo "${A[i-1]}" "${A[i-1]}"
            done
        """
        assert len(run_rule(text, self.RULE)) == 1

    @pytest.mark.parametrize(
        "text",
        [
            'for i in "${!A[@]}"; do echo "${A[i]}"; done\n',
            'for i in $(seq 1 ${#A[@]}); do echo "${A[j]}"; done\n',
            'for i in $(seq 1 ${#B[@]}); do echo "${A[i]}"; done\n',
            'for i in $(seq 1 10); do echo "${A[i]}"; done\n',
            'for i in $(seq 1 ${#A[@]}); do echo "${A[i+1]}"; done\n',
        ],
    )
    def test_clean_loops(self, run_rule, text):
        """Keys loops and unrelated indices are not flagged."""
        assert run_rule(text, self.RULE) == []

    def test_index_after_loop_not_counted(self, run_rule):
        """Indexing after the loop body is outside the loop."""
        text = """
            for i in $(seq 1 ${#A[@]}); do
              :
            done
            echo "${A[i-1]}"
        """
        assert run_rule(text, self.RULE) == []


class TestUninitializedElement:
    """uninitialized-element."""

    RULE = "uninitialized-element"

    def test_gap_in_integer_array(self, run_rule):
        """counts[1] was never stored."""
        text = """
            declare -ai counts=([0]=1 [2]=3)
            echo $(( counts[1] + counts[2] ))
        """
        (diagnostic,) = run_rule(text, self.RULE)
        assert diagnostic.data == {"array": "counts", "index": 1}
        assert diagnostic.position == Position(2, 10)

    def test_read_after_unset_element(self, run_rule):
        """unset 'A[0]' makes the slot uninitialized again."""
        text = """
            declare -ai c=([0]=1)
            unset 'c[0]'
            (( c[0] > 0 ))
        """
        (diagnostic,) = run_rule(text, self.RULE)
        assert diagnostic.data["index"] == 0

    def test_integer_scalar_without_value(self, run_rule):
        """declare -i total; (( total += 5 )) reads an unset value."""
        text = """
            declare -i total
            (( total += 5 ))
        """
        (diagnostic,) = run_rule(text, self.RULE)
        assert diagnostic.data == {"variable": "total"}

    @pytest.mark.parametrize(
        "text",
        [
            "declare -ai c=([0]=1 [1]=2)\necho $(( c[1] ))\n",
            "declare -ai c=()\nc[3]=1\necho $(( c[3] ))\n",
            "declare -ai c=()\nc[$k]=1\necho $(( c[3] ))\n",
            "declare -a plain=([0]=1)\necho $(( plain[1] ))\n",
            "declare -i total=0\n(( total += 5 ))\n",
            "declare -i n\nread -r n\n(( n + 1 ))\n",
            "declare -i n\nfor ((n=0; n<3; n++)); do :; done\n",
            "declare -ai c=()\nmapfile -t c < f\necho $(( c[4] ))\n",
        ],
    )
    def test_initialized(self, run_rule, text):
        """Slots that were stored (or cannot be tracked) are not flagged."""
        assert run_rule(text, self.RULE) == []

    def test_reported_once_per_slot(self, run_rule):
        """Repeated reads of one slot report once."""
        text = """
            declare -ai c=()
            (( c[1] + c[1] ))
            echo $(( c[1] ))
        """
        assert len(run_rule(text, self.RULE)) == 1
