"""Tests for the expansion checks."""

import pytest

from shellpit.core.constructs import Position
from shellpit.core.diagnostics import Severity


class TestDeferredWordSplitting:
    """deferred-word-splitting."""

    RULE = "deferred-word-splitting"

    def test_built_then_run_bare(self, run_rule):
        """A string grown with += and run as $cmd is flagged."""
        text = """
            cmd="ls -l"
            cmd+=" $dir"
            $cmd
        """
        (diagnostic,) = run_rule(text, self.RULE)
        assert diagnostic.position == Position(3, 1)
        assert diagnostic.severity is Severity.ERROR
        assert diagnostic.data == {"variable": "cmd", "built_at": ["1:1", "2:1"]}
        assert '"${cmd[@]}"' in diagnostic.suggested_fix

    def test_quoting_does_not_help(self, run_rule):
        """Running "$cmd" is flagged all the same."""
        text = """
            cmd="rm -f"
            "$cmd"
        """
        assert len(run_rule(text, self.RULE)) == 1

    def test_printf_q(self, run_rule):
        """Building with printf -v '%q' does not survive re-splitting."""
        text = """
            printf -v cmd '%q ' rm -f "$file"
            $cmd
        """
        (diagnostic,) = run_rule(text, self.RULE)
        assert diagnostic.position == Position(2, 1)

    def test_command_wrapper(self, run_rule):
        """sudo $cmd runs the string as a command."""
        text = """
            cmd="systemctl restart"
            sudo $cmd
        """
        assert len(run_rule(text, self.RULE)) == 1

    def test_declare_initializer(self, run_rule):
        """local cmd="a b" builds a string too."""
        text = """
            run() {
              local cmd="git push"
              $cmd
            }
        """
        assert len(run_rule(text, self.RULE)) == 1

    def test_run_inside_default_value(self, run_rule):
        """A substitution inside ${y:-...} still runs the string as a command."""
        text = """
            cmd="ls -l"
            echo "${y:-$($cmd)}"
        """
        (diagnostic,) = run_rule(text, self.RULE)
        assert diagnostic.position == Position(2, 14)

    @pytest.mark.parametrize(
        "text",
        [
            'cmd=(ls -l)\ncmd+=("$dir")\n"${cmd[@]}"\n',
            "cmd=ls\n$cmd -l\n",
            'cmd="ls -l"\ncmd=ls\n$cmd\n',
            'msg="hello world"\necho "$msg"\n',
            'cmd="ls -l"\necho $cmd\n',
        ],
    )
    def test_clean(self, run_rule, text):
        """Arrays, single words and non-command uses are fine."""
        assert run_rule(text, self.RULE) == []


class TestNounsetExpansionGap:
    """nounset-expansion-gap."""

    RULE = "nounset-expansion-gap"

    def test_empty_array_under_set_u(self, run_rule):
        """An empty array expanded under set -u is flagged."""
        text = """
            set -u
            declare -a items=()
            for x in "${items[@]}"; do echo "$x"; done
        """
        (diagnostic,) = run_rule(text, self.RULE)
        assert diagnostic.position == Position(3, 11)
        assert diagnostic.data == {"array": "items", "state": "empty", "form": "ARRAY_AT"}
        assert "${items[@]}" in diagnostic.message
        assert "set -u raises no error" in diagnostic.message
        assert diagnostic.suggested_fix == 'Make the expansion fail explicitly: "${items[@]?items is empty}"'

    def test_shebang_flag(self, run_rule):
        """#!/bin/bash -u enables strict mode from the start."""
        text = """
            #!/bin/bash -eu
            declare -A seen
            echo "${!seen[@]}"
        """
        (diagnostic,) = run_rule(text, self.RULE)
        assert diagnostic.data["form"] == "KEYS_AT"
        assert "${#seen[@]}" in diagnostic.suggested_fix

    def test_unset_array(self, run_rule):
        """An unset array is flagged with state unset."""
        text = """
            set -o nounset
            arr=(a b)
            unset arr
            echo "${arr[*]}"
        """
        (diagnostic,) = run_rule(text, self.RULE)
        assert diagnostic.data["state"] == "unset"
        assert "${arr[*]?arr is empty}" in diagnostic.suggested_fix

    @pytest.mark.parametrize(
        "text",
        [
            'declare -a items=()\necho "${items[@]}"\n',
            'set -u\nitems=(a)\necho "${items[@]}"\n',
            'set -u\nset +u\nitems=()\necho "${items[@]}"\n',
            'set -u\nitems=()\nreadarray -t items < f\necho "${items[@]}"\n',
            'set -u\nitems=()\necho "${items[0]}"\n',
            'set -u\necho "${never[@]}"\n',
        ],
    )
    def test_clean(self, run_rule, text):
        """No strict mode, populated arrays and element access are fine."""
        assert run_rule(text, self.RULE) == []

    def test_error_modifier_on_keys_is_info(self, run_rule):
        """${!A[@]?} is reported as info, with or without strict mode."""
        (diagnostic,) = run_rule('echo "${!A[@]?}"\n', self.RULE)
        assert diagnostic.severity is Severity.INFO
        assert diagnostic.data == {"array": "A", "modifier": "?"}
        assert diagnostic.suggested_fix.startswith("Test the length first")
        assert "?" not in diagnostic.suggested_fix

    def test_error_modifier_on_values_is_clean(self, run_rule):
        """An explicit error modifier on the values is what the rule recommends."""
        assert run_rule('set -u\nA=()\necho "${A[@]?}"\n', self.RULE) == []


class TestUnquotedArrayExpansion:
    """unquoted-array-expansion."""

    RULE = "unquoted-array-expansion"

    @pytest.mark.parametrize(
        "text,context",
        [
            ("echo ${files[@]}\n", "command"),
            ("for f in ${files[*]}; do :; done\n", "loop-items"),
            ("copy=(${files[@]})\n", "array-literal"),
        ],
    )
    def test_flagged(self, run_rule, text, context):
        """Unquoted whole-array expansions in split contexts are flagged."""
        (diagnostic,) = run_rule(text, self.RULE)
        assert diagnostic.data == {"array": "files", "context": context}

    @pytest.mark.parametrize(
        "text",
        [
            'echo "${files[@]}"\n',
            "joined=${files[*]}\n",
            "[[ -n ${files[@]} ]]\n",
            "echo ${files[0]} ${#files[@]}\n",
        ],
    )
    def test_clean(self, run_rule, text):
        """Quoted, assignment, conditional and non-array forms are fine."""
        assert run_rule(text, self.RULE) == []
