"""Rule detectors.

Each check is a generator function taking the parsed script and a
RuleContext and yielding Finding values. CHECKS maps rule ids to checks; the
registry pairs these with the metadata in shellpit/data/rules/.
"""

from shellpit.checks.arrays import (
    check_designated_collisions,
    check_length_indexed_traversal,
    check_uninitialized_elements,
)
from shellpit.checks.declarations import check_global_assoc, check_integer_confidence
from shellpit.checks.expansion import (
    check_deferred_word_splitting,
    check_nounset_gaps,
    check_unquoted_array_expansion,
)
from shellpit.checks.listing import check_ls_offset_skip

CHECKS = {
    "designated-initializer-collision": check_designated_collisions,
    "length-indexed-traversal": check_length_indexed_traversal,
    "deferred-word-splitting": check_deferred_word_splitting,
    "integer-attribute-confidence": check_integer_confidence,
    "uninitialized-element": check_uninitialized_elements,
    "nounset-expansion-gap": check_nounset_gaps,
    "ls-offset-skip": check_ls_offset_skip,
    "global-assoc-declare": check_global_assoc,
    "unquoted-array-expansion": check_unquoted_array_expansion,
}

__all__ = ["CHECKS"]
