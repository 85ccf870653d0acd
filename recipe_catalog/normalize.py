# Case-insensitive identity rules shared by the merge engine.
# No fuzzy matching: exact folded matches only.
from typing import Iterable, Optional

SIGNATURE_SEPARATOR = "|"


def fold_name(s: Optional[str]) -> str:
    """Case-fold a name for identity comparisons (full Unicode lowercase)."""
    if not s:
        return ""
    return s.lower()


def ingredient_signature(names: Iterable[str]) -> str:
    """Sorted, pipe-joined set of folded ingredient names.

    Order, quantities and units do not participate; a recipe without
    ingredients has the empty signature.
    """
    return SIGNATURE_SEPARATOR.join(sorted({fold_name(n) for n in names if n}))


def provenance_matches(a: Optional[str], b: Optional[str]) -> bool:
    """True when both values are present and equal ignoring case.

    An empty or missing value never matches, not even another empty one.
    """
    fa = fold_name(a)
    return bool(fa) and fa == fold_name(b)
