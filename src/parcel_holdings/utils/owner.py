"""Owner-name normalization and fuzzy matching."""

import re
from typing import Iterable, List, Optional

UNKNOWN_OWNER = "UNKNOWN OWNER"

# Trailing entity designators ignored when comparing names
_ENTITY_SUFFIXES = (
    "LLC",
    "L L C",
    "INC",
    "INCORPORATED",
    "TRUST",
    "ESTATE",
    "REVOCABLE",
    "IRREVOCABLE",
    "FAMILY",
    "FARMS",
    "FARM",
    "PROPERTIES",
    "CORP",
    "CORPORATION",
    "LTD",
    "LIMITED",
    "CO",
)
_SUFFIX_RE = re.compile(r"(?:[\s,]+(?:" + "|".join(_ENTITY_SUFFIXES) + r"))+\s*$")


def normalize_owner(owner_raw: Optional[str]) -> str:
    """Canonical grouping key for a raw owner string.

    Trims and upper-cases the name. Null, empty and whitespace-only input
    collapse to ``UNKNOWN_OWNER``.
    """
    if owner_raw is None:
        return UNKNOWN_OWNER
    key = str(owner_raw).strip().upper()
    return key or UNKNOWN_OWNER


def comparison_key(owner: Optional[str]) -> str:
    """Aggressive normalization used only for similarity checks.

    Handles "Smith, John" vs "JOHN SMITH" vs "John Smith Trust".
    """
    name = normalize_owner(owner)
    if name == UNKNOWN_OWNER:
        return name
    # "L.L.C." -> "LLC", "O'BRIEN" -> "OBRIEN"; other punctuation except commas -> space
    name = re.sub(r"[.']", "", name)
    name = re.sub(r"[^\w\s,]", " ", name)
    name = _SUFFIX_RE.sub("", name).strip(" ,") or name
    # Flip "LASTNAME, FIRSTNAME" to "FIRSTNAME LASTNAME"
    name = re.sub(r"^([^,]+),\s*(.+)$", r"\2 \1", name)
    name = name.replace(",", " ")
    return re.sub(r"\s+", " ", name).strip()


def levenshtein_distance(s1: str, s2: str, max_distance: Optional[int] = None) -> int:
    """Edit distance between two strings.

    With ``max_distance`` set, returns ``max_distance + 1`` as soon as the
    distance is known to exceed it.
    """
    if max_distance is not None and abs(len(s1) - len(s2)) > max_distance:
        return max_distance + 1
    if len(s1) < len(s2):
        return levenshtein_distance(s2, s1, max_distance)
    if len(s2) == 0:
        return len(s1)
    previous_row = list(range(len(s2) + 1))
    for i, c1 in enumerate(s1):
        current_row = [i + 1]
        for j, c2 in enumerate(s2):
            insertions = previous_row[j + 1] + 1
            deletions = current_row[j] + 1
            substitutions = previous_row[j] + (c1 != c2)
            current_row.append(min(insertions, deletions, substitutions))
        if max_distance is not None and min(current_row) > max_distance:
            return max_distance + 1
        previous_row = current_row
    return previous_row[-1]


def find_similar_owners(
    owner: Optional[str], candidates: Iterable[Optional[str]], threshold: int = 3
) -> List[str]:
    """Owner keys from ``candidates`` that look like spelling variants of ``owner``.

    The owner itself and the unknown-owner sentinel are skipped. Variants
    that differ only in punctuation, name order or entity suffix count as
    distance 0. Results keep candidate order and are de-duplicated.
    """
    target = comparison_key(owner)
    if target == UNKNOWN_OWNER:
        return []

    similar: List[str] = []
    seen = {normalize_owner(owner)}
    for candidate in candidates:
        key = normalize_owner(candidate)
        if key == UNKNOWN_OWNER or key in seen:
            continue
        seen.add(key)
        distance = levenshtein_distance(target, comparison_key(key), threshold)
        if distance <= threshold:
            similar.append(key)
    return similar
