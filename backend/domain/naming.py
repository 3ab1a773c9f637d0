"""Pure string rules for comparing resource names across systems.

These are the heuristic fallback tier of identity resolution. They are kept
free of I/O so they can be swapped for a strict ID join once every external
reference has an alias.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional


_WHITESPACE_RE = re.compile(r"\s+")
_LEADING_DIGITS_RE = re.compile(r"^(\d+)")
_SIDE_RE = re.compile(r"^(?P<base>.+?)\s+side\s+(?P<side>[0-9a-z]+)$")
_TITLE_STRIP_RE = re.compile(r"[^a-z0-9]+")


def normalize_reference(value: Optional[str]) -> str:
    """Lowercase, trim and collapse inner whitespace."""
    if not value:
        return ""
    return _WHITESPACE_RE.sub(" ", value.strip().lower())


def normalize_title(value: Optional[str]) -> str:
    """Lowercase and drop punctuation/whitespace for loose title comparison."""
    if not value:
        return ""
    return _TITLE_STRIP_RE.sub("", value.lower())


def titles_similar(first: Optional[str], second: Optional[str]) -> bool:
    a = normalize_title(first)
    b = normalize_title(second)
    if not a or not b:
        return False
    return a in b or b in a


def leading_digit_run(name: str) -> str:
    match = _LEADING_DIGITS_RE.match(name)
    return match.group(1) if match else ""


def _prefix_followed_by(longer: str, prefix: str, allowed: str) -> bool:
    if len(longer) <= len(prefix) or not longer.startswith(prefix):
        return False
    follower = longer[len(prefix)]
    if allowed == "letter_or_space":
        return follower == " " or follower.isalpha()
    return follower in allowed


def is_prefix_related(first: str, second: str) -> bool:
    """One name is the other plus a space/hyphen/letter suffix."""
    return (
        _prefix_followed_by(first, second, " -")
        or _prefix_followed_by(second, first, " -")
        or _prefix_followed_by(first, second, "letter_or_space")
        or _prefix_followed_by(second, first, "letter_or_space")
    )


def numbered_family_match(first: str, second: str) -> bool:
    """``313`` groups with ``313A`` and ``313 Annex`` but not with ``3130``."""
    first_digits = leading_digit_run(first)
    second_digits = leading_digit_run(second)
    if not first_digits or not second_digits:
        return False
    if first_digits == second_digits:
        return True
    return _prefix_followed_by(first, second, "letter_or_space") or _prefix_followed_by(
        second, first, "letter_or_space"
    )


def subdivision_match(first: str, second: str) -> bool:
    """A named hall matches its sub-sections (``ulam`` vs ``ulam 1``) both ways."""
    if not first or not second or first == second:
        return False
    if leading_digit_run(first) or leading_digit_run(second):
        return False
    return _prefix_followed_by(first, second, " -") or _prefix_followed_by(second, first, " -")


@dataclass(frozen=True)
class SideName:
    base: str
    side: str


def parse_side_name(name: str) -> Optional[SideName]:
    """Split ``gym side 2`` into base ``gym`` and side ``2``."""
    match = _SIDE_RE.match(normalize_reference(name))
    if match is None:
        return None
    return SideName(base=match.group("base"), side=match.group("side"))


def _word_boundary_contains(haystack: str, needle: str) -> bool:
    index = haystack.find(needle)
    while index != -1:
        before_ok = index == 0 or not haystack[index - 1].isalnum()
        after = index + len(needle)
        after_ok = after >= len(haystack) or not haystack[after].isalnum()
        if before_ok and after_ok:
            return True
        index = haystack.find(needle, index + 1)
    return False


def location_match_rank(
    location: Optional[str],
    resource_name: Optional[str],
    resource_abbreviation: Optional[str] = None,
) -> Optional[tuple[int, int]]:
    """Rank how well a legacy free-text location names a resource.

    Lower is better; ``None`` means no match. An exact name or abbreviation
    ranks first, then a name/abbreviation found inside the location (longest
    first), then a location found inside the name (shortest name first).
    Abbreviations only count on a word boundary so ``101`` matches
    ``101 Beit Midrash`` but not ``1012``.
    """
    loc = normalize_reference(location)
    if not loc:
        return None
    name = normalize_reference(resource_name)
    abbreviation = normalize_reference(resource_abbreviation)
    if loc in (name, abbreviation):
        return (0, 0)

    contained: list[int] = []
    if name and name in loc:
        contained.append(len(name))
    if abbreviation and _word_boundary_contains(loc, abbreviation):
        contained.append(len(abbreviation))
    if contained:
        return (1, -max(contained))
    if name and loc in name:
        return (2, len(name))
    return None


def location_matches(
    location: Optional[str],
    resource_name: Optional[str],
    resource_abbreviation: Optional[str] = None,
) -> bool:
    """Legacy free-text location vs a resource name/abbreviation."""
    return location_match_rank(location, resource_name, resource_abbreviation) is not None
