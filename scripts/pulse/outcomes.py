"""
Sales Pulse Hub — Meeting Outcome Classification
==================================================

Free-form meeting outcome strings are mapped to canonical tags through an
ordered rule table. Classification is total: any string (or None) yields a
frozenset of tags and at most one primary tag.

Some rules look at the lower-cased raw string, others at the normalized
form (lower-cased, runs of "-"/"_" collapsed to a space):

  no_show              raw contains "no show" / "no-show" / "no_show"
  canceled             normalized contains "cancel"
  qualified            raw contains "qualified", but not "unqual"/"disqual"
  qualified_advanced   normalized contains "qualified" and "advance"
  qualified_sold       normalized contains "qualified" and "sold"
  disqualified         normalized contains "disqual" (else "unqual")
  won                  raw contains "deal won" / "closed won" / the word "won"
"""
from __future__ import annotations

import re
from typing import Callable, FrozenSet, List, NamedTuple, Optional, Tuple

NO_SHOW = "no_show"
CANCELED = "canceled"
QUALIFIED = "qualified"
QUALIFIED_ADVANCED = "qualified_advanced"
QUALIFIED_SOLD = "qualified_sold"
DISQUALIFIED = "disqualified"
WON = "won"

_SEPARATORS = re.compile(r"[_\-]+")
_WON_WORD = re.compile(r"\bwon\b")

Predicate = Callable[[str, str], bool]


def normalize(outcome: str) -> str:
    return _SEPARATORS.sub(" ", outcome.lower())


def _no_show(raw: str, norm: str) -> bool:
    return "no show" in raw or "no-show" in raw or "no_show" in raw


def _canceled(raw: str, norm: str) -> bool:
    return "cancel" in norm


def _qualified(raw: str, norm: str) -> bool:
    return "qualified" in raw and "unqual" not in raw and "disqual" not in raw


def _qualified_advanced(raw: str, norm: str) -> bool:
    return "qualified" in norm and "advance" in norm


def _qualified_sold(raw: str, norm: str) -> bool:
    return "qualified" in norm and "sold" in norm


def _disqualified(raw: str, norm: str) -> bool:
    return "disqual" in norm or "unqual" in norm


def _won(raw: str, norm: str) -> bool:
    return "deal won" in raw or "closed won" in raw or bool(_WON_WORD.search(raw))


# Order decides the primary tag
OUTCOME_RULES: List[Tuple[Predicate, str]] = [
    (_no_show, NO_SHOW),
    (_canceled, CANCELED),
    (_disqualified, DISQUALIFIED),
    (_qualified_sold, QUALIFIED_SOLD),
    (_qualified_advanced, QUALIFIED_ADVANCED),
    (_qualified, QUALIFIED),
    (_won, WON),
]


class OutcomeTags(NamedTuple):
    tags: FrozenSet[str]
    primary: Optional[str]

    def __contains__(self, tag) -> bool:
        return tag in self.tags


EMPTY = OutcomeTags(frozenset(), None)


def classify(outcome: Optional[str]) -> OutcomeTags:
    """Evaluate every rule once and return the matching tags."""
    if not outcome or not isinstance(outcome, str):
        return EMPTY
    raw = outcome.lower()
    norm = normalize(outcome)
    matched = [tag for predicate, tag in OUTCOME_RULES if predicate(raw, norm)]
    if not matched:
        return EMPTY
    return OutcomeTags(frozenset(matched), matched[0])


def is_qualified(outcome: Optional[str]) -> bool:
    return QUALIFIED in classify(outcome).tags


def is_conversion(outcome: Optional[str]) -> bool:
    return WON in classify(outcome).tags
