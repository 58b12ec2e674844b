from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Iterable

from escala.errors import IdentityNotResolved
from escala.services.duty_codes import strip_accents
from escala.services.roster import Officer


LOGIN_THRESHOLD = 0.65
# Applied to stored free-text officer fields only, never to login.
RECONCILE_THRESHOLD = 0.62

RECONCILE_CACHE_SIZE = 4096

FIRST_TOKEN_BONUS = 0.10
LAST_TOKEN_BONUS = 0.15
MAX_SCORE = 1.0 + FIRST_TOKEN_BONUS + LAST_TOKEN_BONUS

_NON_WORD_RE = re.compile(r"[^a-z0-9]+")

# Normalized forms ("1º Ten PM" -> "1o ten pm"), longest first.
RANK_PREFIXES: tuple[str, ...] = tuple(
    sorted(
        {
            "cel pm",
            "ten cel pm",
            "tc pm",
            "maj pm",
            "cap pm",
            "1o ten pm",
            "2o ten pm",
            "1 ten pm",
            "2 ten pm",
            "asp of pm",
            "cel",
            "ten cel",
            "tc",
            "maj",
            "cap",
            "1o ten",
            "2o ten",
            "ten",
            "asp of",
            "asp",
        },
        key=len,
        reverse=True,
    )
)


def normalize_name(value: str | None) -> str:
    """Strip accents, lowercase, drop punctuation and collapse whitespace."""
    if not value:
        return ""
    lowered = strip_accents(value).lower()
    return " ".join(_NON_WORD_RE.sub(" ", lowered).split())


def strip_rank(normalized: str) -> str:
    for prefix in RANK_PREFIXES:
        if normalized.startswith(prefix + " "):
            return normalized[len(prefix) + 1 :]
    return normalized


def name_tokens(value: str | None) -> list[str]:
    return strip_rank(normalize_name(value)).split()


def similarity(left: list[str], right: list[str]) -> float:
    if not left or not right:
        return 0.0
    a, b = set(left), set(right)
    score = len(a & b) / len(a | b)
    if left[0] == right[0]:
        score += FIRST_TOKEN_BONUS
    if left[-1] == right[-1]:
        score += LAST_TOKEN_BONUS
    return score


@dataclass(frozen=True)
class Resolution:
    officer: Officer
    score: float


class IdentityResolver:
    """Maps free-text "rank + name" input onto exactly one roster officer."""

    def __init__(self, roster: Iterable[Officer]) -> None:
        self.roster: tuple[Officer, ...] = tuple(roster)
        self._tokens = [(officer, name_tokens(officer.canonical_name)) for officer in self.roster]
        self._exact = {" ".join(tokens): officer for officer, tokens in self._tokens}
        self._reconcile_cached = lru_cache(maxsize=RECONCILE_CACHE_SIZE)(self._reconcile)

    def ranked(self, value: str | None) -> list[Resolution]:
        tokens = name_tokens(value)
        scored = [Resolution(officer, similarity(tokens, officer_tokens)) for officer, officer_tokens in self._tokens]
        return sorted(scored, key=lambda r: r.score, reverse=True)

    def resolve(self, value: str | None, *, threshold: float = LOGIN_THRESHOLD) -> Resolution:
        """
        Interactive resolution (login).

        Raises IdentityNotResolved when nothing reaches the threshold or when two
        officers tie for the best score.
        """
        ranked = self.ranked(value)
        if not ranked or ranked[0].score < threshold:
            raise IdentityNotResolved(f"Unrecognized name: {value!r}")
        if len(ranked) > 1 and ranked[1].score == ranked[0].score:
            raise IdentityNotResolved(f"Ambiguous name: {value!r}")
        return ranked[0]

    def reconcile(self, value: str | None, *, threshold: float = RECONCILE_THRESHOLD) -> Resolution | None:
        """
        Batch resolution of stored free-text officer fields.

        Exact normalized match first, then the best fuzzy match (first in roster
        order on ties). Returns None when the record cannot be attributed.
        """
        return self._reconcile_cached(value or "", threshold)

    def _reconcile(self, value: str, threshold: float) -> Resolution | None:
        result: Resolution | None = None
        exact = self._exact.get(" ".join(name_tokens(value)))
        if exact is not None:
            result = Resolution(exact, MAX_SCORE)
        else:
            best: Resolution | None = None
            tokens = name_tokens(value)
            for officer, officer_tokens in self._tokens:
                score = similarity(tokens, officer_tokens)
                if best is None or score > best.score:
                    best = Resolution(officer, score)
            if best is not None and best.score >= threshold:
                result = best

        return result

    def canonical_for(self, value: str | None) -> str | None:
        resolution = self.reconcile(value)
        return resolution.officer.canonical_name if resolution else None
