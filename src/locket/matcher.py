"""Fuzzy subsequence matching over record names.

A name matches a query when every query character appears in the name, in
order, ignoring case. Matching names are scored with a small dynamic program
over (query position, name position):

    match        +16 per matched character
    consecutive  +4  when the previous query char matched the previous name char
    boundary     +10 at the start of the name, +8 after a separator,
                 +7 on a camelCase hump or letter/digit transition
    gap          -3 to open a gap between matched characters, -1 per extra char
    exact        large bonus when the whole name equals the query

rank() orders by score (desc), then name length (asc), then record id (asc),
so output is deterministic for a fixed input set regardless of input order.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

_SCORE_MATCH = 16
_SCORE_GAP_START = 3
_SCORE_GAP_EXTEND = 1
_BONUS_CONSECUTIVE = 4
_BONUS_START = 10
_BONUS_BOUNDARY = 8
_BONUS_CAMEL = 7
_BONUS_EXACT = 1 << 20


def _fold(ch: str) -> str:
    # Keep one code point per position so offsets line up with the name.
    folded = ch.casefold()
    if len(folded) == 1:
        return folded
    lowered = ch.lower()
    return lowered if len(lowered) == 1 else ch


def _bonus(prev: str | None, ch: str) -> int:
    if prev is None:
        return _BONUS_START
    if not prev.isalnum():
        return _BONUS_BOUNDARY if ch.isalnum() else 0
    if prev.islower() and ch.isupper():
        return _BONUS_CAMEL
    if prev.isalpha() and ch.isdigit():
        return _BONUS_CAMEL
    return 0


def is_subsequence(name: str, query: str) -> bool:
    """True when query's characters occur in name in order, ignoring case."""
    it = iter([_fold(c) for c in name])
    return all(_fold(c) in it for c in query)


def score(name: str, query: str) -> int | None:
    """Return the match score of query against name, or None if it doesn't match."""
    hay = [_fold(c) for c in name]
    needle = [_fold(c) for c in query]
    m, n = len(needle), len(hay)
    if m == 0:
        return 0
    if m > n or not is_subsequence(name, query):
        return None

    bonuses = [_bonus(name[j - 1] if j else None, name[j]) for j in range(n)]

    # prev_row[j]: best score with needle[:i] matched and needle[i-1] at hay[j]
    prev_row: list[int | None] = [None] * n
    for i, qc in enumerate(needle):
        row: list[int | None] = [None] * n
        gap_best: int | None = None
        for j in range(n):
            if i > 0:
                if gap_best is not None:
                    gap_best -= _SCORE_GAP_EXTEND
                if j >= 2 and prev_row[j - 2] is not None:
                    opened = prev_row[j - 2] - _SCORE_GAP_START  # type: ignore[operator]
                    gap_best = opened if gap_best is None else max(gap_best, opened)
            if hay[j] != qc:
                continue
            if i == 0:
                best = 0
            else:
                options: list[int] = []
                if j >= 1 and prev_row[j - 1] is not None:
                    options.append(prev_row[j - 1] + _BONUS_CONSECUTIVE)  # type: ignore[operator]
                if gap_best is not None:
                    options.append(gap_best)
                if not options:
                    continue
                best = max(options)
            row[j] = best + _SCORE_MATCH + bonuses[j]
        prev_row = row

    result = max(v for v in prev_row if v is not None)
    if hay == needle:
        result += _BONUS_EXACT
    return result


def rank(candidates: Iterable[tuple[str, str]], query: str) -> list[str]:
    """Rank (id, name) candidates against query; non-matches are dropped.

    Empty queries are the caller's concern; here they match everything
    with a zero score.
    """
    scored: list[tuple[int, int, str]] = []
    for record_id, name in candidates:
        s = score(name, query)
        if s is not None:
            scored.append((-s, len(name), record_id))
    scored.sort()
    return [record_id for _, _, record_id in scored]
