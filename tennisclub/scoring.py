"""Set and match scoring rules.

A match is decided by comparing the summed set scores of each side, not by
counting sets won. Tiebreak points are recorded but never enter the totals.
"""
from __future__ import annotations

from typing import Iterable, Mapping, Sequence, Tuple

from .models import (
    Match,
    SetScore,
    Tiebreak,
    MATCH_TYPES,
    DOUBLES_TYPES,
    MEN_SINGLES,
)

SIDE_A = "a"
SIDE_B = "b"

# Men's singles is best of five, everything else best of three
MAX_SETS = {MEN_SINGLES: 5}
DEFAULT_MAX_SETS = 3


def max_sets(match_type: str) -> int:
    """Return the number of sets a scorecard of ``match_type`` may hold."""
    return MAX_SETS.get(match_type, DEFAULT_MAX_SETS)


def _score(value, what: str) -> int:
    # bool is an int subclass but never a valid score
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"Invalid {what}")
    if value < 0:
        raise ValueError(f"Invalid {what}")
    return value


def is_tiebreak_set(player1_score: int, player2_score: int) -> bool:
    """Return True for a set decided 7-6 or 6-7."""
    return {player1_score, player2_score} == {6, 7}


def parse_set(raw: Mapping[str, object]) -> SetScore:
    """Build a :class:`SetScore` from a mapping, validating every field."""
    if "player1_score" not in raw or "player2_score" not in raw:
        raise ValueError("Set is missing a score")
    p1 = _score(raw["player1_score"], "set score")
    p2 = _score(raw["player2_score"], "set score")
    tb = None
    raw_tb = raw.get("tiebreak")
    if raw_tb:
        if "player1_score" not in raw_tb or "player2_score" not in raw_tb:
            raise ValueError("Tiebreak is missing a score")
        if not is_tiebreak_set(p1, p2):
            raise ValueError("Tiebreak only allowed on a 7-6 set")
        tb = Tiebreak(
            _score(raw_tb["player1_score"], "tiebreak score"),
            _score(raw_tb["player2_score"], "tiebreak score"),
        )
    return SetScore(p1, p2, tb)


def parse_sets(raw_sets: Iterable[Mapping[str, object]], match_type: str | None = None) -> list[SetScore]:
    sets = [parse_set(s) for s in raw_sets]
    if match_type is not None and len(sets) > max_sets(match_type):
        raise ValueError("Too many sets")
    return sets


def validate_sets(sets: Sequence[SetScore], match_type: str | None = None) -> None:
    """Validate already constructed set records."""
    if match_type is not None and len(sets) > max_sets(match_type):
        raise ValueError("Too many sets")
    for s in sets:
        _score(s.player1_score, "set score")
        _score(s.player2_score, "set score")
        if s.tiebreak is not None:
            if not is_tiebreak_set(s.player1_score, s.player2_score):
                raise ValueError("Tiebreak only allowed on a 7-6 set")
            _score(s.tiebreak.player1_score, "tiebreak score")
            _score(s.tiebreak.player2_score, "tiebreak score")


def side_totals(sets: Iterable[SetScore]) -> Tuple[int, int]:
    """Return the summed set scores ``(side_a, side_b)``."""
    total_a = 0
    total_b = 0
    for s in sets:
        total_a += s.player1_score
        total_b += s.player2_score
    return total_a, total_b


def apply_totals(match: Match) -> Match:
    """Refresh the derived ``player1_score``/``player2_score`` fields."""
    match.player1_score, match.player2_score = side_totals(match.sets)
    return match


def side_ids(match: Match) -> Tuple[tuple[str, ...], tuple[str, ...]]:
    """Return the user ids on each side of ``match``."""
    if match.match_type in DOUBLES_TYPES:
        side_a = tuple(uid for uid in (match.player1_id, match.teammate_id) if uid)
        side_b = tuple(uid for uid in (match.player2_id, match.opponent2_id) if uid)
        return side_a, side_b
    return (match.player1_id,), (match.player2_id,)


def participants(match: Match) -> tuple[str, ...]:
    side_a, side_b = side_ids(match)
    return side_a + side_b


def side_of(match: Match, user_id: str) -> str | None:
    """Return ``"a"``, ``"b"`` or ``None`` for a user in ``match``."""
    side_a, side_b = side_ids(match)
    if user_id in side_a:
        return SIDE_A
    if user_id in side_b:
        return SIDE_B
    return None


def winner(match: Match) -> str | None:
    """Return the winning side, or ``None`` when the totals are equal."""
    total_a, total_b = side_totals(match.sets)
    if total_a > total_b:
        return SIDE_A
    if total_b > total_a:
        return SIDE_B
    return None


def points_for_side(match: Match, side: str) -> int:
    total_a, total_b = side_totals(match.sets)
    return total_a if side == SIDE_A else total_b


def validate_participants(
    match_type: str,
    player1_id: str | None,
    player2_id: str | None,
    teammate_id: str | None = None,
    opponent2_id: str | None = None,
) -> None:
    """Check that the filled slots agree with ``match_type``."""
    if match_type not in MATCH_TYPES:
        raise ValueError("Unknown match type")
    if not player1_id or not player2_id:
        raise ValueError("Both sides need a player")
    if match_type in DOUBLES_TYPES:
        if not teammate_id or not opponent2_id:
            raise ValueError("Doubles needs a partner and two opponents")
        ids = [player1_id, teammate_id, player2_id, opponent2_id]
    else:
        if teammate_id or opponent2_id:
            raise ValueError("Singles cannot have a partner")
        ids = [player1_id, player2_id]
    if len(set(ids)) != len(ids):
        raise ValueError("A player cannot appear twice")
