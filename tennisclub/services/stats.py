"""Match statistics and leaderboards.

Everything here is a pure function of already loaded matches and users.
Callers fetch data through :mod:`tennisclub.storage` and pass it in.
"""
from __future__ import annotations

import calendar
import datetime
import logging
from typing import Callable, Iterable, Mapping, Sequence

from ..models import (
    LeaderboardEntry,
    Match,
    RankingStrategy,
    User,
    STATUS_COMPLETED,
)
from .. import scoring

logger = logging.getLogger(__name__)

COUNTED_STATUSES = (STATUS_COMPLETED,)


# --- month windows ---------------------------------------------------------

def parse_month(value: str) -> tuple[int, int]:
    """Parse a ``YYYY-MM`` selector into ``(year, month)``."""
    try:
        year_s, month_s = value.split("-")
        year, month = int(year_s), int(month_s)
    except (AttributeError, ValueError):
        raise ValueError(f"Invalid month '{value}'")
    if not 1 <= month <= 12:
        raise ValueError(f"Invalid month '{value}'")
    return year, month


def month_window(year: int, month: int) -> tuple[datetime.date, datetime.date]:
    """Return the first and last day of a calendar month."""
    last_day = calendar.monthrange(year, month)[1]
    return datetime.date(year, month, 1), datetime.date(year, month, last_day)


def month_key(day: datetime.date) -> str:
    return f"{day.year}-{day.month:02d}"


def window_for(month: str | None, today: datetime.date | None = None) -> tuple[datetime.date, datetime.date]:
    """Return the window for ``month``, defaulting to the current month."""
    if month:
        return month_window(*parse_month(month))
    today = today or datetime.date.today()
    return month_window(today.year, today.month)


def recent_months(today: datetime.date | None = None, count: int = 12) -> list[dict[str, str]]:
    """Return month selector options, newest first."""
    today = today or datetime.date.today()
    year, month = today.year, today.month
    options = []
    for _ in range(count):
        options.append({"value": f"{year}-{month:02d}", "label": f"{year}-{month:02d}"})
        month -= 1
        if month == 0:
            month = 12
            year -= 1
    return options


# --- ranking ---------------------------------------------------------------

def resolve_strategy(value: RankingStrategy | str | None, default: RankingStrategy | str = RankingStrategy.POINTS) -> RankingStrategy:
    """Return a :class:`RankingStrategy` for an enum member or its name."""
    if value is None or value == "":
        value = default
    if isinstance(value, RankingStrategy):
        return value
    try:
        return RankingStrategy(value)
    except ValueError:
        raise ValueError(f"Unknown ranking '{value}'")


def _by_points(entry: LeaderboardEntry):
    return -entry.total_points


def _by_win_rate(entry: LeaderboardEntry):
    return (-entry.win_rate, -entry.total_matches, -entry.wins)


_SORT_KEYS: dict[RankingStrategy, Callable[[LeaderboardEntry], object]] = {
    RankingStrategy.POINTS: _by_points,
    RankingStrategy.WIN_RATE: _by_win_rate,
}


def rank_entries(
    entries: Iterable[LeaderboardEntry],
    strategy: RankingStrategy | str = RankingStrategy.POINTS,
) -> list[LeaderboardEntry]:
    """Sort entries by ``strategy``. Ties keep their input order."""
    key = _SORT_KEYS[resolve_strategy(strategy)]
    return sorted(entries, key=key)


# --- aggregation -----------------------------------------------------------

def _roster(users: Mapping[str, User] | Sequence[User]) -> dict[str, User]:
    if isinstance(users, Mapping):
        return dict(users)
    return {u.user_id: u for u in users}


def filter_matches(
    matches: Iterable[Match],
    start: datetime.date | None = None,
    end: datetime.date | None = None,
    participant: str | None = None,
    statuses: Sequence[str] | None = COUNTED_STATUSES,
) -> list[Match]:
    """Return matches inside the inclusive date window."""
    result = []
    for m in matches:
        if statuses is not None and m.status not in statuses:
            continue
        if start is not None and m.match_date < start:
            continue
        if end is not None and m.match_date > end:
            continue
        if participant is not None and participant not in scoring.participants(m):
            continue
        result.append(m)
    return result


def aggregate(
    matches: Iterable[Match],
    users: Mapping[str, User] | Sequence[User],
    start: datetime.date | None = None,
    end: datetime.date | None = None,
    *,
    statuses: Sequence[str] | None = COUNTED_STATUSES,
    count_draws: bool = True,
) -> dict[str, LeaderboardEntry]:
    """Compute one entry per rostered user, in roster order.

    Users without matches in the window get zero-valued entries. Matches
    naming an id missing from the roster are skipped. Drawn matches add to
    ``total_matches`` and points only when ``count_draws`` is true.
    """
    roster = _roster(users)
    entries = {uid: LeaderboardEntry(user_id=uid, name=u.name) for uid, u in roster.items()}

    for m in filter_matches(matches, start, end, statuses=statuses):
        side_a, side_b = scoring.side_ids(m)
        missing = [uid for uid in side_a + side_b if uid not in roster]
        if missing:
            logger.debug("skipping match %s: unknown users %s", m.id, missing)
            continue
        result = scoring.winner(m)
        if result is None and not count_draws:
            continue
        points_a, points_b = scoring.side_totals(m.sets)
        for side, ids, points in ((scoring.SIDE_A, side_a, points_a), (scoring.SIDE_B, side_b, points_b)):
            for uid in ids:
                entry = entries[uid]
                entry.total_matches += 1
                entry.total_points += points
                if result == side:
                    entry.wins += 1
                elif result is not None:
                    entry.losses += 1
    return entries


def leaderboard(
    matches: Iterable[Match],
    users: Mapping[str, User] | Sequence[User],
    start: datetime.date | None = None,
    end: datetime.date | None = None,
    *,
    strategy: RankingStrategy | str = RankingStrategy.POINTS,
    include_inactive: bool = False,
    statuses: Sequence[str] | None = COUNTED_STATUSES,
    count_draws: bool = True,
) -> list[LeaderboardEntry]:
    """Return ranked entries for the window.

    Users with no matches are dropped unless ``include_inactive`` is set.
    """
    entries = aggregate(
        matches, users, start, end, statuses=statuses, count_draws=count_draws
    ).values()
    if not include_inactive:
        entries = [e for e in entries if e.total_matches > 0]
    return rank_entries(entries, strategy)


def personal_stats(
    matches: Iterable[Match],
    users: Mapping[str, User] | Sequence[User],
    user_id: str,
    start: datetime.date | None = None,
    end: datetime.date | None = None,
    *,
    statuses: Sequence[str] | None = COUNTED_STATUSES,
    count_draws: bool = True,
) -> dict[str, object]:
    """Return a user's summary plus a per-match breakdown, newest first."""
    roster = _roster(users)
    if user_id not in roster:
        raise ValueError("User not found")
    own = filter_matches(matches, start, end, participant=user_id, statuses=statuses)
    entry = aggregate(own, roster, statuses=statuses, count_draws=count_draws)[user_id]

    rows = []
    for m in sorted(own, key=lambda x: (x.match_date, x.created_at), reverse=True):
        if any(uid not in roster for uid in scoring.participants(m)):
            continue
        side = scoring.side_of(m, user_id)
        other = scoring.SIDE_B if side == scoring.SIDE_A else scoring.SIDE_A
        result = scoring.winner(m)
        if result is None and not count_draws:
            continue
        rows.append(
            {
                "id": m.id,
                "match_date": m.match_date.isoformat(),
                "match_type": m.match_type,
                "points": scoring.points_for_side(m, side),
                "opponent_points": scoring.points_for_side(m, other),
                "result": "draw" if result is None else ("win" if result == side else "loss"),
            }
        )
    return {"summary": entry.to_dict(), "matches": rows}


def lifetime_counters(
    matches: Iterable[Match],
    users: Mapping[str, User] | Sequence[User],
) -> dict[str, dict[str, int]]:
    """Recompute the counters stored on :class:`User` from full history."""
    entries = aggregate(matches, users)
    return {
        uid: {
            "total_points": e.total_points,
            "total_matches": e.total_matches,
            "won_matches": e.wins,
        }
        for uid, e in entries.items()
    }
