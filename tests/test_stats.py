import datetime

import pytest

from tennisclub.models import (
    Match,
    SetScore,
    Tiebreak,
    User,
    RankingStrategy,
    MEN_SINGLES,
    MEN_DOUBLES,
    STATUS_PENDING,
    STATUS_CANCELLED,
)
from tennisclub.services.stats import (
    aggregate,
    leaderboard,
    lifetime_counters,
    month_window,
    parse_month,
    personal_stats,
    rank_entries,
    recent_months,
    resolve_strategy,
    window_for,
)

DAY = datetime.date(2024, 5, 10)
START, END = month_window(2024, 5)


def make_users(*ids):
    return {uid: User(uid, f"{uid}@example.com", uid.upper()) for uid in ids}


def singles(a, b, sets, day=DAY, status="completed"):
    return Match(
        match_date=day,
        match_type=MEN_SINGLES,
        player1_id=a,
        player2_id=b,
        sets=[SetScore(x, y) for x, y in sets],
        status=status,
    )


def doubles(a, a2, b, b2, sets, day=DAY):
    return Match(
        match_date=day,
        match_type=MEN_DOUBLES,
        player1_id=a,
        teammate_id=a2,
        player2_id=b,
        opponent2_id=b2,
        sets=[SetScore(x, y) for x, y in sets],
    )


def test_summed_set_scores_decide_winner():
    users = make_users("u1", "u2")
    matches = [singles("u1", "u2", [(3, 6), (6, 2), (6, 3)])]
    entries = aggregate(matches, users, START, END)
    assert entries["u1"].total_points == 15
    assert entries["u2"].total_points == 11
    assert entries["u1"].wins == 1 and entries["u1"].losses == 0
    assert entries["u2"].wins == 0 and entries["u2"].losses == 1
    assert entries["u1"].total_matches == entries["u2"].total_matches == 1


def test_more_sets_won_can_still_lose_on_points():
    users = make_users("u1", "u2")
    # u1 takes two sets but u2 has the larger sum
    matches = [singles("u1", "u2", [(6, 4), (6, 4), (0, 6)])]
    entries = aggregate(matches, users)
    assert entries["u1"].total_points == 12
    assert entries["u2"].total_points == 14
    assert entries["u2"].wins == 1


def test_doubles_credit_both_players_per_side():
    users = make_users("u1", "u2", "u3", "u4")
    matches = [doubles("u1", "u3", "u2", "u4", [(6, 4), (6, 3)])]
    entries = aggregate(matches, users, START, END)
    for uid in ("u1", "u3"):
        assert entries[uid].total_points == 12
        assert entries[uid].wins == 1
    for uid in ("u2", "u4"):
        assert entries[uid].total_points == 7
        assert entries[uid].losses == 1
    assert all(e.total_matches == 1 for e in entries.values())


def test_inactive_user_in_full_roster_only():
    users = make_users("u1", "u2", "idle")
    matches = [singles("u1", "u2", [(6, 1)])]
    full = leaderboard(matches, users, START, END, include_inactive=True)
    assert "idle" in [e.user_id for e in full]
    idle = [e for e in full if e.user_id == "idle"][0]
    assert idle.total_matches == 0
    assert idle.win_rate == 0.0
    filtered = leaderboard(matches, users, START, END)
    assert [e.user_id for e in filtered] == ["u1", "u2"]


def test_window_and_status_filtering():
    users = make_users("u1", "u2")
    matches = [
        singles("u1", "u2", [(6, 0)]),
        singles("u1", "u2", [(6, 0)], day=datetime.date(2024, 4, 30)),
        singles("u1", "u2", [(6, 0)], day=datetime.date(2024, 6, 1)),
        singles("u1", "u2", [(6, 0)], status=STATUS_PENDING),
        singles("u1", "u2", [(6, 0)], status=STATUS_CANCELLED),
        singles("u1", "u2", [(6, 0)], day=END),
    ]
    entries = aggregate(matches, users, START, END)
    assert entries["u1"].total_matches == 2
    assert entries["u1"].total_points == 12


def test_unknown_participant_skips_whole_match():
    users = make_users("u1", "u2")
    matches = [
        singles("u1", "ghost", [(6, 0)]),
        singles("u1", "u2", [(6, 2)]),
    ]
    entries = aggregate(matches, users)
    assert "ghost" not in entries
    assert entries["u1"].total_matches == 1
    assert entries["u1"].total_points == 6


def test_draws_count_by_default():
    users = make_users("u1", "u2")
    matches = [singles("u1", "u2", [(6, 4), (4, 6)])]
    entries = aggregate(matches, users)
    assert entries["u1"].total_matches == 1
    assert entries["u1"].total_points == 10
    assert entries["u1"].wins == entries["u1"].losses == 0
    assert entries["u1"].win_rate == 0.0


def test_draws_ignored_when_disabled():
    users = make_users("u1", "u2")
    matches = [singles("u1", "u2", [(6, 4), (4, 6)])]
    entries = aggregate(matches, users, count_draws=False)
    assert entries["u1"].total_matches == 0
    assert entries["u1"].total_points == 0


def test_tiebreak_points_not_added():
    users = make_users("u1", "u2")
    match = singles("u1", "u2", [(7, 6)])
    match.sets[0].tiebreak = Tiebreak(10, 8)
    entries = aggregate([match], users)
    assert entries["u1"].total_points == 7
    assert entries["u2"].total_points == 6


def test_win_rate_bounds_and_rounding():
    users = make_users("u1", "u2")
    matches = [
        singles("u1", "u2", [(6, 0)]),
        singles("u1", "u2", [(0, 6)]),
        singles("u1", "u2", [(6, 1)]),
    ]
    entries = aggregate(matches, users)
    for e in entries.values():
        assert 0.0 <= e.win_rate <= 100.0
        assert e.wins + e.losses <= e.total_matches
    assert entries["u1"].to_dict()["win_rate"] == 66.7
    assert entries["u2"].to_dict()["win_rate"] == 33.3


def test_ranking_strategies():
    users = make_users("a", "b", "c")
    matches = [
        # a: many points, one loss
        singles("a", "b", [(6, 7), (6, 7), (6, 0)]),
        singles("a", "c", [(6, 0)]),
        # c beats b twice with few points
        singles("c", "b", [(1, 0)]),
        singles("c", "b", [(1, 0)], day=datetime.date(2024, 5, 11)),
    ]
    by_points = leaderboard(matches, users)
    assert [e.user_id for e in by_points] == ["a", "b", "c"]
    by_rate = leaderboard(matches, users, strategy=RankingStrategy.WIN_RATE)
    assert [e.user_id for e in by_rate] == ["a", "c", "b"]
    assert by_rate[0].win_rate == 100.0


def test_win_rate_tie_broken_by_matches_then_stable():
    users = make_users("x", "y", "z", "w")
    matches = [
        singles("x", "w", [(6, 0)]),
        singles("y", "w", [(6, 0)]),
        singles("y", "w", [(6, 1)]),
        singles("z", "w", [(6, 0)]),
    ]
    ranked = leaderboard(matches, users, strategy="win_rate")
    assert [e.user_id for e in ranked] == ["y", "x", "z", "w"]


def test_output_is_deterministic():
    users = make_users("u1", "u2", "u3", "u4")
    matches = [
        doubles("u1", "u3", "u2", "u4", [(6, 4)]),
        singles("u1", "u2", [(4, 6)]),
        singles("u3", "u4", [(5, 5)]),
    ]
    first = [e.to_dict() for e in leaderboard(matches, users, include_inactive=True)]
    second = [e.to_dict() for e in leaderboard(list(matches), dict(users), include_inactive=True)]
    assert first == second


def test_rank_entries_rejects_unknown_strategy():
    with pytest.raises(ValueError):
        rank_entries([], "elo")


def test_resolve_strategy_default():
    assert resolve_strategy(None) is RankingStrategy.POINTS
    assert resolve_strategy("", "win_rate") is RankingStrategy.WIN_RATE
    assert resolve_strategy("points") is RankingStrategy.POINTS


def test_personal_stats_breakdown():
    users = make_users("u1", "u2", "u3")
    matches = [
        singles("u1", "u2", [(6, 3)], day=datetime.date(2024, 5, 2)),
        singles("u2", "u1", [(6, 1)], day=datetime.date(2024, 5, 20)),
        singles("u2", "u3", [(6, 1)]),
    ]
    data = personal_stats(matches, users, "u1", START, END)
    summary = data["summary"]
    assert summary["total_matches"] == 2
    assert summary["wins"] == 1 and summary["losses"] == 1
    assert summary["total_points"] == 7
    assert [r["match_date"] for r in data["matches"]] == ["2024-05-20", "2024-05-02"]
    assert data["matches"][0]["result"] == "loss"
    assert data["matches"][0]["points"] == 1
    assert data["matches"][0]["opponent_points"] == 6
    assert data["matches"][1]["result"] == "win"


def test_personal_stats_unknown_user():
    with pytest.raises(ValueError):
        personal_stats([], make_users("u1"), "nobody")


def test_lifetime_counters_cover_all_history():
    users = make_users("u1", "u2")
    matches = [
        singles("u1", "u2", [(6, 3)], day=datetime.date(2023, 1, 5)),
        singles("u1", "u2", [(2, 6)]),
        singles("u1", "u2", [(6, 0)], status=STATUS_PENDING),
    ]
    counters = lifetime_counters(matches, users)
    assert counters["u1"] == {"total_points": 8, "total_matches": 2, "won_matches": 1}
    assert counters["u2"] == {"total_points": 9, "total_matches": 2, "won_matches": 1}


def test_users_may_be_a_sequence():
    users = list(make_users("u1", "u2").values())
    entries = aggregate([singles("u1", "u2", [(6, 2)])], users)
    assert list(entries) == ["u1", "u2"]


def test_month_helpers():
    assert parse_month("2024-02") == (2024, 2)
    assert month_window(2024, 2) == (datetime.date(2024, 2, 1), datetime.date(2024, 2, 29))
    assert window_for(None, today=datetime.date(2023, 12, 15)) == (
        datetime.date(2023, 12, 1),
        datetime.date(2023, 12, 31),
    )
    for bad in ("2024-13", "2024", "may", ""):
        with pytest.raises(ValueError):
            parse_month(bad)


def test_recent_months_cross_year():
    options = recent_months(today=datetime.date(2024, 2, 3))
    values = [o["value"] for o in options]
    assert len(values) == 12
    assert values[:3] == ["2024-02", "2024-01", "2023-12"]
    assert values[-1] == "2023-03"
