import datetime
import sqlite3

import pytest

import tennisclub.storage as storage
from tennisclub.models import Match, SetScore, Tiebreak, Settings, User, MEN_SINGLES, STATUS_CANCELLED


def add_users(*ids):
    with storage.transaction() as conn:
        for uid in ids:
            storage.create_user(User(uid, f"{uid}@example.com", uid.upper()), conn=conn)


def make_match(day, a="u1", b="u2", created_by="u1", status="completed"):
    return Match(
        match_date=day,
        match_type=MEN_SINGLES,
        player1_id=a,
        player2_id=b,
        sets=[SetScore(7, 6, Tiebreak(7, 4)), SetScore(3, 6)],
        player1_score=10,
        player2_score=12,
        status=status,
        created_by=created_by,
    )


def test_match_roundtrip_keeps_tiebreak():
    add_users("u1", "u2")
    match_id = storage.create_match(make_match(datetime.date(2024, 3, 4)))
    loaded = storage.get_match(match_id)
    assert loaded.sets[0].tiebreak == Tiebreak(7, 4)
    assert loaded.sets[1].tiebreak is None
    assert (loaded.player1_score, loaded.player2_score) == (10, 12)
    assert loaded.match_date == datetime.date(2024, 3, 4)


def test_list_matches_filters_and_order():
    add_users("u1", "u2", "u3")
    storage.create_match(make_match(datetime.date(2024, 3, 1)))
    storage.create_match(make_match(datetime.date(2024, 3, 20)))
    storage.create_match(make_match(datetime.date(2024, 4, 2)))
    storage.create_match(make_match(datetime.date(2024, 3, 10), a="u3", created_by="u3"))

    march = storage.list_matches(datetime.date(2024, 3, 1), datetime.date(2024, 3, 31))
    assert [m.match_date.day for m in march] == [20, 10, 1]
    mine = storage.list_matches(user_id="u3")
    assert len(mine) == 1
    assert storage.list_matches(status="pending") == []


def test_count_matches_created_ignores_cancelled():
    add_users("u1", "u2")
    day = datetime.date(2024, 3, 1)
    storage.create_match(make_match(day))
    storage.create_match(make_match(day))
    storage.create_match(make_match(day, status=STATUS_CANCELLED))
    storage.create_match(make_match(day, created_by="u2"))
    assert storage.count_matches_created("u1", day) == 2


def test_delete_user_removes_matches_and_tokens():
    add_users("u1", "u2", "u3")
    storage.create_match(make_match(datetime.date(2024, 3, 1)))
    keep = storage.create_match(make_match(datetime.date(2024, 3, 2), a="u3", created_by="u3"))
    storage.insert_token("tok", "u1")

    storage.delete_user("u1")

    assert storage.get_user("u1") is None
    assert storage.get_token("tok") is None
    assert [m.id for m in storage.list_matches()] == [keep]
    conn = sqlite3.connect(storage.DB_FILE)
    assert conn.execute("SELECT COUNT(*) FROM users").fetchone()[0] == 2
    conn.close()


def test_email_lookup_is_case_insensitive():
    add_users("u1")
    assert storage.get_user_by_email(" U1@Example.com ").user_id == "u1"


def test_settings_persist():
    assert storage.load_settings() == Settings()
    storage.save_settings(Settings(allow_registration=False, max_matches_per_day=0))
    storage.invalidate_cache()
    loaded = storage.load_settings()
    assert loaded.allow_registration is False
    assert loaded.max_matches_per_day == 0
    assert loaded.match_approval_required is False


def test_cache_updated_on_commit():
    add_users("u1", "u2")
    storage.load_users()
    orig_id = id(storage.get_user("u2"))

    u1 = storage.get_user("u1")
    u1.name = "NEW"
    with storage.transaction() as conn:
        storage.save_user(u1, conn=conn)

    assert storage.get_user("u1").name == "NEW"
    assert id(storage.get_user("u2")) == orig_id


def test_cache_reloaded_on_rollback():
    add_users("u1")
    storage.load_users()

    with pytest.raises(RuntimeError):
        with storage.transaction() as conn:
            u1 = storage.get_user("u1")
            u1.name = "FAIL"
            storage.save_user(u1, conn=conn)
            raise RuntimeError("boom")

    assert storage.get_user("u1").name == "U1"
