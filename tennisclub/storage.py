import json
import datetime
import logging
import pickle
import sqlite3
from pathlib import Path
from typing import Dict, Generator
from contextlib import contextmanager
from urllib.parse import urlparse

import psycopg2
import psycopg2.extras
import redis

from .config import (
    DB_FILE,
    get_database_url,
    get_redis_url,
    get_cache_ttl,
)
from .models import Match, SetScore, Tiebreak, Settings, User

logger = logging.getLogger(__name__)

# ``DB_FILE`` is imported from ``tennisclub.config`` so tests can monkeypatch it.
DATABASE_URL = get_database_url()
IS_PG = DATABASE_URL.startswith("postgres")

# Optional Redis cache
REDIS_URL = get_redis_url()
CACHE_TTL = get_cache_ttl()
_redis = redis.from_url(REDIS_URL) if REDIS_URL else None

USERS_KEY = "tennisclub:users"


class _PgCursor:
    def __init__(self, cursor):
        self._c = cursor

    def execute(self, query, params=None):
        q = query.replace("?", "%s")
        self._c.execute(q, params or [])
        return self

    def fetchone(self):
        return self._c.fetchone()

    def fetchall(self):
        return self._c.fetchall()

    def __iter__(self):
        return iter(self._c)

    def __getattr__(self, name):
        return getattr(self._c, name)


class _PgConnection:
    def __init__(self, conn):
        self._conn = conn

    def cursor(self, *a, **kw):
        return _PgCursor(self._conn.cursor(*a, **kw))

    def commit(self):
        self._conn.commit()

    def rollback(self):
        self._conn.rollback()

    def close(self):
        self._conn.close()

    def __getattr__(self, name):
        return getattr(self._conn, name)


# in-memory user roster, shared by every request of this worker
_users_cache: Dict[str, User] | None = None
# user writes made inside a transaction, applied to the cache on commit
_pending_users: Dict[str, User | None] = {}


def _load_cache(key: str):
    if not _redis:
        return None
    try:
        data = _redis.get(key)
    except redis.RedisError as exc:
        logger.warning("redis read failed for %s: %s", key, exc)
        return None
    if data is None:
        logger.debug("cache miss for %s", key)
        return None
    return pickle.loads(data)


def _save_cache(key: str, value: object) -> None:
    if not _redis:
        return
    try:
        _redis.setex(key, CACHE_TTL, pickle.dumps(value))
    except redis.RedisError as exc:
        logger.warning("redis write failed for %s: %s", key, exc)


def _drop_cache(key: str) -> None:
    if not _redis:
        return
    try:
        _redis.delete(key)
    except redis.RedisError as exc:
        logger.warning("redis delete failed for %s: %s", key, exc)


def invalidate_cache() -> None:
    """Forget the cached user roster."""
    global _users_cache
    _users_cache = None
    _pending_users.clear()
    _drop_cache(USERS_KEY)


def _refresh_after_write() -> None:
    """Apply pending user changes to the in-memory and Redis caches."""
    if _users_cache is not None:
        for user_id, user in _pending_users.items():
            if user is None:
                _users_cache.pop(user_id, None)
            else:
                _users_cache[user_id] = user
    if _pending_users:
        _drop_cache(USERS_KEY)
    _pending_users.clear()


def _connect():
    """Return a DB connection based on ``DATABASE_URL``."""
    if IS_PG:
        conn = psycopg2.connect(DATABASE_URL, cursor_factory=psycopg2.extras.RealDictCursor)
        _init_schema(conn)
        return _PgConnection(conn)
    path = DB_FILE
    if DATABASE_URL.startswith("sqlite://") and urlparse(DATABASE_URL).path != f"{DB_FILE}":
        path = Path(urlparse(DATABASE_URL).path)
    conn = sqlite3.connect(path)
    conn.row_factory = sqlite3.Row
    _init_schema(conn)
    return conn


@contextmanager
def transaction() -> Generator[object, None, None]:
    """Context manager yielding a connection with an active transaction."""
    conn = _connect()
    try:
        yield conn
        conn.commit()
        _refresh_after_write()
    except Exception:
        conn.rollback()
        # cached objects may already carry the failed changes
        invalidate_cache()
        raise
    finally:
        conn.close()


@contextmanager
def _use(conn=None) -> Generator[object, None, None]:
    """Yield ``conn`` or a fresh connection committed and closed on exit."""
    if conn is not None:
        yield conn
        return
    with transaction() as own:
        yield own


def _init_schema(conn) -> None:
    cur = conn.cursor()
    if IS_PG:
        id_col = "id SERIAL PRIMARY KEY"
        json_col = "JSONB"
    else:
        id_col = "id INTEGER PRIMARY KEY AUTOINCREMENT"
        json_col = "TEXT"
    cur.execute(
        """CREATE TABLE IF NOT EXISTS users (
        user_id TEXT PRIMARY KEY,
        email TEXT UNIQUE,
        name TEXT,
        password_hash TEXT,
        gender TEXT,
        role TEXT DEFAULT 'user',
        is_enabled INTEGER DEFAULT 1,
        created_at TEXT,
        total_points INTEGER DEFAULT 0,
        total_matches INTEGER DEFAULT 0,
        won_matches INTEGER DEFAULT 0
    )"""
    )
    cur.execute(
        f"""CREATE TABLE IF NOT EXISTS matches (
        {id_col},
        match_date TEXT,
        match_type TEXT,
        player1_id TEXT,
        player2_id TEXT,
        teammate_id TEXT,
        opponent2_id TEXT,
        player1_score INTEGER DEFAULT 0,
        player2_score INTEGER DEFAULT 0,
        sets {json_col},
        status TEXT,
        created_by TEXT,
        created_at TEXT
    )"""
    )
    cur.execute(
        """CREATE TABLE IF NOT EXISTS auth_tokens (
        token TEXT PRIMARY KEY,
        user_id TEXT,
        ts TEXT
    )"""
    )
    cur.execute(
        """CREATE TABLE IF NOT EXISTS settings (
        key TEXT PRIMARY KEY,
        value TEXT
    )"""
    )
    conn.commit()


# --- row conversion --------------------------------------------------------

def _user_from_row(row) -> User:
    return User(
        user_id=row["user_id"],
        email=row["email"],
        name=row["name"],
        password_hash=row["password_hash"] or "",
        gender=row["gender"],
        role=row["role"] or "user",
        is_enabled=bool(row["is_enabled"]),
        created_at=datetime.datetime.fromisoformat(row["created_at"]),
        total_points=row["total_points"] or 0,
        total_matches=row["total_matches"] or 0,
        won_matches=row["won_matches"] or 0,
    )


def _sets_to_json(sets: list[SetScore]) -> str:
    data = []
    for s in sets:
        item: dict[str, object] = {
            "player1_score": s.player1_score,
            "player2_score": s.player2_score,
        }
        if s.tiebreak is not None:
            item["tiebreak"] = {
                "player1_score": s.tiebreak.player1_score,
                "player2_score": s.tiebreak.player2_score,
            }
        data.append(item)
    return json.dumps(data)


def _sets_from_json(raw) -> list[SetScore]:
    if raw is None:
        return []
    # psycopg2 already decodes JSONB columns
    data = raw if isinstance(raw, list) else json.loads(raw)
    sets = []
    for item in data:
        tb = item.get("tiebreak")
        sets.append(
            SetScore(
                player1_score=item["player1_score"],
                player2_score=item["player2_score"],
                tiebreak=Tiebreak(tb["player1_score"], tb["player2_score"]) if tb else None,
            )
        )
    return sets


def _match_from_row(row) -> Match:
    return Match(
        id=row["id"],
        match_date=datetime.date.fromisoformat(row["match_date"]),
        match_type=row["match_type"],
        player1_id=row["player1_id"],
        player2_id=row["player2_id"],
        teammate_id=row["teammate_id"],
        opponent2_id=row["opponent2_id"],
        player1_score=row["player1_score"] or 0,
        player2_score=row["player2_score"] or 0,
        sets=_sets_from_json(row["sets"]),
        status=row["status"],
        created_by=row["created_by"],
        created_at=datetime.datetime.fromisoformat(row["created_at"]),
    )


# --- users -----------------------------------------------------------------

def load_users() -> Dict[str, User]:
    """Load all user accounts, using cached data when available."""
    global _users_cache
    if _users_cache is not None:
        return _users_cache
    cached = _load_cache(USERS_KEY)
    if cached is not None:
        _users_cache = cached
        return _users_cache

    conn = _connect()
    cur = conn.cursor()
    users: Dict[str, User] = {}
    for row in cur.execute("SELECT * FROM users ORDER BY created_at, user_id").fetchall():
        user = _user_from_row(row)
        users[user.user_id] = user
    conn.close()
    _users_cache = users
    _save_cache(USERS_KEY, users)
    return users


def get_user(user_id: str) -> User | None:
    """Return a single :class:`User` by id or ``None`` if not found."""
    return load_users().get(user_id)


def get_user_by_email(email: str) -> User | None:
    email = email.strip().lower()
    for user in load_users().values():
        if user.email == email:
            return user
    return None


def create_user(user: User, conn=None) -> None:
    """Insert a new user account."""
    with _use(conn) as c:
        c.cursor().execute(
            """
            INSERT INTO users(
                user_id, email, name, password_hash, gender, role, is_enabled,
                created_at, total_points, total_matches, won_matches
            ) VALUES (?,?,?,?,?,?,?,?,?,?,?)
            """,
            (
                user.user_id,
                user.email,
                user.name,
                user.password_hash,
                user.gender,
                user.role,
                int(user.is_enabled),
                user.created_at.isoformat(),
                user.total_points,
                user.total_matches,
                user.won_matches,
            ),
        )
        _pending_users[user.user_id] = user


def save_user(user: User, conn=None) -> None:
    """Persist all mutable fields of ``user``."""
    with _use(conn) as c:
        c.cursor().execute(
            """
            UPDATE users SET
                email = ?, name = ?, password_hash = ?, gender = ?, role = ?,
                is_enabled = ?, total_points = ?, total_matches = ?, won_matches = ?
            WHERE user_id = ?
            """,
            (
                user.email,
                user.name,
                user.password_hash,
                user.gender,
                user.role,
                int(user.is_enabled),
                user.total_points,
                user.total_matches,
                user.won_matches,
                user.user_id,
            ),
        )
        _pending_users[user.user_id] = user


def delete_user(user_id: str, conn=None) -> None:
    """Remove a user together with their tokens and matches."""
    with _use(conn) as c:
        cur = c.cursor()
        cur.execute("DELETE FROM auth_tokens WHERE user_id = ?", (user_id,))
        cur.execute(
            "DELETE FROM matches WHERE player1_id = ? OR player2_id = ? OR teammate_id = ? OR opponent2_id = ?",
            (user_id, user_id, user_id, user_id),
        )
        cur.execute("DELETE FROM users WHERE user_id = ?", (user_id,))
        _pending_users[user_id] = None


# --- matches ---------------------------------------------------------------

def create_match(match: Match, conn=None) -> int:
    """Insert a match and return its new id."""
    params = (
        match.match_date.isoformat(),
        match.match_type,
        match.player1_id,
        match.player2_id,
        match.teammate_id,
        match.opponent2_id,
        match.player1_score,
        match.player2_score,
        _sets_to_json(match.sets),
        match.status,
        match.created_by,
        match.created_at.isoformat(),
    )
    query = """
        INSERT INTO matches(
            match_date, match_type, player1_id, player2_id, teammate_id,
            opponent2_id, player1_score, player2_score, sets, status,
            created_by, created_at
        ) VALUES (?,?,?,?,?,?,?,?,?,?,?,?)
    """
    with _use(conn) as c:
        cur = c.cursor()
        if IS_PG:
            row = cur.execute(query + " RETURNING id", params).fetchone()
            match.id = row["id"]
        else:
            cur.execute(query, params)
            match.id = cur.lastrowid
    return match.id


def update_match(match: Match, conn=None) -> None:
    with _use(conn) as c:
        c.cursor().execute(
            """
            UPDATE matches SET
                match_date = ?, match_type = ?, player1_id = ?, player2_id = ?,
                teammate_id = ?, opponent2_id = ?, player1_score = ?,
                player2_score = ?, sets = ?, status = ?
            WHERE id = ?
            """,
            (
                match.match_date.isoformat(),
                match.match_type,
                match.player1_id,
                match.player2_id,
                match.teammate_id,
                match.opponent2_id,
                match.player1_score,
                match.player2_score,
                _sets_to_json(match.sets),
                match.status,
                match.id,
            ),
        )


def get_match(match_id: int) -> Match | None:
    conn = _connect()
    row = conn.cursor().execute("SELECT * FROM matches WHERE id = ?", (match_id,)).fetchone()
    conn.close()
    return _match_from_row(row) if row else None


def delete_match(match_id: int, conn=None) -> None:
    with _use(conn) as c:
        c.cursor().execute("DELETE FROM matches WHERE id = ?", (match_id,))


def list_matches(
    start: datetime.date | None = None,
    end: datetime.date | None = None,
    user_id: str | None = None,
    status: str | None = None,
) -> list[Match]:
    """Return matches filtered in SQL, newest ``match_date`` first."""
    clauses = []
    params: list[object] = []
    if start is not None:
        clauses.append("match_date >= ?")
        params.append(start.isoformat())
    if end is not None:
        clauses.append("match_date <= ?")
        params.append(end.isoformat())
    if user_id is not None:
        clauses.append("(player1_id = ? OR player2_id = ? OR teammate_id = ? OR opponent2_id = ?)")
        params.extend([user_id] * 4)
    if status is not None:
        clauses.append("status = ?")
        params.append(status)
    query = "SELECT * FROM matches"
    if clauses:
        query += " WHERE " + " AND ".join(clauses)
    query += " ORDER BY match_date DESC, id DESC"
    conn = _connect()
    rows = conn.cursor().execute(query, params).fetchall()
    conn.close()
    return [_match_from_row(r) for r in rows]


def count_matches_created(user_id: str, match_date: datetime.date) -> int:
    """Return how many matches ``user_id`` recorded for one day."""
    conn = _connect()
    row = conn.cursor().execute(
        "SELECT COUNT(*) AS n FROM matches WHERE created_by = ? AND match_date = ? AND status != ?",
        (user_id, match_date.isoformat(), "cancelled"),
    ).fetchone()
    conn.close()
    return row["n"]


# --- tokens ----------------------------------------------------------------

def insert_token(token: str, user_id: str) -> None:
    """Persist or update an authentication token."""
    ts = datetime.datetime.utcnow().isoformat()
    with transaction() as conn:
        cur = conn.cursor()
        if IS_PG:
            cur.execute(
                """
                INSERT INTO auth_tokens(token, user_id, ts) VALUES (?,?,?)
                ON CONFLICT (token) DO UPDATE SET user_id = EXCLUDED.user_id, ts = EXCLUDED.ts
                """,
                (token, user_id, ts),
            )
        else:
            cur.execute(
                "INSERT OR REPLACE INTO auth_tokens(token, user_id, ts) VALUES (?,?,?)",
                (token, user_id, ts),
            )


def delete_token(token: str) -> None:
    """Remove an authentication token."""
    with transaction() as conn:
        conn.cursor().execute("DELETE FROM auth_tokens WHERE token = ?", (token,))


def get_token(token: str) -> tuple[str, datetime.datetime] | None:
    """Retrieve a ``(user_id, timestamp)`` tuple for the token."""
    conn = _connect()
    row = conn.cursor().execute(
        "SELECT user_id, ts FROM auth_tokens WHERE token = ?",
        (token,),
    ).fetchone()
    conn.close()
    if not row:
        return None
    return row["user_id"], datetime.datetime.fromisoformat(row["ts"])


# --- settings --------------------------------------------------------------

def load_settings() -> Settings:
    conn = _connect()
    rows = conn.cursor().execute("SELECT key, value FROM settings").fetchall()
    conn.close()
    stored = {r["key"]: json.loads(r["value"]) for r in rows}
    settings = Settings()
    for key, value in stored.items():
        if hasattr(settings, key):
            setattr(settings, key, value)
    return settings


def save_settings(settings: Settings) -> None:
    values = {
        "allow_registration": settings.allow_registration,
        "match_approval_required": settings.match_approval_required,
        "max_matches_per_day": settings.max_matches_per_day,
    }
    with transaction() as conn:
        cur = conn.cursor()
        for key, value in values.items():
            cur.execute("DELETE FROM settings WHERE key = ?", (key,))
            cur.execute("INSERT INTO settings(key, value) VALUES (?,?)", (key, json.dumps(value)))
