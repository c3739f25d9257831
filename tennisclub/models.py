from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

# Match types as stored in the ``matches`` table
MEN_SINGLES = "men_singles"
WOMEN_SINGLES = "women_singles"
MIXED_SINGLES = "mixed_singles"
MEN_DOUBLES = "men_doubles"
WOMEN_DOUBLES = "women_doubles"
MIXED_DOUBLES = "mixed_doubles"

SINGLES_TYPES = (MEN_SINGLES, WOMEN_SINGLES, MIXED_SINGLES)
DOUBLES_TYPES = (MEN_DOUBLES, WOMEN_DOUBLES, MIXED_DOUBLES)
MATCH_TYPES = SINGLES_TYPES + DOUBLES_TYPES

# Match lifecycle
STATUS_PENDING = "pending"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"
MATCH_STATUSES = (STATUS_PENDING, STATUS_COMPLETED, STATUS_CANCELLED)

ROLE_ADMIN = "admin"
ROLE_USER = "user"
ROLES = (ROLE_ADMIN, ROLE_USER)

GENDERS = ("male", "female")


class RankingStrategy(str, Enum):
    """Leaderboard ordering conventions."""

    POINTS = "points"
    WIN_RATE = "win_rate"


@dataclass
class User:
    """Account data plus lifetime counters."""

    user_id: str
    email: str
    name: str
    password_hash: str = ""
    gender: Optional[str] = None
    role: str = ROLE_USER
    is_enabled: bool = True
    created_at: datetime.datetime = field(default_factory=datetime.datetime.utcnow)
    # lifetime counters, refreshed by an explicit recompute only
    total_points: int = 0
    total_matches: int = 0
    won_matches: int = 0

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


@dataclass
class Tiebreak:
    player1_score: int
    player2_score: int


@dataclass
class SetScore:
    player1_score: int
    player2_score: int
    tiebreak: Optional[Tiebreak] = None


@dataclass
class Match:
    match_date: datetime.date
    match_type: str
    player1_id: str
    player2_id: str
    sets: List[SetScore] = field(default_factory=list)
    teammate_id: Optional[str] = None
    opponent2_id: Optional[str] = None
    status: str = STATUS_COMPLETED
    id: int | None = None
    # per-side sums of set scores, kept in sync by the write path
    player1_score: int = 0
    player2_score: int = 0
    created_by: str | None = None
    created_at: datetime.datetime = field(default_factory=datetime.datetime.utcnow)

    @property
    def is_doubles(self) -> bool:
        return self.match_type in DOUBLES_TYPES


@dataclass
class LeaderboardEntry:
    user_id: str
    name: str
    wins: int = 0
    losses: int = 0
    total_matches: int = 0
    total_points: int = 0

    @property
    def win_rate(self) -> float:
        """Win percentage over decided matches, full precision."""
        decided = self.wins + self.losses
        if not decided:
            return 0.0
        return self.wins / decided * 100

    def to_dict(self) -> dict[str, object]:
        return {
            "user_id": self.user_id,
            "name": self.name,
            "wins": self.wins,
            "losses": self.losses,
            "total_matches": self.total_matches,
            "total_points": self.total_points,
            "win_rate": round(self.win_rate, 1),
        }


@dataclass
class Settings:
    """Club-wide switches editable by administrators."""

    allow_registration: bool = True
    match_approval_required: bool = False
    max_matches_per_day: int = 3
