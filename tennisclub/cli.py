import argparse
import datetime
import random
import string
from passlib.context import CryptContext

from .models import User, ROLE_ADMIN, ROLE_USER, ROLES, GENDERS
from .storage import load_users, list_matches, transaction, create_user, save_user, get_user_by_email
from .services.stats import leaderboard, personal_stats, resolve_strategy, window_for
from .config import get_count_draws, get_leaderboard_ranking


pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def check_password(user: User, password: str) -> bool:
    if not user.password_hash:
        return False
    try:
        return pwd_context.verify(password, user.password_hash)
    except ValueError:
        # malformed or unknown hash format
        return False


def normalize_gender(g: str | None) -> str | None:
    """Return canonical gender values 'male'/'female' or None."""
    if not g:
        return None
    g = g.strip()
    if g.lower() in {"m", "male", "男"}:
        return "male"
    if g.lower() in {"f", "female", "女"}:
        return "female"
    raise ValueError("Invalid gender")


def normalize_email(email: str) -> str:
    email = (email or "").strip().lower()
    if "@" not in email or email.startswith("@") or email.endswith("@"):
        raise ValueError("Invalid email")
    return email


def _next_user_id(users) -> str:
    """Return an unused 7 character alphanumeric user id."""
    alphabet = string.ascii_letters + string.digits
    while True:
        uid = "".join(random.choice(alphabet) for _ in range(7))
        if uid not in users:
            return uid


def register_user(
    users,
    email: str,
    name: str,
    password: str,
    gender: str | None = None,
    *,
    user_id: str | None = None,
    role: str | None = None,
) -> User:
    """Add a new account to ``users`` and return it.

    The first account ever registered becomes an administrator.
    """
    email = normalize_email(email)
    name = (name or "").strip()
    if not name:
        raise ValueError("Name required")
    if not password:
        raise ValueError("Password required")
    for u in users.values():
        if u.email == email:
            raise ValueError("Email already registered")
        if u.name == name:
            raise ValueError("Name already taken")
    if user_id is None:
        user_id = _next_user_id(users)
    elif user_id in users:
        raise ValueError("User already exists")
    if role is None:
        role = ROLE_USER if users else ROLE_ADMIN
    if role not in ROLES:
        raise ValueError("Invalid role")
    user = User(
        user_id=user_id,
        email=email,
        name=name,
        password_hash=hash_password(password),
        gender=normalize_gender(gender),
        role=role,
    )
    users[user_id] = user
    return user


def resolve_user(users, identifier: str) -> User | None:
    """Return the User matching the given id, email or name."""
    user = users.get(identifier)
    if not user:
        for u in users.values():
            if u.email == identifier.strip().lower() or u.name == identifier:
                user = u
                break
    return user


def print_leaderboard(entries) -> None:
    for rank, e in enumerate(entries, start=1):
        print(
            f"{rank:>3} {e.name}: {e.total_points} pts, "
            f"{e.wins}/{e.losses} ({e.win_rate:.1f}%), {e.total_matches} matches"
        )


def main(argv=None):
    parser = argparse.ArgumentParser(description='Tennis club statistics CLI')
    sub = parser.add_subparsers(dest='cmd')

    reg = sub.add_parser('register_user')
    reg.add_argument('email')
    reg.add_argument('name')
    reg.add_argument('password')
    reg.add_argument('--gender', choices=GENDERS)
    reg.add_argument('--admin', action='store_true')

    role = sub.add_parser('set_role')
    role.add_argument('email')
    role.add_argument('role', choices=ROLES)

    board = sub.add_parser('leaderboard')
    board.add_argument('--month', help='YYYY-MM, defaults to the current month')
    board.add_argument('--ranking', choices=['points', 'win_rate'])
    board.add_argument('--all', action='store_true', help='include members without matches')

    stats = sub.add_parser('stats')
    stats.add_argument('email')
    stats.add_argument('--month')

    sub.add_parser('recompute')

    args = parser.parse_args(argv)
    users = load_users()

    if args.cmd == 'register_user':
        user = register_user(
            users,
            args.email,
            args.name,
            args.password,
            args.gender,
            role=ROLE_ADMIN if args.admin else None,
        )
        with transaction() as conn:
            create_user(user, conn=conn)
        print(f"Registered {user.user_id}")
    elif args.cmd == 'set_role':
        user = get_user_by_email(args.email)
        if not user:
            parser.error("User not found")
        user.role = args.role
        save_user(user)
        print(f"{user.email} is now {user.role}")
    elif args.cmd == 'leaderboard':
        try:
            start, end = window_for(args.month)
            strategy = resolve_strategy(args.ranking, get_leaderboard_ranking())
        except ValueError as e:
            parser.error(str(e))
        entries = leaderboard(
            list_matches(start, end),
            users,
            start,
            end,
            strategy=strategy,
            include_inactive=args.all,
            count_draws=get_count_draws(),
        )
        print_leaderboard(entries)
    elif args.cmd == 'stats':
        user = get_user_by_email(args.email)
        if not user:
            parser.error("User not found")
        try:
            start, end = window_for(args.month)
        except ValueError as e:
            parser.error(str(e))
        data = personal_stats(
            list_matches(start, end, user_id=user.user_id),
            users,
            user.user_id,
            start,
            end,
            count_draws=get_count_draws(),
        )
        s = data["summary"]
        print(f"{s['name']}: {s['total_matches']} matches, {s['wins']} won, {s['win_rate']}%, {s['total_points']} pts")
        for row in data["matches"]:
            print(f"  {row['match_date']} {row['points']}-{row['opponent_points']} {row['result']}")
    elif args.cmd == 'recompute':
        from .services.users import recompute_counters

        updated = recompute_counters()
        print(f"Updated {updated} users at {datetime.datetime.now():%Y-%m-%d %H:%M}")
    else:
        parser.print_help()


if __name__ == '__main__':
    main()
