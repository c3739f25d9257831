import csv
import datetime
import re
import sys
from pathlib import Path

from tennisclub import cli, scoring, storage
from tennisclub.models import Match, MATCH_TYPES

DEFAULT_PASSWORD = "changeme"

# "7-6(7-4)" -> set 7-6 with a 7-4 tiebreak
SET_RE = re.compile(r"^(\d+)-(\d+)(?:\((\d+)-(\d+)\))?$")


def parse_csv(path: str):
    """Return (user_rows, match_rows) from the csv file.

    Users come first (``email,name,gender``), then a blank line, then matches
    (``date,type,side_a,side_b,score``). Doubles sides are written ``a/b``.
    """
    user_rows = []
    match_rows = []
    with open(path, newline="", encoding="utf-8") as f:
        reader = csv.reader(f)
        section = "users"
        for row in reader:
            if not row or not row[0].strip():
                section = "matches"
                continue
            if section == "users":
                if row[0] == "email":
                    continue
                user_rows.append(row)
            else:
                if row[0] == "date":
                    continue
                match_rows.append(row)
    return user_rows, match_rows


def parse_score(score: str):
    """Turn ``"6-4 7-6(7-5)"`` into raw set mappings."""
    sets = []
    for part in score.split():
        m = SET_RE.match(part)
        if not m:
            raise ValueError(f"Bad set '{part}'")
        raw = {"player1_score": int(m.group(1)), "player2_score": int(m.group(2))}
        if m.group(3) is not None:
            raw["tiebreak"] = {"player1_score": int(m.group(3)), "player2_score": int(m.group(4))}
        sets.append(raw)
    return sets


def main(csv_path="matches.csv", password=DEFAULT_PASSWORD):
    users = storage.load_users()
    by_name = {u.name: u for u in users.values()}

    user_rows, match_rows = parse_csv(csv_path)

    for row in user_rows:
        email, name = row[0], row[1]
        gender = row[2] if len(row) > 2 else None
        if name in by_name or storage.get_user_by_email(email):
            continue
        try:
            user = cli.register_user(users, email, name, password, gender or None)
        except ValueError as e:
            print(f"skipping user {name}: {e}")
            continue
        with storage.transaction() as conn:
            storage.create_user(user, conn=conn)
        by_name[name] = user

    imported = 0
    for row in match_rows:
        date_str, match_type, side_a, side_b, score = row[:5]
        try:
            date = datetime.datetime.strptime(date_str.split()[0], "%Y-%m-%d").date()
        except ValueError:
            date = datetime.date.today()
        if match_type not in MATCH_TYPES:
            print(f"skipping {date_str}: unknown type {match_type}")
            continue
        try:
            a_ids = [by_name[n.strip()].user_id for n in side_a.split("/")]
            b_ids = [by_name[n.strip()].user_id for n in side_b.split("/")]
        except KeyError as e:
            print(f"skipping {date_str}: unknown player {e}")
            continue
        a_ids.append(None)
        b_ids.append(None)
        try:
            scoring.validate_participants(match_type, a_ids[0], b_ids[0], a_ids[1], b_ids[1])
            sets = scoring.parse_sets(parse_score(score), match_type)
        except ValueError as e:
            print(f"skipping {date_str}: {e}")
            continue
        match = Match(
            match_date=date,
            match_type=match_type,
            player1_id=a_ids[0],
            player2_id=b_ids[0],
            teammate_id=a_ids[1],
            opponent2_id=b_ids[1],
            sets=sets,
            created_by=a_ids[0],
        )
        scoring.apply_totals(match)
        storage.create_match(match)
        imported += 1

    print(f"Imported {imported} matches")


if __name__ == "__main__":
    path = sys.argv[1] if len(sys.argv) > 1 else "matches.csv"
    if not Path(path).exists():
        print(f"CSV file '{path}' not found")
    else:
        main(path)
