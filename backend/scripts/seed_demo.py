"""CLI script to load demo users and their progress into the backend DB.
Usage: python scripts/seed_demo.py [--reset] [--password PASSWORD]
"""
import sys
import argparse
import pathlib
# Ensure `backend/` is on sys.path so `studyhub` imports work when running this script directly
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
from sqlmodel import Session
from studyhub import errors, services
from studyhub.database import create_db_and_tables, drop_db_and_tables, engine

DEMO_USERS = [
    ("Bruno Gomes", "bruno@example.com", "Focado em Medicina", 120.5, 1500),
    ("Juliana Lima", "juliana@example.com", "Concurseira Fiscal", 115.75, 1420),
    ("Carlos Souza", "carlos@example.com", "Estudando para OAB", 112.2, 1350),
    ("Mariana Costa", "mariana@example.com", "Vestibulanda", 108.9, 1100),
    ("Lucas Martins", "lucas@example.com", "Dev Fullstack", 105.3, 980),
]


def main(reset: bool = False, password: str = "demo"):
    """Create the demo users, credit their hours/points and print the leaderboard.

    Users that already exist are skipped so the script can be re-run.
    """
    if reset:
        drop_db_and_tables()
    create_db_and_tables()
    with Session(engine) as session:
        auth = services.AuthService(session)
        progress = services.ProgressService(session)
        created = 0
        for name, email, bio, hours, points in DEMO_USERS:
            try:
                user = auth.register(name, email, password)
            except errors.Conflict:
                print(f'Skipping existing user {email}')
                continue
            user.bio = bio
            session.add(user)
            session.commit()
            progress.apply_delta(user.id, hours, points)
            created += 1
        print(f'Created demo users: {created}')
        for entry in services.RankingService(session).compute_ranking('points'):
            print(f"{entry['rank']:>2}. {entry['user']['name']:<16} {entry['points']:>6} pts  {entry['hours_display']}")


if __name__ == '__main__':
    parser = argparse.ArgumentParser()
    parser.add_argument('--reset', action='store_true', help='Drop all tables before seeding')
    parser.add_argument('--password', default='demo', help='Password assigned to every demo user')
    args = parser.parse_args()
    main(reset=args.reset, password=args.password)
