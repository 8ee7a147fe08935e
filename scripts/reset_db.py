"""Delete every row from the database. Development only.

Usage:
  python -m scripts.reset_db            # asks for confirmation
  python -m scripts.reset_db --yes      # no prompt
"""
import argparse
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.core.config import settings
from app.db.database import Base, engine, session_scope
from app.models import *  # noqa: F401, F403


def reset(confirm: bool = False) -> bool:
    if settings.environment == "production":
        print("Refusing to reset a production database.")
        return False

    if not confirm:
        answer = input(f"Delete ALL data in {settings.database_url}? [y/N] ")
        if answer.strip().lower() != "y":
            print("Aborted.")
            return False

    Base.metadata.create_all(bind=engine)
    with session_scope() as db:
        # Children before parents
        for table in reversed(Base.metadata.sorted_tables):
            deleted = db.execute(table.delete()).rowcount
            print(f"  {table.name}: {deleted} rows deleted")
    print("Database reset complete.")
    return True


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("--yes", action="store_true", help="skip the confirmation prompt")
    args = parser.parse_args()
    sys.exit(0 if reset(confirm=args.yes) else 1)
