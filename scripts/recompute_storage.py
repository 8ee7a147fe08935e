"""Rebuild every user's storage counter from the sizes of their documents.

Safe to run at any time; running it twice gives the same result.
Usage: python -m scripts.recompute_storage
"""
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.db.database import SessionLocal, engine, Base
from app.models import *  # noqa: F401, F403
from app.services.quota_service import recompute_storage_usage


def main():
    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        updated = recompute_storage_usage(db)
        print(f"Recomputed storage for {updated} users.")
    except Exception as e:
        db.rollback()
        print(f"Storage recompute failed: {e}")
        raise
    finally:
        db.close()


if __name__ == "__main__":
    main()
