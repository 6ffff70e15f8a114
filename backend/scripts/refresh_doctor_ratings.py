#!/usr/bin/env python3
"""
Recompute each doctor's stored average rating from their transcripts.

Runs one grouped AQL query in the database instead of pulling every
transcript into the application.

Usage (from the backend directory):
    python -m scripts.refresh_doctor_ratings
"""

import sys

from config.logging_config import configure_logging, get_logger
from database.database import get_store
from services.errors import StoreError

logger = get_logger(__name__)


def main() -> int:
    configure_logging()
    try:
        updated = get_store().refresh_doctor_ratings()
    except StoreError as e:
        logger.error("Rating refresh failed", error=e.message, detail=e.detail)
        return 1

    print(f"✅ Refreshed average rating for {updated} doctors")
    return 0


if __name__ == "__main__":
    sys.exit(main())
