#!/usr/bin/env python3
"""
Seed the doctors collection with the default roster.

Usage (from the backend directory):
    python -m scripts.seed_doctors
"""

import sys

from config.logging_config import configure_logging, get_logger
from database.database import get_store
from services.errors import StoreError

logger = get_logger(__name__)

DEFAULT_DOCTORS = [
    {"doctor_id": "alice-smith", "doctor_name": "Dr. Alice Smith"},
    {"doctor_id": "john-doe", "doctor_name": "Dr. John Doe"},
    {"doctor_id": "emily-johnson", "doctor_name": "Dr. Emily Johnson"},
    {"doctor_id": "michael-lee", "doctor_name": "Dr. Michael Lee"},
    {"doctor_id": "priya-patel", "doctor_name": "Dr. Priya Patel"},
]


def main() -> int:
    """Upsert the default doctors; existing rows keep their other columns."""
    configure_logging()
    store = get_store()

    try:
        for doctor in DEFAULT_DOCTORS:
            store.upsert_doctor(doctor)
            logger.info("Doctor seeded", **doctor)
    except StoreError as e:
        logger.error("Seeding failed", error=e.message, detail=e.detail)
        return 1

    print(f"✅ Seeded {len(DEFAULT_DOCTORS)} doctors")
    return 0


if __name__ == "__main__":
    sys.exit(main())
