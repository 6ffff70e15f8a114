"""
Patient transcript submission.

The user upsert, the read-back and the transcript insert share one store
transaction: if the insert fails the user row is rolled back with it.
"""

from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from config.logging_config import get_logger
from models.models import SubmissionResult, TranscriptRecord, TranscriptSubmission
from services.aggregation import to_number
from services.errors import MissingTranscriptError
from services.profile_service import PROFILE_FIELDS, normalize_profile

logger = get_logger(__name__)

RATING_MIN = 0
RATING_MAX = 10


def clamp_rating(value: Any) -> int | float | None:
    """Clamp a rating to [0, 10]; non-numeric input gives None."""
    number = to_number(value)
    if number is None:
        return None
    clamped = max(RATING_MIN, min(RATING_MAX, number))
    return int(clamped) if float(clamped).is_integer() else clamped


def build_transcript_row(
    user_id: str,
    text: str,
    doctor_id: str | None,
    doctor_name: str | None,
    demographics: dict[str, Any],
    cause: str | None,
    user_rating: Any,
    now: datetime | None = None,
) -> dict[str, Any]:
    """
    Assemble the transcript row.

    Demographic columns, ``cause`` and ``user_rating`` are only present
    when they have a value.
    """
    now = now or datetime.now(timezone.utc)
    row: dict[str, Any] = {
        "transcript_identifier": str(uuid4()),
        "user_id": user_id,
        "doctor_id": doctor_id or None,
        "doctor_name": doctor_name,
        "transcript": text,
        "date": now.isoformat(),
    }
    for field in PROFILE_FIELDS:
        if demographics.get(field) is not None:
            row[field] = demographics[field]

    cause_clean = (cause or "").strip()
    if cause_clean:
        row["cause"] = cause_clean

    rating = clamp_rating(user_rating)
    if rating is not None:
        row["user_rating"] = rating

    return row


class SubmissionService:
    """Files a visit transcript under a device-scoped user."""

    def __init__(self, store):
        self.store = store

    def submit(self, submission: TranscriptSubmission) -> SubmissionResult:
        """
        Upsert the user, fill profile gaps from the stored row, then insert
        the transcript.

        Raises:
            MissingTranscriptError: transcript text is blank.
            StoreError: any store step failed; nothing was written.
        """
        text = submission.transcript.strip()
        if not text:
            raise MissingTranscriptError()

        user_id = submission.user_id or str(uuid4())
        demographics = normalize_profile(submission.profile)

        with self.store.transaction() as txn:
            txn.upsert_user({"user_id": user_id, **demographics})

            missing = [f for f in PROFILE_FIELDS if f not in demographics]
            if missing:
                stored = txn.get_user(user_id) or {}
                for field in missing:
                    if stored.get(field) is not None:
                        demographics[field] = stored[field]

            doctor_name = None
            if submission.doctor_id:
                doctor = txn.get_doctor(submission.doctor_id)
                doctor_name = doctor.get("doctor_name") if doctor else None

            row = build_transcript_row(
                user_id=user_id,
                text=text,
                doctor_id=submission.doctor_id,
                doctor_name=doctor_name,
                demographics=demographics,
                cause=submission.cause,
                user_rating=submission.user_rating,
            )
            stored_row = txn.insert_transcript(row)

        logger.info(
            "Transcript submitted",
            user_id=user_id,
            doctor_id=row["doctor_id"],
            transcript_identifier=row["transcript_identifier"],
            user_rating=row.get("user_rating"),
        )
        return SubmissionResult(user_id=user_id, transcript=TranscriptRecord(**stored_row))
