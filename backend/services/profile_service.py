"""
Patient profile normalisation and best-effort remote persistence.

The browser's local profile is authoritative for the submission form; the
``users`` row is a copy kept so transcripts have something to reference.
"""

from typing import Any

from config.logging_config import get_logger
from models.models import LocalProfile, UserProfile
from services.aggregation import to_number
from services.errors import NotFoundError

logger = get_logger(__name__)

PROFILE_FIELDS = ("patient_name", "age", "gender", "weight", "race")


def _clean_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _clean_number(value: Any) -> int | float | None:
    number = to_number(value)
    if number is None:
        return None
    return int(number) if number.is_integer() else number


def normalize_profile(profile: LocalProfile | dict[str, Any] | None) -> dict[str, Any]:
    """
    Turn a locally stored profile into user columns.

    Accepts ``name`` or ``patient_name``, numeric strings for age and
    weight, and drops every blank or unparseable value. Only known
    columns are returned.
    """
    if profile is None:
        return {}
    if isinstance(profile, dict):
        profile = LocalProfile.model_validate(profile)

    values = {
        "patient_name": _clean_text(profile.name) or _clean_text(profile.patient_name),
        "age": _clean_number(profile.age),
        "gender": _clean_text(profile.gender),
        "weight": _clean_number(profile.weight),
        "race": _clean_text(profile.race),
    }
    return {k: v for k, v in values.items() if v is not None}


class ProfileService:
    """Reads and upserts ``users`` rows through the store."""

    def __init__(self, store):
        self.store = store

    def get_profile(self, user_id: str) -> UserProfile:
        row = self.store.get_user(user_id)
        if row is None:
            raise NotFoundError(f"User '{user_id}' not found")
        return UserProfile(**row)

    def save_profile(self, user_id: str, profile: LocalProfile) -> UserProfile:
        """Upsert the non-empty profile fields; existing columns are kept."""
        fields = normalize_profile(profile)
        row = self.store.upsert_user({"user_id": user_id, **fields})
        logger.info("Profile saved", user_id=user_id, fields=sorted(fields))
        return UserProfile(**row)
