"""
Pydantic models for API request/response validation.

Store rows are plain dicts; these models describe what crosses the HTTP
boundary. Field names follow the store columns, except for the analyze
request which keeps the camelCase keys the browser client sends.
"""

import math
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

Number = int | float
RatingInput = str | int | float | None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _lenient_number(value: Any) -> Any:
    """Blank or non-numeric strings read back from the store become None."""
    if isinstance(value, str):
        try:
            number = float(value)
        except ValueError:
            return None
        if not math.isfinite(number):
            return None
        return int(number) if number.is_integer() else number
    return value


# ============================================================================
# Relay
# ============================================================================

class AnalyzeRequest(BaseModel):
    """
    Transcript plus light metadata forwarded to the language model.

    Blank transcripts are accepted here and rejected by the service with a
    400, so the error shape matches the other relay failures.
    """
    model_config = ConfigDict(populate_by_name=True)

    transcript: str | None = Field(default="", description="Visit transcript text")
    cause: str | None = Field(default="", description="Visit title or reason")
    doctor_name: str | None = Field(default="", alias="doctorName", description="Doctor display name")
    user_rating: RatingInput = Field(default="", alias="userRating", description="Patient rating (0-10)")

    @field_validator("cause", "doctor_name", mode="before")
    @classmethod
    def scalars_as_text(cls, v: Any) -> Any:
        """Numbers and booleans are interpolated into the prompt as text."""
        if isinstance(v, bool):
            return "true" if v else "false"
        if isinstance(v, float) and v.is_integer():
            return str(int(v))
        if isinstance(v, (int, float)):
            return str(v)
        return v


class AnalyzeResponse(BaseModel):
    """
    Bias score and short review returned by the relay.

    Attributes:
        score: Bias score (0-10) or None when the reply could not be parsed.
        review: Visit summary, or the raw model text on parse failure.
    """
    score: Number | None = Field(default=None, description="Bias score")
    review: str = Field(default="", description="Review text")


# ============================================================================
# Entities
# ============================================================================

class Doctor(BaseModel):
    """A doctor row; seeded outside the application."""
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    doctor_id: str = Field(..., description="Doctor identifier")
    doctor_name: str = Field(default="", description="Doctor display name")
    avg_rating: Number | None = Field(default=None, description="Precomputed average rating")


class LocalProfile(BaseModel):
    """
    Profile as the browser keeps it in local storage.

    Numbers arrive as strings and blanks mean "not set"; see
    ``services.profile_service.normalize_profile``.
    """
    model_config = ConfigDict(extra="ignore")

    name: str | None = None
    patient_name: str | None = None
    age: RatingInput = None
    gender: str | None = None
    weight: RatingInput = None
    race: str | None = None


class UserProfile(BaseModel):
    """A stored user row."""
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    user_id: str = Field(..., description="Device-scoped user identifier")
    patient_name: str | None = None
    age: Number | None = None
    gender: str | None = None
    weight: Number | None = None
    race: str | None = None

    @field_validator("age", "weight", mode="before")
    @classmethod
    def coerce_numbers(cls, v: Any) -> Any:
        return _lenient_number(v)


class TranscriptRecord(BaseModel):
    """A stored transcript row with its denormalised demographic snapshot."""
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    transcript_identifier: str | None = None
    user_id: str
    doctor_id: str | None = None
    doctor_name: str | None = None
    transcript: str = ""
    user_rating: Number | None = None
    bias_rating: Number | None = None
    patient_name: str | None = None
    age: Number | None = None
    gender: str | None = None
    race: str | None = None
    weight: Number | None = None
    cause: str | None = None
    date: str | None = None

    @field_validator("user_rating", "bias_rating", "age", "weight", mode="before")
    @classmethod
    def coerce_numbers(cls, v: Any) -> Any:
        return _lenient_number(v)


# ============================================================================
# Submission
# ============================================================================

class TranscriptSubmission(BaseModel):
    """
    A patient's visit submission.

    Attributes:
        transcript: Visit transcript text; must be non-blank.
        doctor_id: Selected doctor, or None when unassigned.
        cause: Visit title or reason.
        user_rating: Patient rating; clamped to [0, 10] before storing.
        user_id: Device-scoped id; generated when omitted.
        profile: Demographics from the locally stored profile.
    """
    transcript: str = Field(default="", description="Visit transcript text")
    doctor_id: str | None = Field(default=None, description="Selected doctor id")
    cause: str | None = Field(default="", description="Visit title or reason")
    user_rating: RatingInput = Field(default=None, description="Patient rating (0-10)")
    user_id: str | None = Field(default=None, description="Device-scoped user id")
    profile: LocalProfile = Field(default_factory=LocalProfile, description="Local profile snapshot")


class SubmissionResult(BaseModel):
    """Outcome of a successful submission."""
    user_id: str = Field(..., description="User id the transcript was filed under")
    transcript: TranscriptRecord = Field(..., description="Stored transcript row")


# ============================================================================
# Aggregation
# ============================================================================

class DoctorStats(BaseModel):
    """Per-doctor rollup over transcripts."""
    doctor_id: str = Field(..., description="Doctor identifier")
    doctor_name: str | None = Field(default=None, description="Doctor display name")
    transcript_count: int = Field(default=0, ge=0)
    avg_user_rating: float | None = None
    avg_bias_rating: float | None = None
    unique_patients: int = Field(default=0, ge=0)
    this_month: int = Field(default=0, ge=0)


class GenderStats(BaseModel):
    gender: str
    count: int = Field(default=0, ge=0)
    avg_age: float | None = None


class RaceStats(BaseModel):
    race: str
    count: int = Field(default=0, ge=0)
    avg_bias_rating: float | None = None


class DashboardSummary(BaseModel):
    """
    Admin dashboard statistics computed from the full row sets.

    ``sum(d.transcript_count for d in doctors) + unassigned_transcripts``
    always equals ``total_transcripts``.
    """
    total_transcripts: int = Field(default=0, ge=0)
    unassigned_transcripts: int = Field(default=0, ge=0)
    avg_user_rating: float | None = None
    avg_bias_rating: float | None = None
    doctors: list[DoctorStats] = Field(default_factory=list)
    genders: list[GenderStats] = Field(default_factory=list)
    races: list[RaceStats] = Field(default_factory=list)
    recent: list[TranscriptRecord] = Field(default_factory=list)
    generated_at: datetime = Field(default_factory=_utcnow)


class DoctorDetail(BaseModel):
    """A doctor with their transcripts, newest first."""
    doctor: Doctor
    computed_rating: float | None = None
    total_patients: int = Field(default=0, ge=0)
    unique_patients: int = Field(default=0, ge=0)
    this_month: int = Field(default=0, ge=0)
    transcripts: list[TranscriptRecord] = Field(default_factory=list)


# ============================================================================
# Operational
# ============================================================================

class HealthStatus(str, Enum):
    """System health status levels."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class HealthResponse(BaseModel):
    """
    Health check response for monitoring.

    Attributes:
        status: Overall system health status.
        version: Application version.
        environment: Deployment environment.
        checks: Individual component health checks.
    """
    status: HealthStatus = Field(..., description="Overall health status")
    version: str = Field(..., description="Application version")
    environment: str = Field(..., description="Deployment environment")
    timestamp: datetime = Field(default_factory=_utcnow, description="Check timestamp")
    checks: dict[str, bool] = Field(default_factory=dict, description="Component health checks")


class ErrorResponse(BaseModel):
    """
    Error body returned for every handled failure.

    Attributes:
        error: Short error message.
        detail: Upstream body or extra context, when available.
    """
    error: str = Field(..., description="Error message")
    detail: Any = Field(default=None, description="Additional details")
