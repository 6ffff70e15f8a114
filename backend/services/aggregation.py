"""
In-memory rollups over doctor and transcript rows.

All functions are pure: they take the row dicts returned by the store and a
reference time, and return response models. Means over empty sets are
``None``; values that are missing or not numeric are left out of a mean.
"""

import math
import re
from collections import defaultdict
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any

from models.models import (
    DashboardSummary,
    Doctor,
    DoctorDetail,
    DoctorStats,
    GenderStats,
    RaceStats,
    TranscriptRecord,
)

Row = dict[str, Any]

UNSPECIFIED = "unspecified"
_EPOCH = datetime.min.replace(tzinfo=timezone.utc)
_FRACTION = re.compile(r"(\d{2}:\d{2}:\d{2})\.(\d+)")


def to_number(value: Any) -> float | None:
    """Coerce ints, floats and numeric strings; everything else is None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def mean(values: Iterable[Any]) -> float | None:
    """Arithmetic mean of the numeric values, or None if there are none."""
    numbers = [n for n in (to_number(v) for v in values) if n is not None]
    if not numbers:
        return None
    return sum(numbers) / len(numbers)


def parse_date(value: Any) -> datetime | None:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        # fromisoformat on 3.10 only takes 3 or 6 fractional digits
        text = _FRACTION.sub(lambda m: f"{m.group(1)}.{(m.group(2) + '000000')[:6]}", text, count=1)
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def is_same_month(value: Any, now: datetime) -> bool:
    parsed = parse_date(value)
    if parsed is None:
        return False
    parsed = parsed.astimezone(now.tzinfo or timezone.utc)
    return parsed.year == now.year and parsed.month == now.month


def _group_key(value: Any) -> str:
    if value is None:
        return UNSPECIFIED
    text = str(value).strip().lower()
    return text or UNSPECIFIED


def newest_first(rows: Iterable[Row]) -> list[Row]:
    """Sort rows by ``date`` descending; undated rows go last."""
    return sorted(rows, key=lambda r: parse_date(r.get("date")) or _EPOCH, reverse=True)


def summarize_doctor(
    doctor_id: str,
    doctor_name: str | None,
    rows: list[Row],
    now: datetime,
) -> DoctorStats:
    return DoctorStats(
        doctor_id=doctor_id,
        doctor_name=doctor_name,
        transcript_count=len(rows),
        avg_user_rating=mean(r.get("user_rating") for r in rows),
        avg_bias_rating=mean(r.get("bias_rating") for r in rows),
        unique_patients=len({r.get("user_id") for r in rows if r.get("user_id")}),
        this_month=sum(1 for r in rows if is_same_month(r.get("date"), now)),
    )


def doctor_breakdown(
    doctors: list[Row],
    transcripts: list[Row],
    now: datetime,
) -> tuple[list[DoctorStats], int]:
    """
    Per-doctor stats plus the count of unassigned transcripts.

    Every known doctor appears, with zero counts if they have no
    transcripts. Transcripts pointing at an unknown doctor id get a group of
    their own, named from the denormalised ``doctor_name``.
    """
    grouped: dict[str, list[Row]] = defaultdict(list)
    unassigned = 0
    for row in transcripts:
        doctor_id = row.get("doctor_id")
        if not doctor_id:
            unassigned += 1
            continue
        grouped[str(doctor_id)].append(row)

    stats = []
    known = set()
    for doctor in doctors:
        doctor_id = str(doctor["doctor_id"])
        known.add(doctor_id)
        stats.append(summarize_doctor(doctor_id, doctor.get("doctor_name"), grouped.get(doctor_id, []), now))

    for doctor_id, rows in grouped.items():
        if doctor_id in known:
            continue
        name = next((r.get("doctor_name") for r in rows if r.get("doctor_name")), None)
        stats.append(summarize_doctor(doctor_id, name, rows, now))

    return stats, unassigned


def gender_breakdown(transcripts: list[Row]) -> list[GenderStats]:
    grouped: dict[str, list[Row]] = defaultdict(list)
    for row in transcripts:
        grouped[_group_key(row.get("gender"))].append(row)
    return [
        GenderStats(gender=gender, count=len(rows), avg_age=mean(r.get("age") for r in rows))
        for gender, rows in sorted(grouped.items())
    ]


def race_breakdown(transcripts: list[Row]) -> list[RaceStats]:
    grouped: dict[str, list[Row]] = defaultdict(list)
    for row in transcripts:
        grouped[_group_key(row.get("race"))].append(row)
    return [
        RaceStats(race=race, count=len(rows), avg_bias_rating=mean(r.get("bias_rating") for r in rows))
        for race, rows in sorted(grouped.items())
    ]


def build_dashboard(
    doctors: list[Row],
    transcripts: list[Row],
    now: datetime | None = None,
    recent_limit: int = 10,
) -> DashboardSummary:
    """Compute the admin dashboard from full doctor and transcript row sets."""
    now = now or datetime.now(timezone.utc)
    doctor_stats, unassigned = doctor_breakdown(doctors, transcripts, now)
    return DashboardSummary(
        total_transcripts=len(transcripts),
        unassigned_transcripts=unassigned,
        avg_user_rating=mean(r.get("user_rating") for r in transcripts),
        avg_bias_rating=mean(r.get("bias_rating") for r in transcripts),
        doctors=doctor_stats,
        genders=gender_breakdown(transcripts),
        races=race_breakdown(transcripts),
        recent=[TranscriptRecord(**r) for r in newest_first(transcripts)[:recent_limit]],
        generated_at=now,
    )


def build_doctor_detail(
    doctor: Row,
    transcripts: list[Row],
    now: datetime | None = None,
) -> DoctorDetail:
    """Stats and newest-first transcript list for one doctor."""
    now = now or datetime.now(timezone.utc)
    stats = summarize_doctor(str(doctor["doctor_id"]), doctor.get("doctor_name"), transcripts, now)
    return DoctorDetail(
        doctor=Doctor(**doctor),
        computed_rating=stats.avg_user_rating,
        total_patients=stats.transcript_count,
        unique_patients=stats.unique_patients,
        this_month=stats.this_month,
        transcripts=[TranscriptRecord(**r) for r in newest_first(transcripts)],
    )
