"""
Admin dashboard and doctor detail views.

Each call reads the full row sets from the store and aggregates them in
memory; see ``services.aggregation``.
"""

from datetime import datetime

from config.logging_config import get_logger
from models.models import DashboardSummary, Doctor, DoctorDetail
from services.aggregation import build_dashboard, build_doctor_detail
from services.errors import NotFoundError

logger = get_logger(__name__)


class DashboardService:

    def __init__(self, store):
        self.store = store

    def list_doctors(self) -> list[Doctor]:
        return [Doctor(**row) for row in self.store.list_doctors()]

    def summary(self, now: datetime | None = None) -> DashboardSummary:
        doctors = self.store.list_doctors()
        transcripts = self.store.list_transcripts()
        summary = build_dashboard(doctors, transcripts, now=now)
        logger.info(
            "Dashboard computed",
            doctors=len(doctors),
            transcripts=summary.total_transcripts,
            unassigned=summary.unassigned_transcripts,
        )
        return summary

    def doctor_detail(self, doctor_id: str, now: datetime | None = None) -> DoctorDetail:
        doctor = self.store.get_doctor(doctor_id)
        if doctor is None:
            raise NotFoundError(f"Doctor '{doctor_id}' not found")
        transcripts = self.store.list_transcripts(doctor_id=doctor_id)
        return build_doctor_detail(doctor, transcripts, now=now)
