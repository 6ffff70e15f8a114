"""Shared fixtures: an in-memory store and an API client wired to it."""

import copy
from contextlib import contextmanager

import httpx
import pytest
from fastapi.testclient import TestClient

from config.config import Settings, get_settings
from database.database import get_store
from main import create_app
from services.analyze_service import AnalyzeService, get_analyze_service
from services.errors import StoreError


class FakeStore:
    """Dict-backed stand-in for ``EquiCareStore``."""

    def __init__(self, doctors=None, users=None, transcripts=None):
        self.doctors = {d["doctor_id"]: dict(d) for d in doctors or []}
        self.users = {u["user_id"]: dict(u) for u in users or []}
        self.transcripts = [dict(t) for t in transcripts or []]
        self.fail_insert = False
        self.upserts = []

    def list_doctors(self):
        return sorted((dict(d) for d in self.doctors.values()), key=lambda d: d["doctor_name"])

    def get_doctor(self, doctor_id):
        doctor = self.doctors.get(doctor_id)
        return dict(doctor) if doctor else None

    def upsert_doctor(self, row):
        self.doctors.setdefault(row["doctor_id"], {}).update(row)
        return dict(self.doctors[row["doctor_id"]])

    def list_transcripts(self, doctor_id=None):
        rows = [dict(t) for t in self.transcripts]
        if doctor_id is not None:
            rows = [t for t in rows if t.get("doctor_id") == doctor_id]
        return sorted(rows, key=lambda t: t.get("date") or "", reverse=True)

    def get_user(self, user_id):
        user = self.users.get(user_id)
        return dict(user) if user else None

    def upsert_user(self, row):
        self.upserts.append(dict(row))
        self.users.setdefault(row["user_id"], {}).update(row)
        return dict(self.users[row["user_id"]])

    def insert_transcript(self, row):
        if self.fail_insert:
            raise StoreError("Insert into 'transcripts' failed", detail="constraint violation")
        self.transcripts.append(dict(row))
        return dict(row)

    @contextmanager
    def transaction(self):
        snapshot = copy.deepcopy((self.users, self.transcripts))
        try:
            yield self
        except BaseException:
            self.users, self.transcripts = snapshot
            raise


def anthropic_reply(text: str) -> dict:
    return {
        "id": "msg_test",
        "type": "message",
        "role": "assistant",
        "content": [{"type": "text", "text": text}],
    }


def isolated_settings() -> Settings:
    """Settings that ignore the developer's .env file and shell."""
    return Settings(
        _env_file=None,
        anthropic_api_key="test-key",
        anthropic_base_url="https://api.anthropic.com",
        anthropic_version="2023-06-01",
        llm_model="claude-3-haiku-20240307",
        llm_max_tokens=512,
        llm_timeout_seconds=None,
        cors_origins=["http://localhost:5173"],
    )


def make_analyze_service(handler) -> AnalyzeService:
    settings = isolated_settings()
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return AnalyzeService(settings=settings, client=client)


@pytest.fixture
def store() -> FakeStore:
    return FakeStore(
        doctors=[
            {"doctor_id": "d1", "doctor_name": "Dr. Alice Smith"},
            {"doctor_id": "d2", "doctor_name": "Dr. John Doe"},
        ]
    )


@pytest.fixture
def app(store):
    settings = isolated_settings()
    application = create_app(settings)
    application.dependency_overrides[get_settings] = lambda: settings
    application.dependency_overrides[get_store] = lambda: store
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)
