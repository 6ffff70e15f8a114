"""Tests for profile normalisation and persistence."""

import pytest

from conftest import FakeStore
from models.models import LocalProfile
from services.errors import NotFoundError
from services.profile_service import ProfileService, normalize_profile


def test_normalize_accepts_either_name_key():
    assert normalize_profile({"name": " Jordan "}) == {"patient_name": "Jordan"}
    assert normalize_profile({"patient_name": "Sam"}) == {"patient_name": "Sam"}


def test_normalize_parses_numbers_and_drops_blanks():
    profile = {"name": "", "age": "29", "gender": "  ", "weight": "62.5", "race": "", "savedAt": "2026-10-01"}

    assert normalize_profile(profile) == {"age": 29, "weight": 62.5}


def test_normalize_drops_unparseable_numbers():
    assert normalize_profile({"age": "twenty", "weight": ""}) == {}


def test_normalize_empty():
    assert normalize_profile(None) == {}
    assert normalize_profile(LocalProfile()) == {}


class TestProfileService:

    def test_save_does_not_clear_existing_fields(self):
        store = FakeStore(users=[{"user_id": "u1", "race": "Asian", "age": 40}])
        service = ProfileService(store)

        profile = service.save_profile("u1", LocalProfile(age="41", race=""))

        assert profile.age == 41
        assert profile.race == "Asian"

    def test_get_missing_user(self):
        with pytest.raises(NotFoundError):
            ProfileService(FakeStore()).get_profile("nobody")
