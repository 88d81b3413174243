"""Tests for the Firestore client using a mocked Firestore SDK."""

from datetime import date, datetime
from unittest.mock import MagicMock, patch

import pytest
from google.api_core import exceptions as gcp_exceptions

from fitledger.core.errors import PersistenceError
from fitledger.core.ledger import add_entry, new_day
from fitledger.core.models import FoodEntry, Goal, GoalType, UserProfile
from fitledger.shell.firestore_client import FirestoreConfig, FitnessFirestoreClient


@pytest.fixture
def mock_firestore():
    """Mock Firestore client for testing."""
    with patch("fitledger.shell.firestore_client.firestore") as mock_fs:
        mock_client = MagicMock()
        mock_fs.Client.return_value = mock_client
        yield mock_client


@pytest.fixture
def profile_ref(mock_firestore):
    return mock_firestore.collection.return_value.document.return_value


@pytest.fixture
def collection(profile_ref):
    return profile_ref.collection.return_value


@pytest.fixture
def db(mock_firestore):
    return FitnessFirestoreClient(FirestoreConfig(profile_id="me", max_retries=2, retry_delay_seconds=0))


def snapshot(data, doc_id="doc"):
    doc = MagicMock()
    doc.exists = data is not None
    doc.id = doc_id
    doc.to_dict.return_value = data
    return doc


class TestProfile:
    """Tests for profile reads and writes."""

    def test_missing_profile(self, db, profile_ref, mock_firestore):
        profile_ref.get.return_value = snapshot(None)

        assert db.get_profile() is None
        mock_firestore.collection.assert_called_with("profiles")
        mock_firestore.collection.return_value.document.assert_called_with("me")

    def test_profile_round_trip(self, db, profile_ref):
        profile = UserProfile(weight_kg=72.5, height_cm=170, age=41)
        profile_ref.get.return_value = snapshot(profile.model_dump(mode="json"))

        assert db.get_profile() == profile

    def test_save_profile_stamps_updated_at(self, db, profile_ref):
        db.save_profile(UserProfile(weight_kg=70))

        data = profile_ref.set.call_args[0][0]
        assert data["weight_kg"] == 70
        assert "updated_at" in data


class TestRetries:
    """Transient failures are retried; everything else becomes PersistenceError."""

    def test_transient_error_retried(self, db, profile_ref):
        profile = UserProfile(weight_kg=70)
        profile_ref.get.side_effect = [
            gcp_exceptions.ServiceUnavailable("unavailable"),
            snapshot(profile.model_dump(mode="json")),
        ]

        assert db.get_profile() == profile
        assert profile_ref.get.call_count == 2

    def test_retries_exhausted(self, db, profile_ref):
        profile_ref.get.side_effect = gcp_exceptions.DeadlineExceeded("slow")

        with pytest.raises(PersistenceError):
            db.get_profile()
        assert profile_ref.get.call_count == 3

    def test_non_transient_error_not_retried(self, db, profile_ref):
        profile_ref.get.side_effect = gcp_exceptions.PermissionDenied("denied")

        with pytest.raises(PersistenceError) as exc:
            db.get_profile()
        assert profile_ref.get.call_count == 1
        assert isinstance(exc.value.__cause__, gcp_exceptions.PermissionDenied)


class TestGoals:
    """Tests for goal persistence."""

    def test_save_active_goal_deactivates_others(self, db, collection):
        old = snapshot({"is_active": True}, doc_id="old")
        collection.where.return_value.stream.return_value = [old]
        goal = Goal(goal_type=GoalType.LOSE, weekly_rate_kg=-0.5)

        db.save_goal(goal)

        old.reference.update.assert_called_once_with({"is_active": False})
        collection.document.assert_called_with(goal.id)
        assert collection.document.return_value.set.call_args[0][0]["goal_type"] == "lose"

    def test_get_active_goal(self, db, collection):
        goal = Goal(goal_type=GoalType.GAIN, weekly_rate_kg=0.25)
        query = collection.where.return_value.limit.return_value
        query.stream.return_value = [snapshot(goal.model_dump(mode="json"))]

        assert db.get_active_goal() == goal
        collection.where.assert_called_with("is_active", "==", True)

    def test_no_active_goal(self, db, collection):
        collection.where.return_value.limit.return_value.stream.return_value = []
        assert db.get_active_goal() is None

    def test_list_goals_newest_first(self, db, collection):
        newer = Goal(goal_type=GoalType.GAIN, weekly_rate_kg=0.25, created_at=datetime(2024, 3, 10))
        older = Goal(goal_type=GoalType.LOSE, weekly_rate_kg=-0.5, created_at=datetime(2024, 2, 1))
        collection.order_by.return_value.stream.return_value = [
            snapshot(newer.model_dump(mode="json")),
            snapshot(older.model_dump(mode="json")),
        ]

        assert db.list_goals() == [newer, older]
        assert collection.order_by.call_args[0][0] == "created_at"


class TestDaysAndEntries:
    """Tests for day aggregates and raw entries."""

    def test_day_round_trip(self, db, collection):
        day = add_entry(new_day(date(2024, 3, 13)), FoodEntry(calories=500, timestamp=datetime(2024, 3, 13, 9)))
        collection.document.return_value.get.return_value = snapshot(day.model_dump(mode="json"))

        loaded = db.get_day(date(2024, 3, 13))

        assert loaded.total_calories == 500
        assert loaded.entries[0].id == day.entries[0].id
        collection.document.assert_called_with("2024-03-13")

    def test_save_entry_tags_date(self, db, collection):
        entry = FoodEntry(calories=500, timestamp=datetime(2024, 3, 13, 9))
        db.save_entry(entry)

        data = collection.document.return_value.set.call_args[0][0]
        assert data["entry_date"] == "2024-03-13"

    def test_entries_for_date(self, db, collection):
        entry = FoodEntry(calories=500, timestamp=datetime(2024, 3, 13, 9))
        data = entry.model_dump(mode="json")
        data["entry_date"] = "2024-03-13"
        collection.where.return_value.stream.return_value = [snapshot(data)]

        assert db.get_entries_for_date(date(2024, 3, 13)) == [entry]
        collection.where.assert_called_with("entry_date", "==", "2024-03-13")

    def test_write_failure(self, db, collection):
        collection.document.return_value.set.side_effect = ValueError("bad document")
        with pytest.raises(PersistenceError):
            db.save_entry(FoodEntry(calories=500))
