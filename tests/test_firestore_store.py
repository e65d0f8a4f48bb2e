import os
import sys
from unittest import mock

import pytest
from google.api_core import exceptions as google_exceptions

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from catalog_service import CatalogService
from errors import NotFoundError, TransientError
from firestore_store import (
    EXERCISES,
    USER_PROFILES,
    WORKOUTS,
    FirestoreStore,
    chunked,
)
from friend_service import FriendService
from identity import Identity

BOB = Identity(uid="bob", email="bob@example.com", display_name="Bob")


def test_chunked_respects_in_limit():
    ids = [str(n) for n in range(23)]
    assert [len(c) for c in chunked(ids)] == [10, 10, 3]


def test_workout_documents_use_owner_field(firestore_store, fake_firestore):
    wid = firestore_store.workouts.create("alice", "2024-01-01", "chest", "Bench", 5, -1.0)
    doc = fake_firestore.collection(WORKOUTS).docs[wid]
    assert doc["userId"] == "alice"
    assert doc["weight"] == -1.0
    record = firestore_store.workouts.fetch(wid)
    assert record["user_id"] == "alice"
    assert record["is_public"] is False


def test_legacy_snake_case_owner_is_read(firestore_store, fake_firestore):
    fake_firestore.collection(WORKOUTS).docs["legacy"] = {
        "user_id": "alice",
        "date": "2024-01-01",
        "muscle_group": "legs",
        "exercise_name": "Squat",
    }
    assert firestore_store.workouts.fetch("legacy")["user_id"] == "alice"


def test_range_query(firestore_store):
    repo = firestore_store.workouts
    for date in ("2023-12-31", "2024-01-01", "2024-01-31", "2024-02-01"):
        repo.create("alice", date, "core", "Plank")
    rows = repo.fetch_all_workouts(user_id="alice", start_date="2024-01-01", end_date="2024-01-31")
    assert [r["date"] for r in rows] == ["2024-01-31", "2024-01-01"]


def test_update_missing_document_is_not_found(firestore_store):
    with pytest.raises(NotFoundError):
        firestore_store.workouts.update("missing", "2024-01-01", "chest", "Bench", 1, 1.0, "")
    with pytest.raises(NotFoundError):
        firestore_store.exercises.remove("missing")


def test_update_order_is_one_batch(firestore_store, fake_firestore):
    repo = firestore_store.exercises
    ids = [repo.add("alice", "back", name, pos, f"{pos + 1:04d}") for pos, name in enumerate("ABC")]
    repo.update_order([ids[1], ids[2], ids[0]])
    assert fake_firestore.commits == [3]
    orders = {r["name"]: r["order"] for r in repo.fetch_for_user("alice", "back")}
    assert orders == {"B": 0, "C": 1, "A": 2}


def test_large_writes_are_split(firestore_store, fake_firestore):
    repo = firestore_store.exercises
    collection = fake_firestore.collection(EXERCISES)
    for n in range(450):
        collection.docs[f"e{n:03d}"] = {"userId": "alice", "muscle_group": "chest", "name": f"x{n}", "order": 0}
    repo.set_item_codes({f"e{n:03d}": f"{n + 1:04d}" for n in range(450)})
    assert fake_firestore.commits == [400, 50]


def test_muscle_groups_fall_back_to_defaults(firestore_store, fake_firestore):
    groups = firestore_store.muscle_groups.fetch_all()
    assert [g["id"] for g in groups] == ["chest", "shoulders", "arms", "back", "legs", "core"]
    fake_firestore.collection("muscleGroups").docs["legs"] = {"name": "Legs", "color": "bg-blue-500"}
    assert firestore_store.muscle_groups.fetch_all() == [{"id": "legs", "name": "Legs", "color": "bg-blue-500"}]


def test_google_errors_become_transient(firestore_store, fake_firestore):
    fake_firestore.failure = google_exceptions.ServiceUnavailable("backend down")
    with pytest.raises(TransientError):
        firestore_store.workouts.fetch_all_workouts(user_id="alice")
    with pytest.raises(TransientError):
        firestore_store.profiles.fetch("alice")


def test_profiles_are_keyed_by_uid(firestore_store, fake_firestore):
    firestore_store.profiles.add({"id": "alice", "email": "alice@example.com", "name": "Alice"})
    assert "alice" in fake_firestore.collection("userProfiles").docs
    assert firestore_store.profiles.find_by_email("alice@example.com")["id"] == "alice"
    with pytest.raises(NotFoundError):
        firestore_store.profiles.update("bob", {"name": "Bob"})


def test_from_settings_builds_client():
    settings = mock.Mock(firestore_project="demo-project", firestore_credentials=None)
    with mock.patch("firestore_store.firestore.Client") as client_cls:
        store = FirestoreStore.from_settings(settings)
    client_cls.assert_called_once_with(project="demo-project", credentials=None)
    assert store.client is client_cls.return_value
    assert store.backend == "firestore"


def test_profile_under_generated_document_id(firestore_store, fake_firestore):
    profiles = fake_firestore.collection(USER_PROFILES)
    profiles.docs["randomDoc"] = {
        "id": "bob",
        "email": "bob@example.com",
        "name": "Bobby",
        "is_public_profile": False,
        "allow_friend_requests": True,
        "created_at": "2024-01-01T00:00:00+00:00",
    }
    social = FriendService(firestore_store)
    assert social.get_profile(BOB)["name"] == "Bobby"
    assert list(profiles.docs) == ["randomDoc"]

    updated = social.update_profile(BOB, {"name": "Robert"})
    assert updated["name"] == "Robert"
    assert profiles.docs["randomDoc"]["name"] == "Robert"
    assert list(profiles.docs) == ["randomDoc"]


def test_new_profiles_still_keyed_by_uid(firestore_store, fake_firestore):
    FriendService(firestore_store).get_profile(BOB)
    assert list(fake_firestore.collection(USER_PROFILES).docs) == ["bob"]
    assert firestore_store.profiles.fetch("bob")["email"] == "bob@example.com"


def test_null_exercise_order_reads_as_zero(firestore_store, fake_firestore):
    collection = fake_firestore.collection(EXERCISES)
    collection.docs["first"] = {"userId": "bob", "muscle_group": "chest", "name": "Fly", "order": None}
    collection.docs["second"] = {"userId": "bob", "muscle_group": "chest", "name": "Press", "order": 1}
    catalog = CatalogService(firestore_store.exercises)
    rows = catalog.catalog(BOB, "chest")
    assert [(r["name"], r["order"]) for r in rows] == [("Fly", 0), ("Press", 1)]
    assert catalog.suggestions(BOB, "chest") == ["Fly", "Press"]
    assert catalog.create_exercise(BOB, "chest", "Dip")["order"] == 2
