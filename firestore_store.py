"""Document-store adapter backed by Cloud Firestore.

Every repository here exposes the same methods as its SQLite counterpart in
``db.py`` so the services never know which backend they talk to. Document
ids are strings; the SQLite store uses integers.
"""

import logging
from contextlib import contextmanager
from typing import Iterable, List, Optional

from google.api_core import exceptions as google_exceptions
from google.cloud import firestore

from errors import NotFoundError, TransientError
from tools import DateTools

logger = logging.getLogger(__name__)

WORKOUTS = "workouts"
MUSCLE_GROUPS = "muscleGroups"
EXERCISES = "exercises"
FRIENDS = "friends"
FRIEND_REQUESTS = "friendRequests"
USER_PROFILES = "userProfiles"

# Firestore caps "in" filters at ten values.
IN_QUERY_LIMIT = 10
# Batches accept at most 500 writes.
BATCH_LIMIT = 400


@contextmanager
def _google_call():
    try:
        yield
    except (google_exceptions.GoogleAPICallError, google_exceptions.RetryError) as e:
        raise TransientError("document store unavailable", str(e)) from e


def chunked(values: List[str], size: int = IN_QUERY_LIMIT) -> Iterable[List[str]]:
    for start in range(0, len(values), size):
        yield values[start:start + size]


class FirestoreRepository:
    """Common helpers around one Firestore collection."""

    collection_name = ""

    def __init__(self, client) -> None:
        self.client = client

    @property
    def collection(self):
        return self.client.collection(self.collection_name)

    def _stream(self, query) -> List[dict]:
        with _google_call():
            return [self._record(snap) for snap in query.stream()]

    def _record(self, snap) -> dict:
        data = snap.to_dict() or {}
        data["id"] = snap.id
        return data

    def _get(self, doc_id) -> Optional[dict]:
        with _google_call():
            snap = self.collection.document(str(doc_id)).get()
        if not snap.exists:
            return None
        return self._record(snap)

    def _require(self, doc_id, label: str):
        ref = self.collection.document(str(doc_id))
        with _google_call():
            if not ref.get().exists:
                raise NotFoundError(f"{label} not found")
        return ref

    def _add(self, data: dict) -> str:
        with _google_call():
            _, ref = self.collection.add(data)
        return ref.id

    def _commit_in_batches(self, writes: Iterable) -> None:
        """Apply ``(ref, data)`` updates (``data`` None deletes) in write batches."""
        batch = self.client.batch()
        pending = 0
        with _google_call():
            for ref, data in writes:
                if data is None:
                    batch.delete(ref)
                else:
                    batch.update(ref, data)
                pending += 1
                if pending % BATCH_LIMIT == 0:
                    batch.commit()
                    batch = self.client.batch()
            batch.commit()


class FirestoreWorkoutRepository(FirestoreRepository):
    collection_name = WORKOUTS

    def _record(self, snap) -> dict:
        data = snap.to_dict() or {}
        return {
            "id": snap.id,
            "user_id": data.get("userId") or data.get("user_id"),
            "date": data.get("date"),
            "muscle_group": data.get("muscle_group"),
            "exercise_name": data.get("exercise_name"),
            "reps": data.get("reps"),
            "weight": data.get("weight"),
            "notes": data.get("notes"),
            "is_public": bool(data.get("is_public", False)),
            "created_at": data.get("created_at"),
            "updated_at": data.get("updated_at"),
        }

    @staticmethod
    def _sorted(records: List[dict]) -> List[dict]:
        return sorted(
            records,
            key=lambda r: (r["date"] or "", r["created_at"] or ""),
            reverse=True,
        )

    def create(
        self,
        user_id: str,
        date: str,
        muscle_group: str,
        exercise_name: str,
        reps: Optional[int] = None,
        weight: Optional[float] = None,
        notes: str | None = None,
        is_public: bool = False,
        created_at: str | None = None,
    ) -> str:
        return self._add(
            {
                "userId": user_id,
                "date": date,
                "muscle_group": muscle_group,
                "exercise_name": exercise_name,
                "reps": reps,
                "weight": weight,
                "notes": notes or "",
                "is_public": is_public,
                "created_at": created_at or DateTools.utc_timestamp(),
            }
        )

    def fetch(self, workout_id) -> Optional[dict]:
        return self._get(workout_id)

    def fetch_all_workouts(
        self,
        user_id: Optional[str] = None,
        date: Optional[str] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> List[dict]:
        query = self.collection
        if user_id is not None:
            query = query.where("userId", "==", user_id)
        if date:
            query = query.where("date", "==", date)
        if start_date:
            query = query.where("date", ">=", start_date)
        if end_date:
            query = query.where("date", "<=", end_date)
        return self._sorted(self._stream(query))

    def fetch_public_for_users(self, user_ids: List[str], limit: int) -> List[dict]:
        records: List[dict] = []
        for chunk in chunked(list(user_ids)):
            query = self.collection.where("userId", "in", chunk).where(
                "is_public", "==", True
            )
            records.extend(self._stream(query))
        records.sort(key=lambda r: r["created_at"] or "", reverse=True)
        return records[:limit]

    def update(
        self,
        workout_id,
        date: str,
        muscle_group: str,
        exercise_name: str,
        reps: Optional[int],
        weight: Optional[float],
        notes: str | None,
        is_public: bool = False,
    ) -> None:
        ref = self._require(workout_id, "workout")
        with _google_call():
            ref.update(
                {
                    "date": date,
                    "muscle_group": muscle_group,
                    "exercise_name": exercise_name,
                    "reps": reps,
                    "weight": weight,
                    "notes": notes or "",
                    "is_public": is_public,
                    "updated_at": DateTools.utc_timestamp(),
                }
            )

    def delete(self, workout_id) -> None:
        ref = self._require(workout_id, "workout")
        with _google_call():
            ref.delete()

    def assign_owner(self, user_id: str) -> int:
        orphans = [r for r in self._stream(self.collection) if not r["user_id"]]
        self._commit_in_batches(
            (self.collection.document(r["id"]), {"userId": user_id}) for r in orphans
        )
        return len(orphans)


class FirestoreMuscleGroupRepository(FirestoreRepository):
    collection_name = MUSCLE_GROUPS

    DEFAULTS = [
        {"id": "chest", "name": "Chest", "color": "bg-red-500"},
        {"id": "shoulders", "name": "Shoulders", "color": "bg-orange-500"},
        {"id": "arms", "name": "Arms", "color": "bg-yellow-500"},
        {"id": "back", "name": "Back", "color": "bg-green-500"},
        {"id": "legs", "name": "Legs", "color": "bg-blue-500"},
        {"id": "core", "name": "Core", "color": "bg-purple-500"},
    ]

    def fetch_all(self) -> List[dict]:
        groups = self._stream(self.collection)
        if not groups:
            return [dict(g) for g in self.DEFAULTS]
        order = {g["id"]: pos for pos, g in enumerate(self.DEFAULTS)}
        groups.sort(key=lambda g: (order.get(g["id"], len(order)), g["id"]))
        return [{"id": g["id"], "name": g.get("name"), "color": g.get("color")} for g in groups]


class FirestoreExerciseRepository(FirestoreRepository):
    collection_name = EXERCISES

    def _record(self, snap) -> dict:
        data = snap.to_dict() or {}
        return {
            "id": snap.id,
            "user_id": data.get("userId") or data.get("user_id"),
            "muscle_group": data.get("muscle_group"),
            "name": data.get("name"),
            "order": data.get("order") or 0,
            "itemid": data.get("itemid"),
            "created_at": data.get("created_at"),
            "updated_at": data.get("updated_at"),
        }

    def fetch(self, exercise_id) -> Optional[dict]:
        return self._get(exercise_id)

    def fetch_for_user(self, user_id: str, muscle_group: Optional[str] = None) -> List[dict]:
        query = self.collection.where("userId", "==", user_id)
        if muscle_group:
            query = query.where("muscle_group", "==", muscle_group)
        records = self._stream(query)
        records.sort(key=lambda r: (r["muscle_group"] or "", r["order"], r["created_at"] or ""))
        return records

    def fetch_all_exercises(self) -> List[dict]:
        return self._stream(self.collection)

    def fetch_item_codes(self) -> List[str]:
        return [r["itemid"] for r in self.fetch_all_exercises() if r["itemid"]]

    def max_order(self, user_id: str, muscle_group: str) -> int:
        orders = [r["order"] for r in self.fetch_for_user(user_id, muscle_group)]
        return max(orders) if orders else -1

    def find(self, user_id: str, muscle_group: str, name: str) -> List[dict]:
        return [
            r for r in self.fetch_for_user(user_id, muscle_group) if r["name"] == name
        ]

    def add(self, user_id: str, muscle_group: str, name: str, order: int, itemid: str) -> str:
        return self._add(
            {
                "userId": user_id,
                "muscle_group": muscle_group,
                "name": name,
                "order": order,
                "itemid": itemid,
                "created_at": DateTools.utc_timestamp(),
            }
        )

    def update(self, exercise_id, muscle_group: str, name: str) -> None:
        ref = self._require(exercise_id, "exercise")
        with _google_call():
            ref.update(
                {
                    "muscle_group": muscle_group,
                    "name": name,
                    "updated_at": DateTools.utc_timestamp(),
                }
            )

    def remove(self, exercise_id) -> None:
        ref = self._require(exercise_id, "exercise")
        with _google_call():
            ref.delete()

    def remove_many(self, exercise_ids: Iterable) -> None:
        self._commit_in_batches(
            (self.collection.document(str(eid)), None) for eid in exercise_ids
        )

    def update_order(self, exercise_ids: List) -> None:
        now = DateTools.utc_timestamp()
        self._commit_in_batches(
            (self.collection.document(str(eid)), {"order": pos, "updated_at": now})
            for pos, eid in enumerate(exercise_ids)
        )

    def set_item_codes(self, codes: dict) -> None:
        now = DateTools.utc_timestamp()
        self._commit_in_batches(
            (self.collection.document(str(eid)), {"itemid": code, "updated_at": now})
            for eid, code in codes.items()
        )

    def assign_owner(self, user_id: str) -> int:
        orphans = [r for r in self.fetch_all_exercises() if not r["user_id"]]
        now = DateTools.utc_timestamp()
        self._commit_in_batches(
            (self.collection.document(r["id"]), {"userId": user_id, "updated_at": now})
            for r in orphans
        )
        return len(orphans)


class FirestoreUserProfileRepository(FirestoreRepository):
    """Profiles carry the owner's uid in an ``id`` field.

    New profiles are written under the uid as document id, but older ones
    live under generated ids, so lookups query the field and fall back to
    the document id.
    """

    collection_name = USER_PROFILES
    UPDATABLE = ("name", "photo_url", "is_public_profile", "allow_friend_requests")

    def _record(self, snap) -> dict:
        data = snap.to_dict() or {}
        return {
            "id": data.get("id") or snap.id,
            "email": data.get("email"),
            "name": data.get("name"),
            "photo_url": data.get("photo_url"),
            "is_public_profile": bool(data.get("is_public_profile", False)),
            "allow_friend_requests": bool(data.get("allow_friend_requests", True)),
            "created_at": data.get("created_at"),
            "updated_at": data.get("updated_at"),
        }

    def _snapshot(self, user_id: str):
        """Earliest profile document for ``user_id``, or None."""
        with _google_call():
            matches = list(self.collection.where("id", "==", user_id).stream())
            if matches:
                matches.sort(key=lambda s: (s.to_dict() or {}).get("created_at") or "")
                return matches[0]
            snap = self.collection.document(str(user_id)).get()
        return snap if snap.exists else None

    def fetch(self, user_id: str) -> Optional[dict]:
        snap = self._snapshot(user_id)
        return None if snap is None else self._record(snap)

    def find_by_email(self, email: str) -> Optional[dict]:
        matches = self._stream(self.collection.where("email", "==", email))
        return matches[0] if matches else None

    def add(self, profile: dict) -> None:
        data = {
            "id": profile["id"],
            "email": profile.get("email"),
            "name": profile.get("name"),
            "photo_url": profile.get("photo_url"),
            "is_public_profile": bool(profile.get("is_public_profile", False)),
            "allow_friend_requests": bool(profile.get("allow_friend_requests", True)),
            "created_at": profile.get("created_at") or DateTools.utc_timestamp(),
        }
        with _google_call():
            self.collection.document(profile["id"]).set(data)

    def update(self, user_id: str, fields: dict) -> None:
        snap = self._snapshot(user_id)
        if snap is None:
            raise NotFoundError("Profile not found")
        ref = self.collection.document(snap.id)
        changes = {k: v for k, v in fields.items() if k in self.UPDATABLE}
        if not changes:
            return
        changes["updated_at"] = DateTools.utc_timestamp()
        with _google_call():
            ref.update(changes)


class FirestoreFriendRepository(FirestoreRepository):
    collection_name = FRIENDS

    def fetch_for_user(self, user_id: str) -> List[dict]:
        records = self._stream(
            self.collection.where("user_id", "==", user_id).where("status", "==", "accepted")
        )
        records.sort(key=lambda r: r.get("created_at") or "")
        return records

    def find(self, user_id: str, friend_id: str) -> List[dict]:
        return self._stream(
            self.collection.where("user_id", "==", user_id).where("friend_id", "==", friend_id)
        )

    def add(
        self,
        user_id: str,
        friend_id: str,
        friend_email: str | None,
        friend_name: str | None,
        status: str = "accepted",
    ) -> str:
        return self._add(
            {
                "user_id": user_id,
                "friend_id": friend_id,
                "friend_email": friend_email,
                "friend_name": friend_name,
                "status": status,
                "created_at": DateTools.utc_timestamp(),
            }
        )

    def ensure(
        self,
        user_id: str,
        friend_id: str,
        friend_email: str | None,
        friend_name: str | None,
    ) -> bool:
        if self.find(user_id, friend_id):
            return False
        self.add(user_id, friend_id, friend_email, friend_name)
        return True

    def remove(self, edge_id) -> None:
        with _google_call():
            self.collection.document(str(edge_id)).delete()


class FirestoreFriendRequestRepository(FirestoreRepository):
    collection_name = FRIEND_REQUESTS

    def add(
        self,
        from_user_id: str,
        to_user_id: str,
        from_user_email: str | None,
        from_user_name: str | None,
    ) -> str:
        return self._add(
            {
                "from_user_id": from_user_id,
                "to_user_id": to_user_id,
                "from_user_email": from_user_email,
                "from_user_name": from_user_name,
                "status": "pending",
                "created_at": DateTools.utc_timestamp(),
            }
        )

    def fetch(self, request_id) -> Optional[dict]:
        return self._get(request_id)

    def find(self, from_user_id: str, to_user_id: str) -> List[dict]:
        return self._stream(
            self.collection.where("from_user_id", "==", from_user_id).where(
                "to_user_id", "==", to_user_id
            )
        )

    def fetch_pending_for(self, to_user_id: str) -> List[dict]:
        records = self._stream(
            self.collection.where("to_user_id", "==", to_user_id).where("status", "==", "pending")
        )
        records.sort(key=lambda r: r.get("created_at") or "")
        return records

    def fetch_accepted_involving(self, user_id: str) -> List[dict]:
        sent = self._stream(
            self.collection.where("from_user_id", "==", user_id).where("status", "==", "accepted")
        )
        received = self._stream(
            self.collection.where("to_user_id", "==", user_id).where("status", "==", "accepted")
        )
        return sent + received

    def set_status(self, request_id, status: str) -> None:
        ref = self._require(request_id, "friend request")
        with _google_call():
            ref.update({"status": status, "updated_at": DateTools.utc_timestamp()})


class FirestoreStore:
    """Bundle of Firestore repositories sharing one client."""

    backend = "firestore"

    def __init__(self, client) -> None:
        self.client = client
        self.profiles = FirestoreUserProfileRepository(client)
        self.workouts = FirestoreWorkoutRepository(client)
        self.muscle_groups = FirestoreMuscleGroupRepository(client)
        self.exercises = FirestoreExerciseRepository(client)
        self.friends = FirestoreFriendRepository(client)
        self.friend_requests = FirestoreFriendRequestRepository(client)

    @classmethod
    def from_settings(cls, settings) -> "FirestoreStore":
        credentials = None
        if settings.firestore_credentials:
            from google.oauth2 import service_account
            credentials = service_account.Credentials.from_service_account_file(
                settings.firestore_credentials
            )
        logger.info("Connecting to Firestore project %s", settings.firestore_project)
        client = firestore.Client(project=settings.firestore_project, credentials=credentials)
        return cls(client)
