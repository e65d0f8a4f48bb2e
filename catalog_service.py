from __future__ import annotations
import asyncio
import logging
import re
from typing import Dict, List, Optional, Sequence

from errors import ConflictError, NotFoundError, TransientError, ValidationError
from identity import Identity, require

logger = logging.getLogger(__name__)

EXERCISE_SUGGESTIONS: Dict[str, List[str]] = {
    "chest": ["Bench Press", "Dumbbell Press", "Incline Press", "Decline Press", "Push-up"],
    "shoulders": ["Shoulder Press", "Side Raise", "Front Raise", "Rear Delt Fly", "Upright Row"],
    "arms": ["Barbell Curl", "Dumbbell Curl", "Triceps Extension", "Hammer Curl", "Dips"],
    "back": ["Deadlift", "Barbell Row", "Pull-up", "Lat Pulldown", "Seated Row"],
    "legs": ["Barbell Squat", "Leg Press", "Leg Extension", "Hack Squat", "Seated Calf Raise"],
    "core": ["Plank", "Crunch", "Leg Raise", "Side Plank", "Russian Twist"],
}

CODE_PATTERN = re.compile(r"^\d{4}$")
NEW_PREFIX = "New"
NEW_NAMESPACE = "Newitemid_"


def move_item(items: Sequence, old_index: int, new_index: int) -> list:
    """Return a copy of ``items`` with one entry moved (remove, then insert)."""
    size = len(items)
    if not 0 <= old_index < size or not 0 <= new_index < size:
        raise ValidationError("index out of range")
    result = list(items)
    item = result.pop(old_index)
    result.insert(new_index, item)
    return result


def _smallest_unused(used: set) -> int:
    n = 1
    while n in used:
        n += 1
    return n


def allocate_item_code(existing: Sequence[str], name: str, legacy_new_namespace: bool = False) -> str:
    """Smallest positive integer not used by another code, zero padded."""
    if legacy_new_namespace and name.startswith(NEW_PREFIX):
        used = set()
        for code in existing:
            suffix = (code or "")[len(NEW_NAMESPACE):]
            if (code or "").startswith(NEW_NAMESPACE) and suffix.isdigit():
                used.add(int(suffix))
        return f"{NEW_NAMESPACE}{_smallest_unused(used):04d}"
    used = {int(code) for code in existing if code and CODE_PATTERN.match(code)}
    return f"{_smallest_unused(used):04d}"


class CatalogOrderEditor:
    """Working copy of one muscle group's display order.

    ``move`` edits the working order only; ``save`` persists ``order = index``
    for every item as one batch and makes it the new saved order; ``cancel``
    restores the last saved order.
    """

    def __init__(self, exercise_repo, items: List[dict]) -> None:
        self.exercises = exercise_repo
        self.saved = list(items)
        self.working = list(items)

    @property
    def dirty(self) -> bool:
        return [i["id"] for i in self.saved] != [i["id"] for i in self.working]

    def move(self, old_index: int, new_index: int) -> List[dict]:
        self.working = move_item(self.working, old_index, new_index)
        return self.working

    def save(self) -> List[dict]:
        self.exercises.update_order([item["id"] for item in self.working])
        self.working = [dict(item, order=pos) for pos, item in enumerate(self.working)]
        self.saved = list(self.working)
        return self.saved

    def cancel(self) -> List[dict]:
        self.working = list(self.saved)
        return self.working


class CatalogService:
    """Per-user exercise catalog: ordering, item codes and maintenance."""

    def __init__(self, exercise_repo, legacy_new_namespace: bool = False) -> None:
        self.exercises = exercise_repo
        self.legacy_new_namespace = legacy_new_namespace

    def _owned(self, identity: Identity, exercise_id) -> dict:
        record = self.exercises.fetch(exercise_id)
        if record is None or record.get("user_id") != identity.uid:
            raise NotFoundError("exercise not found")
        return record

    @staticmethod
    def _clean(muscle_group: str | None, name: str | None) -> tuple[str, str]:
        muscle_group = (muscle_group or "").strip()
        name = (name or "").strip()
        if not muscle_group or not name:
            raise ValidationError("muscle group and name are required")
        return muscle_group, name

    def catalog(self, identity: Optional[Identity], muscle_group: str | None = None) -> List[dict]:
        identity = require(identity)
        return self.exercises.fetch_for_user(identity.uid, muscle_group)

    def safe_catalog(self, identity: Optional[Identity], muscle_group: str | None = None) -> List[dict]:
        identity = require(identity)
        try:
            return self.catalog(identity, muscle_group)
        except TransientError as e:
            logger.warning("Catalog unavailable for %s: %s", identity.uid, e.detail)
            return []

    def suggestions(self, identity: Optional[Identity], muscle_group: str) -> List[str]:
        names = [item["name"] for item in self.safe_catalog(identity, muscle_group)]
        if names:
            return names
        return list(EXERCISE_SUGGESTIONS.get(muscle_group, []))

    def create_exercise(self, identity: Optional[Identity], muscle_group: str, name: str) -> dict:
        identity = require(identity)
        muscle_group, name = self._clean(muscle_group, name)
        if self.exercises.find(identity.uid, muscle_group, name):
            raise ConflictError("exercise exists")
        order = self.exercises.max_order(identity.uid, muscle_group) + 1
        itemid = allocate_item_code(
            self.exercises.fetch_item_codes(), name, self.legacy_new_namespace
        )
        exercise_id = self.exercises.add(identity.uid, muscle_group, name, order, itemid)
        logger.info("Exercise %s (%s) added for %s", name, itemid, identity.uid)
        return {
            "id": exercise_id,
            "user_id": identity.uid,
            "muscle_group": muscle_group,
            "name": name,
            "order": order,
            "itemid": itemid,
        }

    def update_exercise(self, identity: Optional[Identity], exercise_id, muscle_group: str, name: str) -> None:
        identity = require(identity)
        self._owned(identity, exercise_id)
        muscle_group, name = self._clean(muscle_group, name)
        clashes = [
            r for r in self.exercises.find(identity.uid, muscle_group, name)
            if r["id"] != exercise_id
        ]
        if clashes:
            raise ConflictError("exercise exists")
        self.exercises.update(exercise_id, muscle_group, name)
        logger.info("Exercise %s updated", exercise_id)

    def delete_exercise(self, identity: Optional[Identity], exercise_id) -> None:
        identity = require(identity)
        self._owned(identity, exercise_id)
        self.exercises.remove(exercise_id)
        logger.info("Exercise %s deleted", exercise_id)

    def editor(self, identity: Optional[Identity], muscle_group: str) -> CatalogOrderEditor:
        return CatalogOrderEditor(self.exercises, self.catalog(identity, muscle_group))

    def save_order(self, identity: Optional[Identity], exercise_ids: List) -> List[dict]:
        """Persist a new order for a subset of one muscle group's exercises."""
        identity = require(identity)
        if not exercise_ids:
            raise ValidationError("order must list at least one exercise")
        if len(set(exercise_ids)) != len(exercise_ids):
            raise ValidationError("order contains duplicates")
        owned = {item["id"]: item for item in self.exercises.fetch_for_user(identity.uid)}
        missing = [eid for eid in exercise_ids if eid not in owned]
        if missing:
            raise NotFoundError("exercise not found")
        groups = {owned[eid]["muscle_group"] for eid in exercise_ids}
        if len(groups) != 1:
            raise ValidationError("order must cover a single muscle group")
        self.exercises.update_order(list(exercise_ids))
        logger.info("Saved order of %d exercises in %s", len(exercise_ids), groups.pop())
        return [dict(owned[eid], order=pos) for pos, eid in enumerate(exercise_ids)]

    def repair_item_codes(self, identity: Optional[Identity]) -> int:
        """Reassign every code densely from ``0001`` in name order."""
        require(identity)
        rows = sorted(
            self.exercises.fetch_all_exercises(),
            key=lambda r: ((r.get("name") or "").casefold(), str(r["id"])),
        )
        codes = {row["id"]: f"{pos:04d}" for pos, row in enumerate(rows, start=1)}
        self.exercises.set_item_codes(codes)
        logger.info("Reassigned %d item codes", len(codes))
        return len(codes)

    def remove_duplicates(self, identity: Optional[Identity]) -> int:
        """Keep the first row per ``(muscle_group, name)``; delete the rest."""
        identity = require(identity)
        seen = set()
        duplicates = []
        for row in self.exercises.fetch_for_user(identity.uid):
            key = (row["muscle_group"], row["name"])
            if key in seen:
                duplicates.append(row["id"])
            else:
                seen.add(key)
        if duplicates:
            self.exercises.remove_many(duplicates)
            logger.info("Removed %d duplicate exercises for %s", len(duplicates), identity.uid)
        return len(duplicates)

    def adopt_orphans(self, identity: Optional[Identity]) -> int:
        """Assign exercises without an owner to the caller."""
        identity = require(identity)
        count = self.exercises.assign_owner(identity.uid)
        if count:
            logger.info("Assigned %d exercises to %s", count, identity.uid)
        return count


class BootstrapLoader:
    """Initial load of muscle groups and the caller's catalog, under a deadline.

    ``fetch_groups`` is an async callable returning the muscle groups and
    ``fetch_catalog`` an async callable taking a uid. If both do not finish
    within ``timeout`` seconds the result is empty with ``complete`` False.
    """

    def __init__(self, fetch_groups, fetch_catalog, timeout: float = 5.0) -> None:
        self.fetch_groups = fetch_groups
        self.fetch_catalog = fetch_catalog
        self.timeout = timeout

    async def _load(self, uid: str) -> tuple[list, list]:
        groups = await self.fetch_groups()
        exercises = await self.fetch_catalog(uid)
        return groups, exercises

    async def load(self, identity: Optional[Identity]) -> dict:
        identity = require(identity)
        try:
            groups, exercises = await asyncio.wait_for(self._load(identity.uid), self.timeout)
        except asyncio.TimeoutError:
            logger.warning("Bootstrap for %s exceeded %.1fs", identity.uid, self.timeout)
            return {"muscle_groups": [], "exercises": [], "complete": False}
        except TransientError as e:
            logger.warning("Bootstrap for %s failed: %s", identity.uid, e.detail)
            return {"muscle_groups": [], "exercises": [], "complete": False}
        return {"muscle_groups": groups, "exercises": exercises, "complete": True}
