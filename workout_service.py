from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional

from errors import NotFoundError, ValidationError
from identity import Identity, require
from tools import DateTools, MathTools, Weight

logger = logging.getLogger(__name__)

REQUIRED_FIELDS_MESSAGE = "Date, muscle group, and exercise name are required"


def present(record: dict) -> dict:
    """Wire form of a stored workout record."""
    out = dict(record)
    out["weight"] = Weight.parse(record.get("weight")).to_json()
    return out


def _set_sort_key(record: dict) -> tuple:
    return (record.get("created_at") or "", record.get("date") or "", record.get("id") or 0)


class WorkoutService:
    """Owner-scoped workout CRUD plus per-day grouping."""

    def __init__(self, workout_repo) -> None:
        self.workouts = workout_repo

    @staticmethod
    def _clean(payload: Dict[str, Any]) -> dict:
        date = payload.get("date")
        muscle_group = (payload.get("muscle_group") or "").strip()
        exercise_name = (payload.get("exercise_name") or "").strip()
        if not date or not muscle_group or not exercise_name:
            raise ValidationError(REQUIRED_FIELDS_MESSAGE)
        DateTools.validate_date(date)
        reps = payload.get("reps")
        if reps is not None:
            if isinstance(reps, bool) or not isinstance(reps, int) or reps < 0:
                raise ValidationError("reps must be a non-negative integer")
        weight = Weight.parse(payload.get("weight"))
        return {
            "date": date,
            "muscle_group": muscle_group,
            "exercise_name": exercise_name,
            "reps": reps,
            "weight": weight.to_storage(),
            "notes": payload.get("notes") or "",
            "is_public": bool(payload.get("is_public", False)),
        }

    def _owned(self, identity: Identity, workout_id) -> dict:
        record = self.workouts.fetch(workout_id)
        if record is None or record.get("user_id") != identity.uid:
            raise NotFoundError("Workout not found")
        return record

    def create(self, identity: Optional[Identity], payload: Dict[str, Any]):
        identity = require(identity)
        fields = self._clean(payload)
        workout_id = self.workouts.create(identity.uid, **fields)
        logger.info("Workout %s created for %s", workout_id, identity.uid)
        return workout_id

    def update(self, identity: Optional[Identity], workout_id, payload: Dict[str, Any]) -> None:
        identity = require(identity)
        self._owned(identity, workout_id)
        fields = self._clean(payload)
        self.workouts.update(workout_id, **fields)
        logger.info("Workout %s updated", workout_id)

    def delete(self, identity: Optional[Identity], workout_id) -> None:
        identity = require(identity)
        self._owned(identity, workout_id)
        self.workouts.delete(workout_id)
        logger.info("Workout %s deleted", workout_id)

    def get(self, identity: Optional[Identity], workout_id) -> dict:
        identity = require(identity)
        return present(self._owned(identity, workout_id))

    def list(self, identity: Optional[Identity], date: str | None = None) -> List[dict]:
        identity = require(identity)
        if date:
            DateTools.validate_date(date)
        records = self.workouts.fetch_all_workouts(user_id=identity.uid, date=date)
        return [present(r) for r in records]

    def range(self, identity: Optional[Identity], start_date: str | None, end_date: str | None) -> List[dict]:
        identity = require(identity)
        if not start_date or not end_date:
            raise ValidationError("Start date and end date are required")
        DateTools.validate_date(start_date)
        DateTools.validate_date(end_date)
        records = self.workouts.fetch_all_workouts(
            user_id=identity.uid, start_date=start_date, end_date=end_date
        )
        return [present(r) for r in records]

    def grouped(self, identity: Optional[Identity], date: str) -> dict:
        identity = require(identity)
        DateTools.validate_date(date)
        records = self.workouts.fetch_all_workouts(user_id=identity.uid, date=date)
        summary = group_workouts(records)
        summary["date"] = date
        return summary


def group_workouts(records: List[dict]) -> dict:
    """Partition a day's records by ``(muscle_group, exercise_name)``.

    Sets within a group are ordered by ``created_at`` (then date, then id)
    and numbered from 1. Groups appear in the order of their first set.
    Bodyweight and unset weights add nothing to volume; the heaviest numeric
    set of each group is flagged, the earliest one winning a tie.
    """
    groups: Dict[tuple, dict] = {}
    for record in sorted(records, key=_set_sort_key):
        key = (record["muscle_group"], record["exercise_name"])
        group = groups.get(key)
        if group is None:
            group = {
                "muscle_group": key[0],
                "exercise_name": key[1],
                "sets": [],
                "volume": 0.0,
            }
            groups[key] = group
        weight = Weight.parse(record.get("weight"))
        reps = record.get("reps")
        volume = MathTools.set_volume(weight, reps)
        group["sets"].append(
            {
                "set_number": len(group["sets"]) + 1,
                "id": record.get("id"),
                "reps": reps,
                "weight": weight.to_json(),
                "notes": record.get("notes") or "",
                "created_at": record.get("created_at"),
                "volume": volume,
                "estimated_1rm": MathTools.estimate_1rm(weight, reps),
                "one_rm_display": MathTools.format_1rm(weight, reps),
                "is_max": False,
                "_weight": weight,
            }
        )
        group["volume"] += volume

    for group in groups.values():
        best = None
        for entry in group["sets"]:
            weight = entry.pop("_weight")
            if weight.is_number and (best is None or weight.value > best[0]):
                best = (weight.value, entry)
        if best is not None:
            best[1]["is_max"] = True

    result = list(groups.values())
    return {
        "groups": result,
        "total_volume": sum(g["volume"] for g in result),
    }
