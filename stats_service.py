from __future__ import annotations
import logging
from typing import Dict, Iterable, List, Optional

from errors import TransientError, ValidationError
from identity import Identity, require
from tools import DateTools, Weight

logger = logging.getLogger(__name__)


def aggregate(records: Iterable[dict]) -> List[dict]:
    """Reduce workout records into one row per muscle group.

    ``avg_weight`` is the mean over positive numeric weights only; bodyweight,
    zero and missing weights count toward ``workout_count`` but not the mean.
    """
    acc: Dict[str, dict] = {}
    for record in records:
        group = record["muscle_group"]
        row = acc.setdefault(
            group,
            {
                "muscle_group": group,
                "workout_count": 0,
                "total_reps": 0,
                "total_weight": 0.0,
                "weight_count": 0,
            },
        )
        row["workout_count"] += 1
        row["total_reps"] += record.get("reps") or 0
        weight = Weight.parse(record.get("weight"))
        if weight.is_number and weight.value > 0:
            row["total_weight"] += weight.value
            row["weight_count"] += 1
    stats = [
        {
            "muscle_group": row["muscle_group"],
            "workout_count": row["workout_count"],
            "total_reps": row["total_reps"],
            "avg_weight": row["total_weight"] / row["weight_count"] if row["weight_count"] else 0,
        }
        for row in acc.values()
    ]
    stats.sort(key=lambda r: (-r["workout_count"], r["muscle_group"]))
    return stats


class StatisticsService:
    """Compute workout statistics for analysis."""

    def __init__(self, workout_repo) -> None:
        self.workouts = workout_repo

    @staticmethod
    def _resolve_range(start_date: str | None, end_date: str | None) -> tuple[str, str]:
        if not start_date and not end_date:
            return DateTools.current_month_range()
        if not start_date or not end_date:
            raise ValidationError("Start date and end date are required")
        DateTools.validate_date(start_date)
        DateTools.validate_date(end_date)
        return start_date, end_date

    def statistics(
        self,
        identity: Optional[Identity],
        start_date: str | None = None,
        end_date: str | None = None,
    ) -> List[dict]:
        identity = require(identity)
        start_date, end_date = self._resolve_range(start_date, end_date)
        try:
            records = self.workouts.fetch_all_workouts(
                user_id=identity.uid, start_date=start_date, end_date=end_date
            )
        except TransientError as e:
            logger.warning("Statistics unavailable for %s: %s", identity.uid, e.detail)
            return []
        return aggregate(records)

    def overview(
        self,
        identity: Optional[Identity],
        start_date: str | None = None,
        end_date: str | None = None,
    ) -> dict:
        """Per-group rows plus the summary totals shown alongside them."""
        identity = require(identity)
        start_date, end_date = self._resolve_range(start_date, end_date)
        rows = self.statistics(identity, start_date, end_date)
        return {
            "start_date": start_date,
            "end_date": end_date,
            "stats": rows,
            "total_workouts": sum(r["workout_count"] for r in rows),
            "total_volume": sum(r["total_reps"] * r["avg_weight"] for r in rows),
        }
