import os
import sys
import unittest
from unittest import mock

import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from errors import TransientError, ValidationError
from identity import Identity
from stats_service import StatisticsService, aggregate

ALICE = Identity(uid="alice")


class AggregateTestCase(unittest.TestCase):
    def test_avg_weight_ignores_bodyweight_and_missing(self) -> None:
        rows = aggregate(
            [
                {"muscle_group": "chest", "reps": 10, "weight": 100},
                {"muscle_group": "chest", "reps": 12, "weight": -1},
                {"muscle_group": "chest", "reps": None, "weight": None},
            ]
        )
        self.assertEqual(
            rows,
            [{"muscle_group": "chest", "workout_count": 3, "total_reps": 22, "avg_weight": 100}],
        )

    def test_zero_weight_only_gives_zero_average(self) -> None:
        rows = aggregate([{"muscle_group": "core", "reps": 5, "weight": 0}])
        self.assertEqual(rows[0]["avg_weight"], 0)

    def test_one_row_per_group(self) -> None:
        rows = aggregate(
            [
                {"muscle_group": "legs", "reps": 5, "weight": 100},
                {"muscle_group": "legs", "reps": 5, "weight": 120},
                {"muscle_group": "back", "reps": 8, "weight": 60},
            ]
        )
        by_group = {r["muscle_group"]: r for r in rows}
        self.assertEqual(set(by_group), {"legs", "back"})
        self.assertEqual(by_group["legs"]["avg_weight"], 110)
        self.assertEqual(by_group["legs"]["workout_count"], 2)

    def test_empty(self) -> None:
        self.assertEqual(aggregate([]), [])


def _seed(repo):
    for date, group, reps, weight in (
        ("2024-01-01", "chest", 10, 60.0),
        ("2024-01-31", "chest", 8, 80.0),
        ("2024-02-01", "chest", 5, 200.0),
        ("2024-01-15", "legs", 5, -1.0),
    ):
        repo.create("alice", date, group, "Lift", reps, weight)
    repo.create("bob", "2024-01-10", "chest", "Lift", 99, 500.0)


def test_statistics_range_is_inclusive(sqlite_store):
    _seed(sqlite_store.workouts)
    service = StatisticsService(sqlite_store.workouts)
    rows = {r["muscle_group"]: r for r in service.statistics(ALICE, "2024-01-01", "2024-01-31")}
    assert rows["chest"] == {"muscle_group": "chest", "workout_count": 2, "total_reps": 18, "avg_weight": 70.0}
    assert rows["legs"]["avg_weight"] == 0


def test_statistics_on_document_store(firestore_store):
    _seed(firestore_store.workouts)
    service = StatisticsService(firestore_store.workouts)
    rows = {r["muscle_group"]: r for r in service.statistics(ALICE, "2024-01-01", "2024-01-31")}
    assert rows["chest"]["workout_count"] == 2
    assert rows["chest"]["avg_weight"] == 70.0


def test_single_bound_is_rejected(sqlite_store):
    service = StatisticsService(sqlite_store.workouts)
    with pytest.raises(ValidationError):
        service.statistics(ALICE, "2024-01-01", None)


def test_default_range_is_current_jst_month(sqlite_store):
    service = StatisticsService(sqlite_store.workouts)
    with mock.patch("stats_service.DateTools.current_month_range", return_value=("2024-01-01", "2024-01-31")):
        _seed(sqlite_store.workouts)
        overview = service.overview(ALICE)
    assert overview["start_date"] == "2024-01-01"
    assert overview["end_date"] == "2024-01-31"
    assert overview["total_workouts"] == 3
    assert overview["total_volume"] == 18 * 70.0


def test_transient_failure_degrades_to_empty():
    repo = mock.Mock()
    repo.fetch_all_workouts.side_effect = TransientError("database unavailable", "locked")
    service = StatisticsService(repo)
    assert service.statistics(ALICE, "2024-01-01", "2024-01-31") == []
