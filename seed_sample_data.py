import datetime

from catalog_service import CatalogService, EXERCISE_SUGGESTIONS
from db import SQLiteStore
from identity import Identity
from tools import DateTools, Weight
from workout_service import WorkoutService

SAMPLE_SETS = [
    ("chest", "Bench Press", 10, 60.0),
    ("chest", "Bench Press", 8, 70.0),
    ("chest", "Bench Press", 6, 75.0),
    ("chest", "Push-up", 20, "bodyweight"),
    ("legs", "Barbell Squat", 8, 90.0),
    ("legs", "Barbell Squat", 8, 90.0),
]


def seed(db_path: str = "training.db", user_id: str = "demo-user") -> bool:
    """Insert a sample catalog and one day of workouts; returns False if data exists."""
    store = SQLiteStore(db_path)
    identity = Identity(uid=user_id, email=f"{user_id}@example.com", display_name="Demo")
    workouts = WorkoutService(store.workouts)
    if workouts.list(identity):
        print("Database already contains workouts")
        return False

    catalog = CatalogService(store.exercises)
    for group in ("chest", "legs"):
        for name in EXERCISE_SUGGESTIONS[group][:3]:
            catalog.create_exercise(identity, group, name)

    today = DateTools.current_jst_date_string()
    start = datetime.datetime.now(datetime.timezone.utc)
    for offset, (group, name, reps, weight) in enumerate(SAMPLE_SETS):
        workouts.workouts.create(
            user_id,
            today,
            group,
            name,
            reps,
            Weight.parse(weight).to_storage(),
            "",
            True,
            DateTools.utc_timestamp(start + datetime.timedelta(minutes=3 * offset)),
        )
    print("Seed data inserted")
    return True


if __name__ == "__main__":
    seed()
