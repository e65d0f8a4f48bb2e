import logging
import sqlite3
import sys

from db import ExerciseRepository, WorkoutRepository

logger = logging.getLogger(__name__)


def _columns(cur: sqlite3.Cursor, table: str) -> list[str]:
    cur.execute(f"PRAGMA table_info({table});")
    return [r[1] for r in cur.fetchall()]


def migrate(db_path: str = "training.db", owner: str | None = None) -> dict:
    """Upgrade a legacy single-user database in place.

    The legacy ``workouts`` table has no owner, visibility or update stamp
    and stores ``created_at`` as ``YYYY-MM-DD HH:MM:SS`` in UTC. Rows without
    an owner are given to ``owner`` when one is supplied.
    """
    conn = sqlite3.connect(db_path)
    cur = conn.cursor()
    cols = _columns(cur, "workouts")
    if cols:
        if "user_id" not in cols:
            cur.execute("ALTER TABLE workouts ADD COLUMN user_id TEXT;")
        if "is_public" not in cols:
            cur.execute("ALTER TABLE workouts ADD COLUMN is_public INTEGER NOT NULL DEFAULT 0;")
        if "updated_at" not in cols:
            cur.execute("ALTER TABLE workouts ADD COLUMN updated_at TEXT;")
        cur.execute(
            "UPDATE workouts SET created_at = replace(created_at, ' ', 'T') || '+00:00' "
            "WHERE created_at LIKE '____-__-__ __:__:__';"
        )
    conn.commit()
    conn.close()

    # Opening the repositories rebuilds every table to the current layout.
    workouts = WorkoutRepository(db_path)
    exercises = ExerciseRepository(db_path)
    result = {"workouts": 0, "exercises": 0}
    if owner:
        result["workouts"] = workouts.assign_owner(owner)
        result["exercises"] = exercises.assign_owner(owner)
        logger.info(
            "Assigned %d workouts and %d exercises to %s",
            result["workouts"],
            result["exercises"],
            owner,
        )
    return result


if __name__ == "__main__":
    path = sys.argv[1] if len(sys.argv) > 1 else "training.db"
    user = sys.argv[2] if len(sys.argv) > 2 else None
    print(migrate(path, user))
