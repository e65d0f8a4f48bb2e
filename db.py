import sqlite3
import aiosqlite
import logging
from contextlib import contextmanager, asynccontextmanager
from typing import Iterable, List, Optional, Tuple

from errors import NotFoundError, TransientError
from tools import DateTools

logger = logging.getLogger(__name__)


class Database:
    """Provides SQLite connection management and schema initialization."""

    _TABLE_DEFINITIONS = {
        "user_profiles": (
            """CREATE TABLE user_profiles (
                    id TEXT PRIMARY KEY,
                    email TEXT,
                    name TEXT,
                    photo_url TEXT,
                    is_public_profile INTEGER NOT NULL DEFAULT 0,
                    allow_friend_requests INTEGER NOT NULL DEFAULT 1,
                    created_at TEXT,
                    updated_at TEXT
                );""",
            [
                "id",
                "email",
                "name",
                "photo_url",
                "is_public_profile",
                "allow_friend_requests",
                "created_at",
                "updated_at",
            ],
        ),
        "workouts": (
            """CREATE TABLE workouts (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT,
                    date TEXT NOT NULL,
                    muscle_group TEXT NOT NULL,
                    exercise_name TEXT NOT NULL,
                    reps INTEGER,
                    weight REAL,
                    notes TEXT,
                    is_public INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT,
                    updated_at TEXT
                );""",
            [
                "id",
                "user_id",
                "date",
                "muscle_group",
                "exercise_name",
                "reps",
                "weight",
                "notes",
                "is_public",
                "created_at",
                "updated_at",
            ],
        ),
        "muscle_groups": (
            """CREATE TABLE muscle_groups (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    color TEXT NOT NULL,
                    position INTEGER NOT NULL DEFAULT 0
                );""",
            ["id", "name", "color", "position"],
        ),
        "exercises": (
            """CREATE TABLE exercises (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT,
                    muscle_group TEXT NOT NULL,
                    name TEXT NOT NULL,
                    sort_order INTEGER NOT NULL DEFAULT 0,
                    itemid TEXT,
                    created_at TEXT,
                    updated_at TEXT
                );""",
            [
                "id",
                "user_id",
                "muscle_group",
                "name",
                "sort_order",
                "itemid",
                "created_at",
                "updated_at",
            ],
        ),
        "friends": (
            """CREATE TABLE friends (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    friend_id TEXT NOT NULL,
                    friend_email TEXT,
                    friend_name TEXT,
                    status TEXT NOT NULL DEFAULT 'accepted',
                    created_at TEXT
                );""",
            [
                "id",
                "user_id",
                "friend_id",
                "friend_email",
                "friend_name",
                "status",
                "created_at",
            ],
        ),
        "friend_requests": (
            """CREATE TABLE friend_requests (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    from_user_id TEXT NOT NULL,
                    to_user_id TEXT NOT NULL,
                    from_user_email TEXT,
                    from_user_name TEXT,
                    status TEXT NOT NULL DEFAULT 'pending',
                    created_at TEXT,
                    updated_at TEXT
                );""",
            [
                "id",
                "from_user_id",
                "to_user_id",
                "from_user_email",
                "from_user_name",
                "status",
                "created_at",
                "updated_at",
            ],
        ),
    }

    DEFAULT_MUSCLE_GROUPS = [
        ("chest", "Chest", "bg-red-500"),
        ("shoulders", "Shoulders", "bg-orange-500"),
        ("arms", "Arms", "bg-yellow-500"),
        ("back", "Back", "bg-green-500"),
        ("legs", "Legs", "bg-blue-500"),
        ("core", "Core", "bg-purple-500"),
    ]

    def __init__(self, db_path: str = "training.db") -> None:
        self._db_path = db_path
        self._ensure_schema()
        self._seed_muscle_groups()

    @contextmanager
    def _connection(self):
        try:
            connection = sqlite3.connect(self._db_path)
        except sqlite3.OperationalError as e:
            raise TransientError("database unavailable", str(e)) from e
        try:
            yield connection
            connection.commit()
        except sqlite3.OperationalError as e:
            raise TransientError("database unavailable", str(e)) from e
        finally:
            connection.close()

    def _ensure_schema(self) -> None:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute("PRAGMA foreign_keys=off;")
            for table, (sql, columns) in self._TABLE_DEFINITIONS.items():
                self._ensure_table(conn, table, sql, columns)
            cursor.execute("PRAGMA foreign_keys=on;")

    def _ensure_table(
        self, conn: sqlite3.Connection, table: str, sql: str, columns: List[str]
    ) -> None:
        cur = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?;", (table,)
        )
        if cur.fetchone() is None:
            conn.execute(sql)
            return

        cur = conn.execute(f"PRAGMA table_info({table});")
        existing_cols = [row[1] for row in cur.fetchall()]
        if existing_cols == columns:
            return

        logger.info("Rebuilding table %s to match current schema", table)
        conn.execute(f"DROP TABLE IF EXISTS {table}_old;")
        conn.execute(f"ALTER TABLE {table} RENAME TO {table}_old;")
        conn.execute(sql)

        common = [c for c in existing_cols if c in columns]
        if common:
            cols = ", ".join(common)
            missing = [c for c in columns if c not in existing_cols]
            if missing:
                def default_val(col: str) -> str:
                    if col in ("is_public", "is_public_profile", "sort_order", "position"):
                        return "0"
                    if col == "allow_friend_requests":
                        return "1"
                    if col == "status":
                        return "'pending'" if table == "friend_requests" else "'accepted'"
                    if col == "color":
                        return "'#3B82F6'"
                    return "NULL"

                defaults = ", ".join(default_val(c) for c in missing)
                conn.execute(
                    f"INSERT INTO {table} ({cols}, {', '.join(missing)}) SELECT {cols}, {defaults} FROM {table}_old;"
                )
            else:
                conn.execute(
                    f"INSERT INTO {table} ({cols}) SELECT {cols} FROM {table}_old;"
                )
        conn.execute(f"DROP TABLE {table}_old;")

    def _seed_muscle_groups(self) -> None:
        with self._connection() as conn:
            for position, (gid, name, color) in enumerate(self.DEFAULT_MUSCLE_GROUPS):
                conn.execute(
                    "INSERT OR IGNORE INTO muscle_groups (id, name, color, position) VALUES (?, ?, ?, ?);",
                    (gid, name, color, position),
                )

    def vacuum(self) -> None:
        """Run SQLite VACUUM to reduce database size."""
        with self._connection() as conn:
            conn.execute("VACUUM;")


class BaseRepository(Database):
    """Base repository providing helper methods."""

    def execute(self, query: str, params: Tuple = ()) -> int:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.lastrowid

    def execute_many(self, query: str, param_rows: Iterable[Tuple]) -> None:
        """Run ``query`` once per parameter row inside a single transaction."""
        with self._connection() as conn:
            conn.executemany(query, list(param_rows))

    def fetch_all(self, query: str, params: Tuple = ()) -> List[Tuple]:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.fetchall()

    def fetch_dicts(self, query: str, params: Tuple = ()) -> List[dict]:
        with self._connection() as conn:
            conn.row_factory = sqlite3.Row
            rows = conn.execute(query, params).fetchall()
            return [dict(row) for row in rows]

    def _require(self, table: str, row_id: int, label: str) -> None:
        rows = self.fetch_all(f"SELECT id FROM {table} WHERE id = ?;", (row_id,))
        if not rows:
            raise NotFoundError(f"{label} not found")

    def _delete_all(self, table: str) -> None:
        self.execute(f"DELETE FROM {table};")


class AsyncDatabase(Database):
    """Provides asynchronous connection management."""

    @asynccontextmanager
    async def _async_connection(self):
        try:
            conn = await aiosqlite.connect(self._db_path)
        except sqlite3.OperationalError as e:
            raise TransientError("database unavailable", str(e)) from e
        try:
            yield conn
            await conn.commit()
        finally:
            await conn.close()


class AsyncBaseRepository(AsyncDatabase):
    """Asynchronous variant of BaseRepository using aiosqlite."""

    async def execute(self, query: str, params: Tuple = ()) -> int:
        async with self._async_connection() as conn:
            cursor = await conn.execute(query, params)
            await conn.commit()
            return cursor.lastrowid

    async def fetch_all(self, query: str, params: Tuple = ()) -> List[Tuple]:
        async with self._async_connection() as conn:
            cursor = await conn.execute(query, params)
            rows = await cursor.fetchall()
            return rows


def _workout_record(row: dict) -> dict:
    row["is_public"] = bool(row["is_public"])
    return row


def _exercise_record(row: dict) -> dict:
    row["order"] = row.pop("sort_order")
    return row


def _profile_record(row: dict) -> dict:
    row["is_public_profile"] = bool(row["is_public_profile"])
    row["allow_friend_requests"] = bool(row["allow_friend_requests"])
    return row


class WorkoutRepository(BaseRepository):
    """Repository for workout table operations."""

    COLUMNS = (
        "id, user_id, date, muscle_group, exercise_name, reps, weight, notes, "
        "is_public, created_at, updated_at"
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
    ) -> int:
        return self.execute(
            "INSERT INTO workouts (user_id, date, muscle_group, exercise_name, reps, weight, notes, is_public, created_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?);",
            (
                user_id,
                date,
                muscle_group,
                exercise_name,
                reps,
                weight,
                notes,
                int(is_public),
                created_at or DateTools.utc_timestamp(),
            ),
        )

    def fetch(self, workout_id: int) -> Optional[dict]:
        rows = self.fetch_dicts(
            f"SELECT {self.COLUMNS} FROM workouts WHERE id = ?;", (workout_id,)
        )
        return _workout_record(rows[0]) if rows else None

    def fetch_all_workouts(
        self,
        user_id: Optional[str] = None,
        date: Optional[str] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> List[dict]:
        query = f"SELECT {self.COLUMNS} FROM workouts"
        params: list[str] = []
        where_clauses: list[str] = []
        if user_id is not None:
            where_clauses.append("user_id = ?")
            params.append(user_id)
        if date:
            where_clauses.append("date = ?")
            params.append(date)
        if start_date:
            where_clauses.append("date >= ?")
            params.append(start_date)
        if end_date:
            where_clauses.append("date <= ?")
            params.append(end_date)
        if where_clauses:
            query += " WHERE " + " AND ".join(where_clauses)
        query += " ORDER BY date DESC, created_at DESC, id DESC;"
        return [_workout_record(r) for r in self.fetch_dicts(query, tuple(params))]

    def fetch_public_for_users(self, user_ids: List[str], limit: int) -> List[dict]:
        if not user_ids:
            return []
        placeholders = ",".join(["?" for _ in user_ids])
        rows = self.fetch_dicts(
            f"SELECT {self.COLUMNS} FROM workouts WHERE user_id IN ({placeholders}) AND is_public = 1 "
            "ORDER BY created_at DESC, id DESC LIMIT ?;",
            (*user_ids, limit),
        )
        return [_workout_record(r) for r in rows]

    def update(
        self,
        workout_id: int,
        date: str,
        muscle_group: str,
        exercise_name: str,
        reps: Optional[int],
        weight: Optional[float],
        notes: str | None,
        is_public: bool = False,
    ) -> None:
        self._require("workouts", workout_id, "workout")
        self.execute(
            "UPDATE workouts SET date = ?, muscle_group = ?, exercise_name = ?, reps = ?, weight = ?, notes = ?, is_public = ?, updated_at = ? WHERE id = ?;",
            (
                date,
                muscle_group,
                exercise_name,
                reps,
                weight,
                notes,
                int(is_public),
                DateTools.utc_timestamp(),
                workout_id,
            ),
        )

    def delete(self, workout_id: int) -> None:
        self._require("workouts", workout_id, "workout")
        self.execute("DELETE FROM workouts WHERE id = ?;", (workout_id,))

    def assign_owner(self, user_id: str) -> int:
        """Give rows without an owner to ``user_id``; returns the count."""
        rows = self.fetch_all(
            "SELECT id FROM workouts WHERE user_id IS NULL OR user_id = '';"
        )
        self.execute(
            "UPDATE workouts SET user_id = ? WHERE user_id IS NULL OR user_id = '';",
            (user_id,),
        )
        return len(rows)


class MuscleGroupRepository(BaseRepository):
    """Static muscle group lookup."""

    def fetch_all(self) -> List[dict]:
        return self.fetch_dicts(
            "SELECT id, name, color FROM muscle_groups ORDER BY position, id;"
        )


class AsyncMuscleGroupRepository(AsyncBaseRepository):
    async def fetch_all_groups(self) -> List[dict]:
        rows = await self.fetch_all(
            "SELECT id, name, color FROM muscle_groups ORDER BY position, id;"
        )
        return [{"id": gid, "name": name, "color": color} for gid, name, color in rows]


class ExerciseRepository(BaseRepository):
    """Repository for a user's exercise catalog."""

    COLUMNS = "id, user_id, muscle_group, name, sort_order, itemid, created_at, updated_at"

    def fetch(self, exercise_id: int) -> Optional[dict]:
        rows = self.fetch_dicts(
            f"SELECT {self.COLUMNS} FROM exercises WHERE id = ?;", (exercise_id,)
        )
        return _exercise_record(rows[0]) if rows else None

    def fetch_for_user(
        self, user_id: str, muscle_group: Optional[str] = None
    ) -> List[dict]:
        query = f"SELECT {self.COLUMNS} FROM exercises WHERE user_id = ?"
        params: list[str] = [user_id]
        if muscle_group:
            query += " AND muscle_group = ?"
            params.append(muscle_group)
        query += " ORDER BY muscle_group, sort_order, id;"
        return [_exercise_record(r) for r in self.fetch_dicts(query, tuple(params))]

    def fetch_all_exercises(self) -> List[dict]:
        return [
            _exercise_record(r)
            for r in self.fetch_dicts(f"SELECT {self.COLUMNS} FROM exercises ORDER BY id;")
        ]

    def fetch_item_codes(self) -> List[str]:
        rows = self.fetch_all("SELECT itemid FROM exercises WHERE itemid IS NOT NULL;")
        return [r[0] for r in rows]

    def max_order(self, user_id: str, muscle_group: str) -> int:
        rows = self.fetch_all(
            "SELECT MAX(sort_order) FROM exercises WHERE user_id = ? AND muscle_group = ?;",
            (user_id, muscle_group),
        )
        return -1 if rows[0][0] is None else int(rows[0][0])

    def find(self, user_id: str, muscle_group: str, name: str) -> List[dict]:
        rows = self.fetch_dicts(
            f"SELECT {self.COLUMNS} FROM exercises WHERE user_id = ? AND muscle_group = ? AND name = ?;",
            (user_id, muscle_group, name),
        )
        return [_exercise_record(r) for r in rows]

    def add(
        self,
        user_id: str,
        muscle_group: str,
        name: str,
        order: int,
        itemid: str,
    ) -> int:
        return self.execute(
            "INSERT INTO exercises (user_id, muscle_group, name, sort_order, itemid, created_at) VALUES (?, ?, ?, ?, ?, ?);",
            (user_id, muscle_group, name, order, itemid, DateTools.utc_timestamp()),
        )

    def update(self, exercise_id: int, muscle_group: str, name: str) -> None:
        self._require("exercises", exercise_id, "exercise")
        self.execute(
            "UPDATE exercises SET muscle_group = ?, name = ?, updated_at = ? WHERE id = ?;",
            (muscle_group, name, DateTools.utc_timestamp(), exercise_id),
        )

    def remove(self, exercise_id: int) -> None:
        self._require("exercises", exercise_id, "exercise")
        self.execute("DELETE FROM exercises WHERE id = ?;", (exercise_id,))

    def remove_many(self, exercise_ids: Iterable[int]) -> None:
        self.execute_many(
            "DELETE FROM exercises WHERE id = ?;", [(eid,) for eid in exercise_ids]
        )

    def update_order(self, exercise_ids: List[int]) -> None:
        """Persist ``order = index`` for every id in one transaction."""
        now = DateTools.utc_timestamp()
        self.execute_many(
            "UPDATE exercises SET sort_order = ?, updated_at = ? WHERE id = ?;",
            [(pos, now, eid) for pos, eid in enumerate(exercise_ids)],
        )

    def set_item_codes(self, codes: dict) -> None:
        now = DateTools.utc_timestamp()
        self.execute_many(
            "UPDATE exercises SET itemid = ?, updated_at = ? WHERE id = ?;",
            [(code, now, eid) for eid, code in codes.items()],
        )

    def assign_owner(self, user_id: str) -> int:
        rows = self.fetch_all(
            "SELECT id FROM exercises WHERE user_id IS NULL OR user_id = '';"
        )
        self.execute(
            "UPDATE exercises SET user_id = ?, updated_at = ? WHERE user_id IS NULL OR user_id = '';",
            (user_id, DateTools.utc_timestamp()),
        )
        return len(rows)


class AsyncExerciseRepository(AsyncBaseRepository):
    async def fetch_for_user(self, user_id: str) -> List[dict]:
        rows = await self.fetch_all(
            "SELECT id, muscle_group, name, sort_order, itemid FROM exercises "
            "WHERE user_id = ? ORDER BY muscle_group, sort_order, id;",
            (user_id,),
        )
        return [
            {"id": eid, "muscle_group": group, "name": name, "order": order, "itemid": itemid}
            for eid, group, name, order, itemid in rows
        ]


class UserProfileRepository(BaseRepository):
    """Repository for user profiles keyed by identity uid."""

    COLUMNS = (
        "id, email, name, photo_url, is_public_profile, allow_friend_requests, "
        "created_at, updated_at"
    )
    UPDATABLE = ("name", "photo_url", "is_public_profile", "allow_friend_requests")

    def fetch(self, user_id: str) -> Optional[dict]:
        rows = self.fetch_dicts(
            f"SELECT {self.COLUMNS} FROM user_profiles WHERE id = ?;", (user_id,)
        )
        return _profile_record(rows[0]) if rows else None

    def find_by_email(self, email: str) -> Optional[dict]:
        rows = self.fetch_dicts(
            f"SELECT {self.COLUMNS} FROM user_profiles WHERE email = ? ORDER BY created_at LIMIT 1;",
            (email,),
        )
        return _profile_record(rows[0]) if rows else None

    def add(self, profile: dict) -> None:
        self.execute(
            "INSERT INTO user_profiles (id, email, name, photo_url, is_public_profile, allow_friend_requests, created_at) VALUES (?, ?, ?, ?, ?, ?, ?);",
            (
                profile["id"],
                profile.get("email"),
                profile.get("name"),
                profile.get("photo_url"),
                int(profile.get("is_public_profile", False)),
                int(profile.get("allow_friend_requests", True)),
                profile.get("created_at") or DateTools.utc_timestamp(),
            ),
        )

    def update(self, user_id: str, fields: dict) -> None:
        if self.fetch(user_id) is None:
            raise NotFoundError("Profile not found")
        changes = {k: v for k, v in fields.items() if k in self.UPDATABLE}
        if not changes:
            return
        assignments = ", ".join(f"{k} = ?" for k in changes)
        values = [int(v) if isinstance(v, bool) else v for v in changes.values()]
        self.execute(
            f"UPDATE user_profiles SET {assignments}, updated_at = ? WHERE id = ?;",
            (*values, DateTools.utc_timestamp(), user_id),
        )


class FriendRepository(BaseRepository):
    """Directed friend edges; a friendship is two rows."""

    COLUMNS = "id, user_id, friend_id, friend_email, friend_name, status, created_at"

    def fetch_for_user(self, user_id: str) -> List[dict]:
        return self.fetch_dicts(
            f"SELECT {self.COLUMNS} FROM friends WHERE user_id = ? AND status = 'accepted' ORDER BY created_at, id;",
            (user_id,),
        )

    def find(self, user_id: str, friend_id: str) -> List[dict]:
        return self.fetch_dicts(
            f"SELECT {self.COLUMNS} FROM friends WHERE user_id = ? AND friend_id = ?;",
            (user_id, friend_id),
        )

    def add(
        self,
        user_id: str,
        friend_id: str,
        friend_email: str | None,
        friend_name: str | None,
        status: str = "accepted",
    ) -> int:
        return self.execute(
            "INSERT INTO friends (user_id, friend_id, friend_email, friend_name, status, created_at) VALUES (?, ?, ?, ?, ?, ?);",
            (user_id, friend_id, friend_email, friend_name, status, DateTools.utc_timestamp()),
        )

    def ensure(
        self,
        user_id: str,
        friend_id: str,
        friend_email: str | None,
        friend_name: str | None,
    ) -> bool:
        """Insert the edge unless it exists; returns whether a row was written."""
        if self.find(user_id, friend_id):
            return False
        self.add(user_id, friend_id, friend_email, friend_name)
        return True

    def remove(self, edge_id: int) -> None:
        self.execute("DELETE FROM friends WHERE id = ?;", (edge_id,))


class FriendRequestRepository(BaseRepository):
    """Pending/accepted/rejected friend requests."""

    COLUMNS = (
        "id, from_user_id, to_user_id, from_user_email, from_user_name, status, "
        "created_at, updated_at"
    )

    def add(
        self,
        from_user_id: str,
        to_user_id: str,
        from_user_email: str | None,
        from_user_name: str | None,
    ) -> int:
        return self.execute(
            "INSERT INTO friend_requests (from_user_id, to_user_id, from_user_email, from_user_name, status, created_at) VALUES (?, ?, ?, ?, 'pending', ?);",
            (from_user_id, to_user_id, from_user_email, from_user_name, DateTools.utc_timestamp()),
        )

    def fetch(self, request_id: int) -> Optional[dict]:
        rows = self.fetch_dicts(
            f"SELECT {self.COLUMNS} FROM friend_requests WHERE id = ?;", (request_id,)
        )
        return rows[0] if rows else None

    def find(self, from_user_id: str, to_user_id: str) -> List[dict]:
        return self.fetch_dicts(
            f"SELECT {self.COLUMNS} FROM friend_requests WHERE from_user_id = ? AND to_user_id = ?;",
            (from_user_id, to_user_id),
        )

    def fetch_pending_for(self, to_user_id: str) -> List[dict]:
        return self.fetch_dicts(
            f"SELECT {self.COLUMNS} FROM friend_requests WHERE to_user_id = ? AND status = 'pending' ORDER BY created_at, id;",
            (to_user_id,),
        )

    def fetch_accepted_involving(self, user_id: str) -> List[dict]:
        return self.fetch_dicts(
            f"SELECT {self.COLUMNS} FROM friend_requests WHERE status = 'accepted' AND (from_user_id = ? OR to_user_id = ?) ORDER BY id;",
            (user_id, user_id),
        )

    def set_status(self, request_id: int, status: str) -> None:
        self._require("friend_requests", request_id, "friend request")
        self.execute(
            "UPDATE friend_requests SET status = ?, updated_at = ? WHERE id = ?;",
            (status, DateTools.utc_timestamp(), request_id),
        )


class SQLiteStore:
    """Bundle of SQLite repositories sharing one database file."""

    backend = "sqlite"

    def __init__(self, db_path: str = "training.db") -> None:
        self.db_path = db_path
        self.profiles = UserProfileRepository(db_path)
        self.workouts = WorkoutRepository(db_path)
        self.muscle_groups = MuscleGroupRepository(db_path)
        self.exercises = ExerciseRepository(db_path)
        self.friends = FriendRepository(db_path)
        self.friend_requests = FriendRequestRepository(db_path)


def open_store(settings) -> "SQLiteStore":
    """Build the repository bundle selected by ``settings.backend``."""
    if settings.backend == "firestore":
        from firestore_store import FirestoreStore
        return FirestoreStore.from_settings(settings)
    return SQLiteStore(settings.db_path)
