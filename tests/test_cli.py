import json
import os
import sys

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from cli import backup_db, main, restore_db
from db import ExerciseRepository, FriendRepository, FriendRequestRepository, WorkoutRepository


def test_demo_seeds_once(tmp_path, capsys):
    db_file = str(tmp_path / "demo.db")
    main(["demo", "--db", db_file])
    rows = WorkoutRepository(db_file).fetch_all_workouts(user_id="demo-user")
    assert len(rows) == 6
    assert any(r["weight"] == -1.0 for r in rows)
    assert len(ExerciseRepository(db_file).fetch_for_user("demo-user")) == 6
    main(["demo", "--db", db_file])
    assert "already contains workouts" in capsys.readouterr().out
    assert len(WorkoutRepository(db_file).fetch_all_workouts()) == 6


def test_backup_and_restore(tmp_path):
    db_file = str(tmp_path / "main.db")
    backup = str(tmp_path / "backup.db")
    repo = WorkoutRepository(db_file)
    repo.create("alice", "2024-01-01", "chest", "Bench", 5, 80.0)
    backup_db(db_file, backup)
    repo.create("alice", "2024-01-02", "chest", "Bench", 5, 85.0)
    restore_db(backup, db_file)
    assert [r["date"] for r in WorkoutRepository(db_file).fetch_all_workouts()] == ["2024-01-01"]


def test_stats_prints_overview(tmp_path, capsys):
    db_file = str(tmp_path / "stats.db")
    WorkoutRepository(db_file).create("alice", "2024-01-05", "legs", "Squat", 5, 100.0)
    main([
        "stats", "--db", db_file, "--yaml", str(tmp_path / "none.yaml"),
        "--user", "alice", "--start", "2024-01-01", "--end", "2024-01-31",
    ])
    overview = json.loads(capsys.readouterr().out)
    assert overview["total_workouts"] == 1
    assert overview["stats"][0]["muscle_group"] == "legs"


def test_maintenance_commands(tmp_path, capsys):
    db_file = str(tmp_path / "maint.db")
    yaml_file = str(tmp_path / "none.yaml")
    exercises = ExerciseRepository(db_file)
    exercises.add("alice", "chest", "Bench", 0, "0007")
    exercises.add("alice", "chest", "Bench", 1, "0009")
    main(["dedupe", "--db", db_file, "--yaml", yaml_file, "--user", "alice"])
    main(["repair-codes", "--db", db_file, "--yaml", yaml_file, "--user", "alice"])
    out = capsys.readouterr().out
    assert "1 duplicate exercises removed" in out
    assert "1 item codes reassigned" in out
    assert [r["itemid"] for r in exercises.fetch_for_user("alice")] == ["0001"]

    rid = FriendRequestRepository(db_file).add("alice", "bob", "alice@example.com", "Alice")
    FriendRequestRepository(db_file).set_status(rid, "accepted")
    main(["repair-friends", "--db", db_file, "--yaml", yaml_file, "--user", "bob"])
    assert "2 friend edges created" in capsys.readouterr().out
    assert len(FriendRepository(db_file).find("bob", "alice")) == 1


def test_migrate_command(tmp_path, capsys):
    db_file = str(tmp_path / "legacy.db")
    WorkoutRepository(db_file).create(None, "2024-01-01", "core", "Plank", 1, -1.0)
    main(["migrate", "--db", db_file, "--owner", "alice"])
    assert json.loads(capsys.readouterr().out) == {"workouts": 1, "exercises": 0}
