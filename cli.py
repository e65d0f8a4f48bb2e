import argparse
import json
import logging
import shutil

from catalog_service import CatalogService
from config import configure_logging, load_settings
from db import Database, open_store
from friend_service import FriendService
from identity import Identity
from migrate import migrate
from seed_sample_data import seed
from stats_service import StatisticsService

logger = logging.getLogger(__name__)


def backup_db(db_path: str, backup_path: str) -> None:
    Database(db_path).vacuum()
    shutil.copy(db_path, backup_path)
    logger.info("Backed up %s to %s", db_path, backup_path)


def restore_db(backup_path: str, db_path: str) -> None:
    shutil.copy(backup_path, db_path)
    logger.info("Restored %s from %s", db_path, backup_path)


def serve(yaml_path: str, db_path: str | None, host: str, port: int) -> None:
    import uvicorn
    from rest_api import TrainingAPI

    api = TrainingAPI(db_path=db_path, yaml_path=yaml_path)
    uvicorn.run(api.app, host=host, port=port)


def _store(args):
    settings = load_settings(args.yaml, db_path=args.db)
    configure_logging(settings.log_level)
    return settings, open_store(settings)


def _add_store_args(parser: argparse.ArgumentParser, user: bool = True) -> None:
    parser.add_argument("--db", default=None)
    parser.add_argument("--yaml", default="settings.yaml")
    if user:
        parser.add_argument("--user", required=True, help="uid the command runs as")


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Training log utility commands")
    sub = parser.add_subparsers(dest="cmd", required=True)

    srv = sub.add_parser("serve")
    srv.add_argument("--db", default=None)
    srv.add_argument("--yaml", default="settings.yaml")
    srv.add_argument("--host", default="127.0.0.1")
    srv.add_argument("--port", type=int, default=8000)

    demo = sub.add_parser("demo")
    demo.add_argument("--db", default="training.db")
    demo.add_argument("--user", default="demo-user")

    bkp = sub.add_parser("backup")
    bkp.add_argument("--db", default="training.db")
    bkp.add_argument("--out", default="backup.db")

    rst = sub.add_parser("restore")
    rst.add_argument("--in", dest="src", default="backup.db")
    rst.add_argument("--db", default="training.db")

    mig = sub.add_parser("migrate")
    mig.add_argument("--db", default="training.db")
    mig.add_argument("--owner", default=None)

    _add_store_args(sub.add_parser("repair-codes"), user=True)
    _add_store_args(sub.add_parser("dedupe"), user=True)
    _add_store_args(sub.add_parser("repair-friends"), user=True)

    stats = sub.add_parser("stats")
    _add_store_args(stats, user=True)
    stats.add_argument("--start", default=None)
    stats.add_argument("--end", default=None)

    args = parser.parse_args(argv)

    if args.cmd == "serve":
        serve(args.yaml, args.db, args.host, args.port)
    elif args.cmd == "demo":
        configure_logging()
        seed(args.db, args.user)
    elif args.cmd == "backup":
        configure_logging()
        backup_db(args.db, args.out)
    elif args.cmd == "restore":
        configure_logging()
        restore_db(args.src, args.db)
    elif args.cmd == "migrate":
        configure_logging()
        print(json.dumps(migrate(args.db, args.owner)))
    else:
        settings, store = _store(args)
        identity = Identity(uid=args.user)
        if args.cmd == "repair-codes":
            catalog = CatalogService(store.exercises, settings.legacy_new_namespace)
            print(f"{catalog.repair_item_codes(identity)} item codes reassigned")
        elif args.cmd == "dedupe":
            catalog = CatalogService(store.exercises, settings.legacy_new_namespace)
            print(f"{catalog.remove_duplicates(identity)} duplicate exercises removed")
        elif args.cmd == "repair-friends":
            social = FriendService(store, settings.feed_limit)
            print(f"{social.repair_edges(identity)} friend edges created")
        elif args.cmd == "stats":
            overview = StatisticsService(store.workouts).overview(identity, args.start, args.end)
            print(json.dumps(overview, indent=2))


if __name__ == "__main__":
    main()
