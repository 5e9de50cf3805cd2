import argparse
import asyncio
import json
import shutil
from typing import Optional

from config import load_settings
from db import AsyncKeyValueRepository, STORAGE_KEY, WorkoutRepository
from export_service import ExportService
from logging_config import configure_logging
from models import DateRange, ExportOptions
from session_service import SessionService
from stats_service import StatisticsService


async def _open_repository(db_path: str, storage_key: str = STORAGE_KEY) -> WorkoutRepository:
    repo = WorkoutRepository(AsyncKeyValueRepository(db_path), storage_key=storage_key)
    await repo.load_from_storage()
    return repo


def export_workouts(
    db_path: str,
    fmt: str,
    out_path: str,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    include_notes: bool = True,
    group_by_date: bool = False,
    storage_key: str = STORAGE_KEY,
) -> None:
    repo = asyncio.run(_open_repository(db_path, storage_key))
    date_range = None
    if start_date or end_date:
        date_range = DateRange(
            start=StatisticsService.date_bound(start_date or "0001-01-01"),
            end=StatisticsService.date_bound(end_date or "9999-12-31", end=True),
        )
    options = ExportOptions(
        format=fmt,
        date_range=date_range,
        include_notes=include_notes,
        group_by_date=group_by_date,
    )
    data = ExportService.export_workouts(repo.workouts, options)
    if isinstance(data, bytes):
        with open(out_path, "wb") as f:
            f.write(data)
    else:
        with open(out_path, "w", encoding="utf-8") as f:
            f.write(data)


def workout_report(db_path: str, storage_key: str = STORAGE_KEY) -> dict:
    repo = asyncio.run(_open_repository(db_path, storage_key))
    return ExportService.generate_workout_report(repo.workouts).to_wire()


def workout_stats(
    db_path: str, storage_key: str = STORAGE_KEY, favorite_limit: int = 5
) -> dict:
    repo = asyncio.run(_open_repository(db_path, storage_key))
    stats = StatisticsService(repo, favorite_limit=favorite_limit)
    return stats.get_workout_stats().to_wire()


def search_workouts(
    db_path: str, query: str, storage_key: str = STORAGE_KEY
) -> list[dict]:
    repo = asyncio.run(_open_repository(db_path, storage_key))
    return [
        {"id": w.id, "name": w.name, "date": w.date.date().isoformat()}
        for w in StatisticsService(repo).search_workouts(query)
    ]


def backup_db(db_path: str, backup_path: str) -> None:
    shutil.copy(db_path, backup_path)


def restore_db(backup_path: str, db_path: str) -> None:
    shutil.copy(backup_path, db_path)


async def _demo(db_path: str, storage_key: str = STORAGE_KEY) -> bool:
    repo = await _open_repository(db_path, storage_key)
    if repo.workouts:
        return False
    sessions = SessionService(repo)
    sessions.start_workout("Demo session", tags=["strength"])
    sessions.add_exercise_to_current_workout(
        {
            "id": "bench-press",
            "name": "Bench Press",
            "muscleGroups": ["chest", "triceps"],
            "equipment": "barbell",
        }
    )
    sessions.add_set_to_exercise("bench-press", {"reps": 5, "weight": 100.0, "restTime": 120})
    sessions.add_set_to_exercise("bench-press", {"reps": 5, "weight": 105.0, "restTime": 120})
    return await sessions.finish_current_workout() is not None


def demo_data(db_path: str, storage_key: str = STORAGE_KEY) -> None:
    """Populate the database with a demo workout if empty."""
    if asyncio.run(_demo(db_path, storage_key)):
        print("Demo data inserted")
    else:
        print("Database already contains workouts")


def main() -> None:
    parser = argparse.ArgumentParser(description="Utility commands")
    parser.add_argument("--settings", default="settings.yaml")
    sub = parser.add_subparsers(dest="cmd", required=True)

    exp = sub.add_parser("export")
    exp.add_argument("--db")
    exp.add_argument("--fmt", choices=["csv", "json", "pdf"], default="csv")
    exp.add_argument("--out", required=True)
    exp.add_argument("--start")
    exp.add_argument("--end")
    exp.add_argument("--no-notes", action="store_true")
    exp.add_argument("--group-by-date", action="store_true")

    rep = sub.add_parser("report")
    rep.add_argument("--db")

    sts = sub.add_parser("stats")
    sts.add_argument("--db")

    srch = sub.add_parser("search")
    srch.add_argument("query")
    srch.add_argument("--db")

    bkp = sub.add_parser("backup")
    bkp.add_argument("--db")
    bkp.add_argument("--out", default="backup.db")

    rst = sub.add_parser("restore")
    rst.add_argument("--in", dest="src", default="backup.db")
    rst.add_argument("--db")

    demo = sub.add_parser("demo")
    demo.add_argument("--db")

    args = parser.parse_args()
    settings = load_settings(args.settings)
    configure_logging(settings.log_level)
    db_path = args.db or settings.db_path
    key = settings.storage_key

    if args.cmd == "export":
        export_workouts(
            db_path,
            args.fmt,
            args.out,
            args.start,
            args.end,
            include_notes=not args.no_notes,
            group_by_date=args.group_by_date,
            storage_key=key,
        )
    elif args.cmd == "report":
        print(json.dumps(workout_report(db_path, key), indent=2))
    elif args.cmd == "stats":
        stats = workout_stats(db_path, key, settings.favorite_limit)
        print(json.dumps(stats, indent=2))
    elif args.cmd == "search":
        print(json.dumps(search_workouts(db_path, args.query, key), indent=2))
    elif args.cmd == "backup":
        backup_db(db_path, args.out)
    elif args.cmd == "restore":
        restore_db(args.src, db_path)
    elif args.cmd == "demo":
        demo_data(db_path, key)


if __name__ == "__main__":
    main()
