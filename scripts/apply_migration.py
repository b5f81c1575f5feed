"""Apply one SQL migration from supabase/migrations/ in a single transaction.

Usage:
    python scripts/apply_migration.py 001_initial_schema.sql
"""
import argparse
import sys
from pathlib import Path

import structlog
from sqlalchemy.exc import SQLAlchemyError

from database import engine
from observability import init_observability

MIGRATIONS_DIR = Path(__file__).resolve().parent.parent / "supabase" / "migrations"

logger = structlog.get_logger(__name__)


def resolve_migration(name: str, migrations_dir: Path = MIGRATIONS_DIR) -> Path:
    path = (migrations_dir / name).resolve()
    if path.parent != migrations_dir.resolve() or path.suffix != ".sql":
        raise ValueError(f"{name} is not a .sql file in {migrations_dir}")
    if not path.is_file():
        raise FileNotFoundError(path)
    return path


def apply_migration(path: Path, bind=engine) -> None:
    sql = path.read_text(encoding="utf-8")
    with bind.begin() as connection:
        connection.exec_driver_sql(sql)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("migration", help="file name inside supabase/migrations/")
    args = parser.parse_args(argv)

    init_observability()
    try:
        path = resolve_migration(args.migration)
    except (ValueError, FileNotFoundError) as exc:
        logger.error("Migration file not found", migration=args.migration, error=str(exc))
        return 1

    logger.info("Applying migration", migration=path.name)
    try:
        apply_migration(path)
    except SQLAlchemyError as exc:
        logger.error("Migration failed", migration=path.name, error=str(exc))
        return 1

    logger.info("Migration applied successfully", migration=path.name)
    return 0


if __name__ == "__main__":
    sys.exit(main())
