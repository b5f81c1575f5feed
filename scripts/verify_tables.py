"""Check that tables can be queried and that a storage bucket exists.

Usage:
    python scripts/verify_tables.py [--tables invoices waitlist] [--bucket resumes]
"""
import argparse
import sys

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from database import engine
from errors import UpstreamError
from settings import get_settings
from storage import StorageClient

DEFAULT_TABLES = ["invoices", "waitlist"]
DEFAULT_BUCKET = "resumes"


def check_table(table: str, bind=engine) -> bool:
    # names come from the operator's command line, not from requests
    try:
        with bind.connect() as connection:
            connection.execute(text(f'SELECT * FROM "{table}" LIMIT 1'))
    except SQLAlchemyError as exc:
        print(f"  [fail] {table}: {exc}")
        return False
    print(f"  [ok] {table} exists and is accessible")
    return True


def describe_bucket(bucket: dict) -> list[str]:
    size_limit = bucket.get("file_size_limit")
    return [
        f"  - Public: {bucket.get('public')}",
        f"  - File size limit: {f'{size_limit / 1024 / 1024:g} MB' if size_limit else 'not set'}",
    ]


def check_bucket(client: StorageClient, bucket_id: str) -> bool:
    try:
        bucket = client.get_bucket(bucket_id)
    except UpstreamError as exc:
        print(f"  [fail] storage: {exc}")
        return False
    if bucket is None:
        print(f"  [fail] {bucket_id} bucket not found")
        return False
    print(f"  [ok] {bucket_id} bucket exists")
    print("\n".join(describe_bucket(bucket)))
    return True


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--tables", nargs="+", default=DEFAULT_TABLES)
    parser.add_argument("--bucket", default=DEFAULT_BUCKET)
    args = parser.parse_args(argv)

    print("Verifying tables...")
    ok = all([check_table(table) for table in args.tables])

    print("\nVerifying storage bucket...")
    try:
        with StorageClient(api_key=get_settings().supabase_service_role_key or "") as client:
            ok = check_bucket(client, args.bucket) and ok
    except UpstreamError as exc:
        print(f"  [fail] {exc}")
        ok = False

    print("\nAll verification checks completed!" if ok else "\nVerification failed.")
    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
