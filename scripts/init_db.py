#!/usr/bin/env python
"""database initialization script."""

import sys
from pathlib import Path

# add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import logging  # noqa: E402

from src.data.database import init_database  # noqa: E402
from src.data.schema import Base  # noqa: E402
from src.utils.sync_log import setup_logging  # noqa: E402


def main():
    """initialize database with tables."""
    setup_logging(level=logging.INFO)

    print("initializing stargazers content store...")
    print("this will create all required tables in the database")

    # ask for confirmation to drop existing
    drop = input("\ndrop existing tables? (y/N): ").lower().strip() == "y"

    try:
        init_database(drop_existing=drop)
        print("\ndatabase initialized successfully!")
        print("tables created:")
        for table in Base.metadata.sorted_tables:
            print(f"  - {table.name}")

    except Exception as e:
        print(f"\nerror initializing database: {e}")
        print("\nmake sure:")
        print("  1. the database server is running (or DATABASE_URL points at sqlite)")
        print("  2. the configured database exists")
        print("  3. credentials in .env are correct")
        sys.exit(1)


if __name__ == "__main__":
    main()
