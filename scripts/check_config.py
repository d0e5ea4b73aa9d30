#!/usr/bin/env python
"""validate environment configuration: config file, api keys, database, directories."""

import sys
from pathlib import Path

# add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import logging  # noqa: E402
from typing import List, Tuple  # noqa: E402

from sqlalchemy import text  # noqa: E402

from src.config import PROJECT_ROOT, DataConfig, DatabaseConfig, FeedConfig, load_config  # noqa: E402
from src.data.database import get_database  # noqa: E402

logging.basicConfig(
    level=logging.INFO,
    format="[%(asctime)s] [%(levelname)s] %(message)s",
)
logger = logging.getLogger(__name__)

KEYED_FEEDS = ["cme", "flare", "neo", "apod"]


def check_config_yaml() -> Tuple[bool, List[str]]:
    """
    check if config.yaml is valid.

    returns:
        tuple of (success, error_messages)
    """
    print("Checking config.yaml...")
    errors = []

    if not (PROJECT_ROOT / "config.yaml").exists():
        errors.append("config.yaml not found in project root")
        return False, errors

    try:
        config = load_config()

        required_sections = ["data_ingestion", "historical_sync", "feeds"]
        for section in required_sections:
            if section not in config:
                errors.append(f"missing config section: {section}")

        if errors:
            return False, errors

        print("[OK] config.yaml is valid")
        return True, []

    except ValueError as e:
        errors.append(f"failed to load config.yaml: {e}")
        return False, errors


def check_feeds() -> Tuple[bool, List[str]]:
    """
    check that every feed has an endpoint and keyed feeds have api keys.

    returns:
        tuple of (success, error_messages)
    """
    print("\nChecking feed settings...")
    errors = []

    for feed in ["cme", "flare", "geomag", "space_weather", "neo", "apod"]:
        if not FeedConfig.endpoint(feed):
            errors.append(f"no endpoint configured for {feed}")
            continue
        if feed in KEYED_FEEDS:
            keys = FeedConfig.get_api_keys(feed)
            if not keys:
                errors.append(f"no api keys for {feed} (set {feed.upper()}_API_KEYS or NASA_API_KEYS)")
                continue
            print(f"[OK] {feed}: {len(keys)} api key(s)")
        else:
            print(f"[OK] {feed}: {FeedConfig.endpoint(feed)}")

    if not FeedConfig.get("journal").get("feeds"):
        errors.append("no photo journal feeds configured")
    else:
        print(f"[OK] journal: {len(FeedConfig.get('journal')['feeds'])} feed(s)")

    return len(errors) == 0, errors


def check_database_connection() -> Tuple[bool, List[str]]:
    """
    test database connection.

    returns:
        tuple of (success, error_messages)
    """
    print("\nChecking database connection...")
    errors = []

    try:
        db = get_database()

        # try a simple query
        with db.get_session() as session:
            result = session.execute(text("SELECT 1"))
            result.fetchone()

        print(f"[OK] database connection successful ({db.dialect})")
        return True, []

    except Exception as e:
        errors.append(f"database connection failed: {e}")
        return False, errors


def check_required_directories() -> Tuple[bool, List[str]]:
    """
    check that data directories exist or can be created.

    returns:
        tuple of (success, error_messages)
    """
    print("\nChecking data directories...")
    errors = []

    for name, path in [
        ("response cache", DataConfig.CACHE_DIR),
        ("media", DataConfig.MEDIA_DIR),
        ("log", DataConfig.LOG_FILE.parent),
    ]:
        try:
            path.mkdir(parents=True, exist_ok=True)
            print(f"[OK] {name} directory: {path}")
        except OSError as e:
            errors.append(f"{name} directory not usable ({path}): {e}")

    return len(errors) == 0, errors


def main():
    """main entry point."""
    print("=" * 70)
    print("STARGAZERS CONFIGURATION VALIDATOR")
    print("=" * 70)
    print()

    all_checks = [
        ("Config YAML", check_config_yaml),
        ("Feed Settings", check_feeds),
        ("Database Connection", check_database_connection),
        ("Data Directories", check_required_directories),
    ]

    results = []
    all_errors = []

    for check_name, check_func in all_checks:
        try:
            success, errors = check_func()
            results.append((check_name, success))
            if errors:
                all_errors.extend(errors)
        except Exception as e:
            logger.error(f"{check_name} check failed with exception: {e}", exc_info=True)
            results.append((check_name, False))
            all_errors.append(f"{check_name}: {e}")

    # print summary
    print("\n" + "=" * 70)
    print("VALIDATION SUMMARY")
    print("=" * 70)

    for check_name, success in results:
        status = "[PASS]" if success else "[FAIL]"
        print(f"{status} {check_name}")

    if all_errors:
        print("\nErrors found:")
        for error in all_errors:
            print(f"  - {error}")

    passed = sum(1 for _, success in results if success)
    total = len(results)

    print(f"\n{passed}/{total} checks passed")
    print(f"database: {DatabaseConfig.get_connection_string().split('@')[-1]}")

    if passed == total:
        print("\n[OK] All configuration checks passed")
        sys.exit(0)
    else:
        print("\n[FAIL] Configuration validation failed")
        sys.exit(1)


if __name__ == "__main__":
    main()
