#!/usr/bin/env python3
"""
run the recurring feed sync with retry logic, for scheduler (cron) invocations.

usage: run_sync_with_retry.py [feed ...]   (defaults to every feed)
"""

import sys
import time
import logging
from pathlib import Path
from typing import List, Optional, Tuple

# add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

logger = logging.getLogger(__name__)


def run_sync_with_retry(
    feeds: Optional[List[str]] = None, max_retries: int = 3, retry_delay: int = 60
) -> Tuple[bool, Optional[str]]:
    """
    run the recurring sync, retrying feeds that failed.

    args:
        feeds: feed names to sync (defaults to all)
        max_retries: maximum number of attempts
        retry_delay: delay between attempts in seconds

    returns:
        tuple of (success, error_message)
    """
    # import here to avoid loading modules on script load
    from src.data.database import get_database
    from src.data.errors import ConfigurationError
    from src.data.ingestion import FeedSyncManager
    from src.data.persistence import ContentStore

    db = get_database()
    db.create_tables()
    manager = FeedSyncManager(store=ContentStore(db))
    routines = manager.routines()
    pending = feeds or list(routines)

    unknown = [feed for feed in pending if feed not in routines]
    if unknown:
        return False, f"unknown feeds: {', '.join(unknown)}"

    for attempt in range(1, max_retries + 1):
        logger.info(f"sync attempt {attempt}/{max_retries} for: {', '.join(pending)}")
        failed = []

        for feed in pending:
            try:
                stats = routines[feed]()
            except ConfigurationError as e:
                # retrying cannot fix missing configuration
                logger.warning(f"{feed} skipped: {e}")
                continue
            except Exception as e:
                logger.error(f"{feed} sync error: {e}", exc_info=True)
                failed.append(feed)
                continue

            if stats.get("status") == "failure":
                failed.append(feed)

        if not failed:
            logger.info("sync successful")
            return True, None

        error_msg = f"sync failed for: {', '.join(failed)}"
        logger.warning(error_msg)
        pending = failed

        if attempt < max_retries:
            logger.info(f"retrying in {retry_delay} seconds...")
            time.sleep(retry_delay)

    return False, error_msg


if __name__ == "__main__":
    from src.utils.sync_log import setup_logging

    setup_logging()
    success, error = run_sync_with_retry(sys.argv[1:] or None)

    if success:
        logger.info("sync completed successfully")
        sys.exit(0)
    else:
        logger.error(f"sync failed: {error}")
        sys.exit(1)
