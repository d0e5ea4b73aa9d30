"""post-run cleanup: duplicate removal and storage optimization."""

import logging
from typing import Optional

from src.data.persistence import ContentStore

logger = logging.getLogger(__name__)


class CleanupCoordinator:
    """runs once after a full historical run, never per chunk."""

    def __init__(self, store: Optional[ContentStore] = None):
        self.store = store or ContentStore()

    def run(self) -> int:
        """
        remove duplicate natural keys, then optimize storage.

        returns:
            number of duplicate records removed
        """
        logger.info("cleaning up duplicate records")
        removed = self.store.remove_duplicates()

        # optimize is best effort
        try:
            self.store.optimize()
        except Exception as e:
            logger.error(f"database optimize failed: {e}")

        return removed
