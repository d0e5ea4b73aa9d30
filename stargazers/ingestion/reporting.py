"""progress and outcome reporting for historical runs."""

import logging
from typing import Optional

from tqdm import tqdm

from src.data.records import SyncOutcome

logger = logging.getLogger(__name__)


class SyncReporter:
    """
    receives progress ticks and the final tally.

    the base reporter only logs; TqdmReporter renders a progress bar. ticks
    are counted either way so callers (and tests) can check that every
    calendar day was accounted for.
    """

    def __init__(self):
        self.total = 0
        self.ticks = 0
        self.label = ""

    def start(self, total: int, label: str = "syncing"):
        self.total = total
        self.ticks = 0
        self.label = label
        logger.info(f"{label}: {total} to process")

    def tick(self, count: int = 1):
        self.ticks += count

    def info(self, message: str):
        logger.info(message)

    def warning(self, message: str):
        logger.warning(message)

    def finish(self):
        logger.info(f"{self.label}: {self.ticks}/{self.total} processed")

    def summary(self, outcome: SyncOutcome, removed: Optional[int] = None):
        """log the reconciliation summary of a run."""
        logger.info("historical sync summary:")
        logger.info("-" * 60)
        logger.info(f"inserted:        {outcome.inserted:,}")
        logger.info(f"skipped:         {outcome.skipped:,}")
        logger.info(f"failed:          {outcome.failed:,}")
        if outcome.dropped:
            logger.info(f"dropped:         {outcome.dropped:,} (archive pages without title/media)")
        if outcome.chunks_failed:
            logger.warning(f"api chunks failed: {outcome.chunks_failed:,} (fell back to archive)")
        logger.info(f"requests made:   {outcome.requests_made:,}")
        if removed is not None:
            logger.info(f"duplicates removed: {removed:,}")
        logger.info("-" * 60)


class TqdmReporter(SyncReporter):
    """console reporter with a tqdm progress bar sized to the day count."""

    def __init__(self, unit: str = "day"):
        super().__init__()
        self.unit = unit
        self._bar = None

    def start(self, total: int, label: str = "syncing"):
        super().start(total, label)
        self._bar = tqdm(total=total, desc=label, unit=self.unit)

    def tick(self, count: int = 1):
        super().tick(count)
        if self._bar is not None:
            self._bar.update(count)

    def warning(self, message: str):
        # keep warnings from tearing the bar
        if self._bar is not None:
            tqdm.write(f"warning: {message}")
        super().warning(message)

    def finish(self):
        if self._bar is not None:
            self._bar.close()
            self._bar = None
        super().finish()
