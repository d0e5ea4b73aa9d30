"""stargazers historical ingestion engine."""

from .apod_client import ApodClient  # noqa: F401
from .archive_scraper import ArchiveScraper, parse_archive_page  # noqa: F401
from .chunking import DateChunk, iter_date_chunks  # noqa: F401
from .historical import BackfillRequest, HistoricalSync  # noqa: F401
from .rate_limit import BatchPacer, RateGovernor  # noqa: F401
from .reporting import SyncReporter, TqdmReporter  # noqa: F401
