"""date-range chunking for the historical backfill."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterator

DAYS_PER_REQUEST = 50


@dataclass(frozen=True)
class DateChunk:
    """inclusive [start, end] sub-range requested in one api call."""

    start: date
    end: date

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1

    def iter_days(self) -> Iterator[date]:
        current = self.start
        while current <= self.end:
            yield current
            current += timedelta(days=1)

    def __str__(self) -> str:
        return f"{self.start.isoformat()} -> {self.end.isoformat()}"


def iter_date_chunks(start: date, end: date, days_per_chunk: int = DAYS_PER_REQUEST) -> Iterator[DateChunk]:
    """
    yield contiguous, ascending chunks covering exactly [start, end].

    args:
        start: first day (inclusive)
        end: last day (inclusive)
        days_per_chunk: maximum days per chunk

    returns:
        lazy iterator of DateChunk; empty when start > end
    """
    if days_per_chunk < 1:
        raise ValueError("days_per_chunk must be at least 1")

    current = start
    step = timedelta(days=days_per_chunk - 1)
    while current <= end:
        chunk_end = min(current + step, end)
        yield DateChunk(current, chunk_end)
        # advance by 1 day after chunk_end to avoid overlap
        current = chunk_end + timedelta(days=1)
