"""Simple per-user counts over the caller's own applications."""
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Dict, List

from .models import ApplicationStatus
from .results import Result
from .store import ApplicationStore


@dataclass(frozen=True)
class StatusCount:
    status: ApplicationStatus
    count: int


@dataclass(frozen=True)
class DateCount:
    date: str
    count: int


class ApplicationInsights:
    """Counts computed in memory from :meth:`ApplicationStore.list`.

    Only rows the store already authorised are counted, so failures
    (unauthenticated, storage) are passed through unchanged.
    """

    def __init__(self, store: ApplicationStore) -> None:
        self._store = store

    def total_count(self) -> Result[int]:
        return self._store.list().map(len)

    def counts_by_status(self) -> Result[List[StatusCount]]:
        def tally(applications) -> List[StatusCount]:
            counts = Counter(application.status for application in applications)
            return [StatusCount(status=status, count=counts[status]) for status in ApplicationStatus if counts[status]]

        return self._store.list().map(tally)

    def counts_by_date(self) -> Result[List[DateCount]]:
        def tally(applications) -> List[DateCount]:
            counts = Counter(application.application_date for application in applications)
            return [DateCount(date=day, count=counts[day]) for day in sorted(counts)]

        return self._store.list().map(tally)

    def summary(self) -> Result[Dict[str, object]]:
        """Return all counts from a single read."""

        def build(applications) -> Dict[str, object]:
            by_status = Counter(application.status for application in applications)
            by_date = Counter(application.application_date for application in applications)
            return {
                "total": len(applications),
                "by_status": [
                    {"status": status.value, "count": by_status[status]}
                    for status in ApplicationStatus
                    if by_status[status]
                ],
                "by_date": [{"date": day, "count": by_date[day]} for day in sorted(by_date)],
            }

        return self._store.list().map(build)


__all__ = ["ApplicationInsights", "DateCount", "StatusCount"]
