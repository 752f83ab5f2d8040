"""Drill-down month selection over a parsed monthly series."""

from __future__ import annotations

from typing import Optional, Tuple

from edyna_scraper.scraper.models import MonthlySeries


def select_latest(series: MonthlySeries) -> Optional[Tuple[str, int]]:
    """Return (month_label, index) of the most recent month with a reading.

    Months arrive in chronological order and trailing months may still be
    blank, so the scan runs backwards and skips None values. 0.0 counts as a
    reading.
    """
    for index in range(len(series.entries) - 1, -1, -1):
        entry = series.entries[index]
        if entry.parsed_value is not None:
            return entry.month_label, index
    return None
