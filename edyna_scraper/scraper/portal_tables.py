"""Markup parsers for the Edyna consumption grids.

The portal's markup is versionless and changes without notice, so every
function here works on an HTML string and can be exercised against fixture
markup without a browser. Hourly-table discovery is a chain of independent
matchers tried in order.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional, Sequence, Tuple

from bs4 import BeautifulSoup
from bs4.element import Tag

from edyna_scraper import config
from edyna_scraper.io.dedupe import dedupe_by_key
from edyna_scraper.scraper import parse_utils
from edyna_scraper.scraper.models import (
    DailyBatch,
    DayReading,
    MonthEntry,
    MonthlySeries,
)

logger = logging.getLogger(__name__)

TableMatcher = Callable[[BeautifulSoup], Optional[Tag]]


@dataclass(slots=True)
class RawDayRow:
    date_text: str
    hourly_values: List[str]


def _soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


def _cell_text(cell: Tag) -> str:
    return parse_utils.clean_text(cell.get_text(" ", strip=True)) or ""


# ---------------------------------------------------------------------------
# Monthly active energy grid
# ---------------------------------------------------------------------------


def build_monthly_series(labels: Sequence[str], raw_values: Sequence[str]) -> MonthlySeries:
    """Pair month labels with their raw cell text and parse each value."""
    entries = [
        MonthEntry(
            month_label=label,
            raw_value=raw_values[index] if index < len(raw_values) else "",
            parsed_value=None,
        )
        for index, label in enumerate(labels)
        if label
    ]
    entries = dedupe_by_key(entries, key=lambda entry: entry.month_label)
    for entry in entries:
        entry.parsed_value = parse_utils.parse_locale_number(entry.raw_value)
    return MonthlySeries(entries=entries)


def parse_monthly_grid(html: str) -> MonthlySeries:
    """Read month headers and per-month link texts from the active energy grid."""
    soup = _soup(html)
    grid = soup.find("table")
    if grid is None:
        return MonthlySeries()

    rows = grid.find_all("tr")
    if not rows:
        return MonthlySeries()

    labels = [_cell_text(th) for th in rows[0].find_all("th")]
    raw_values: List[str] = []
    if len(rows) > 1:
        anchors = [
            anchor
            for anchor in rows[1].find_all("a")
            if str(anchor.get("id", "")).startswith(config.MONTH_LINK_ID_PREFIX)
        ]
        raw_values = [_cell_text(anchor) for anchor in anchors]

    series = build_monthly_series(labels, raw_values)
    logger.debug(f"Parsed monthly grid: {series.parsed_map()}")
    return series


# ---------------------------------------------------------------------------
# Hourly table discovery
# ---------------------------------------------------------------------------


def match_by_id_hint(soup: BeautifulSoup) -> Optional[Tag]:
    """Table whose id contains one of the known detail-grid name fragments."""
    for hint in config.HOURLY_TABLE_ID_HINTS:
        table = soup.select_one(f'table[id*="{hint}"]')
        if table is not None:
            return table
    return None


def match_by_column_count(soup: BeautifulSoup) -> Optional[Tag]:
    """First table whose header row carries at least one column per hour."""
    for table in soup.find_all("table"):
        header_row = table.find("tr")
        if header_row is None:
            continue
        if len(header_row.find_all("th")) >= config.HOURLY_MIN_COLUMNS:
            return table
    return None


HOURLY_TABLE_MATCHERS: Tuple[Tuple[str, TableMatcher], ...] = (
    ("id_hint", match_by_id_hint),
    ("column_count", match_by_column_count),
)


def find_hourly_table(html: str) -> Tuple[Optional[Tag], Optional[str]]:
    """Return the first table accepted by the matcher chain and the matcher name."""
    soup = _soup(html)
    for name, matcher in HOURLY_TABLE_MATCHERS:
        table = matcher(soup)
        if table is not None:
            return table, name
    return None, None


def extract_day_rows(table: Tag) -> List[RawDayRow]:
    """Split a detail table into (date text, hourly cell texts) rows."""
    rows = table.find_all("tr")
    if len(rows) < 2:
        return []

    day_rows: List[RawDayRow] = []
    for row in rows[1:]:
        cells = row.find_all("td")
        if not cells:
            continue
        day_rows.append(
            RawDayRow(
                date_text=_cell_text(cells[0]),
                hourly_values=[_cell_text(cell) for cell in cells[1:]],
            )
        )
    return day_rows


def build_daily_batch(
    day_rows: Sequence[RawDayRow],
    month: Optional[str],
    *,
    fallback_year: Optional[int] = None,
) -> DailyBatch:
    """Normalise raw day rows; days without a single reading are dropped."""
    year = None
    if day_rows:
        year = parse_utils.extract_year(day_rows[0].date_text)
    if year is None:
        year = fallback_year or datetime.now().year

    days: List[DayReading] = []
    for raw in dedupe_by_key(day_rows, key=lambda row: row.date_text):
        values = [parse_utils.parse_locale_number(value) for value in raw.hourly_values[:24]]
        day = DayReading.from_hours(raw.date_text, values)
        if day.has_readings:
            days.append(day)
        else:
            logger.debug(f"Dropping day {raw.date_text!r}: no hourly readings")

    return DailyBatch(year=year, month=month, days=days)


def parse_hourly_table(html: str, month: Optional[str]) -> Optional[DailyBatch]:
    """Locate and parse the hourly detail table; None when none qualifies."""
    table, strategy = find_hourly_table(html)
    if table is None:
        logger.info("No suitable table found with hourly data")
        return None

    day_rows = extract_day_rows(table)
    if not day_rows:
        logger.info("Hourly table has insufficient rows")
        return None

    logger.info(
        f"Found hourly table id={table.get('id') or 'unknown'} via {strategy}; "
        f"{len(day_rows)} rows"
    )
    return build_daily_batch(day_rows, month)
