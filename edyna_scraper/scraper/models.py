"""Shared data models for the Edyna portal scraper."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Sequence

HOUR_LABELS = tuple(f"{hour:02d}:00" for hour in range(24))


@dataclass(slots=True)
class MonthEntry:
    """One cell of the monthly active-energy grid."""

    month_label: str
    raw_value: str
    parsed_value: Optional[float]


@dataclass(slots=True)
class MonthlySeries:
    """Months in the order the portal renders them (chronological)."""

    entries: List[MonthEntry] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[MonthEntry]:
        return iter(self.entries)

    @property
    def labels(self) -> List[str]:
        return [entry.month_label for entry in self.entries]

    def raw_map(self) -> Dict[str, str]:
        return {entry.month_label: entry.raw_value for entry in self.entries}

    def parsed_map(self) -> Dict[str, Optional[float]]:
        return {entry.month_label: entry.parsed_value for entry in self.entries}


@dataclass(slots=True)
class DayReading:
    """Hourly kWh readings for one day, keyed by the 24 canonical hour labels."""

    date: str
    hours: Dict[str, Optional[float]]
    total_kwh: float

    @classmethod
    def from_hours(cls, date: str, values: Sequence[Optional[float]]) -> "DayReading":
        """Build a reading from positional hour values; missing slots become None."""
        hours: Dict[str, Optional[float]] = {}
        for index, label in enumerate(HOUR_LABELS):
            hours[label] = values[index] if index < len(values) else None
        total = sum(value for value in hours.values() if value is not None)
        return cls(date=date, hours=hours, total_kwh=round(total, 3))

    @property
    def has_readings(self) -> bool:
        return any(value is not None for value in self.hours.values())

    def to_dict(self) -> dict:
        return {"date": self.date, "hours": dict(self.hours), "total_kwh": self.total_kwh}

    @classmethod
    def from_dict(cls, payload: dict) -> "DayReading":
        raw_hours = payload.get("hours") or {}
        values = [raw_hours.get(label) for label in HOUR_LABELS]
        return cls.from_hours(
            str(payload["date"]),
            [float(value) if value is not None else None for value in values],
        )


@dataclass(slots=True)
class DailyBatch:
    """Daily breakdown for the drill-down month, handed to storage by value."""

    year: int
    month: Optional[str]
    days: List[DayReading] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "year": self.year,
            "month": self.month,
            "days": [day.to_dict() for day in self.days],
        }

    @classmethod
    def from_dict(cls, payload: dict) -> "DailyBatch":
        return cls(
            year=int(payload["year"]),
            month=payload.get("month"),
            days=[DayReading.from_dict(day) for day in payload.get("days") or []],
        )


@dataclass(slots=True, frozen=True)
class DateParseError:
    """Structured failure returned when a source date cannot be interpreted."""

    raw: Optional[str]
    reason: str


@dataclass(slots=True)
class UpsertResult:
    inserted: int = 0
    updated: int = 0
    skipped_days: int = 0


@dataclass(slots=True)
class PipelineResult:
    """Outcome of one portal run; degraded runs carry their warnings."""

    monthly: MonthlySeries = field(default_factory=MonthlySeries)
    drill_down_month: Optional[str] = None
    daily: Optional[DailyBatch] = None
    warnings: List[str] = field(default_factory=list)

    @property
    def has_daily_data(self) -> bool:
        return self.daily is not None and len(self.daily.days) > 0
