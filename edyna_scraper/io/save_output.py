"""File output helpers for scraped daily consumption."""

from __future__ import annotations

import json
from pathlib import Path
from typing import List

import pandas as pd

from edyna_scraper.scraper import parse_utils
from edyna_scraper.scraper.models import DailyBatch

CSV_COLUMNS = ["date", "hour", "kwh", "month"]


def save_daily_json(batch: DailyBatch, output_path: Path) -> Path:
    """Write the batch as {year, month, days: [{date, hours, total_kwh}]}."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(json.dumps(batch.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8")
    return output_path


def load_daily_json(path: Path) -> DailyBatch:
    """Load a batch previously written by save_daily_json."""
    payload = json.loads(Path(path).read_text(encoding="utf-8"))
    return DailyBatch.from_dict(payload)


def prepare_rows_for_csv(batch: DailyBatch) -> List[dict]:
    rows: List[dict] = []
    for day in batch.days:
        for label, kwh in day.hours.items():
            if kwh is None:
                continue
            rows.append(
                {
                    "date": day.date,
                    "hour": parse_utils.hour_from_label(label),
                    "kwh": kwh,
                    "month": batch.month or "",
                }
            )
    return rows


def save_hourly_csv(batch: DailyBatch, output_path: Path) -> Path:
    """Flatten the batch to one (date, hour, kwh) row per non-null slot."""
    prepared_rows = prepare_rows_for_csv(batch)
    if not prepared_rows:
        raise RuntimeError("No hourly readings to save.")

    df = pd.DataFrame(prepared_rows, columns=CSV_COLUMNS)
    df.sort_values(by=["date", "hour"], inplace=True, ignore_index=True)

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(output_path, index=False)
    return output_path
