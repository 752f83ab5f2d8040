"""Shared fixtures: portal markup and an in-memory stand-in for the browser."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional, Sequence, Set

import pytest

from edyna_scraper import config
from edyna_scraper.config import PortalCredentials
from edyna_scraper.io.timeseries_store import IngestionStore
from edyna_scraper.scraper.errors import NavigationFailed
from edyna_scraper.scraper.models import DailyBatch, DayReading, HOUR_LABELS

LOGIN_URL = "https://portal.example.test/Login.tws?ReturnUrl=%2fHome.tws"
HOME_URL = "https://portal.example.test/Home.tws"


def monthly_grid_html(values: Dict[str, str]) -> str:
    headers = "".join(f"<th>{label}</th>" for label in values)
    links = "".join(
        f'<td><a id="{config.MONTH_LINK_ID_PREFIX}_{index}" href="#">{raw} <i class="fa"></i></a></td>'
        for index, raw in enumerate(values.values())
    )
    grid_id = config.ACTIVE_ENERGY_GRID_SEL.lstrip("#")
    return f'<table id="{grid_id}"><tr>{headers}</tr><tr>{links}</tr></table>'


def hourly_table_html(
    rows: Sequence[Sequence[str]],
    *,
    table_id: Optional[str] = "body_ctl00_ctl00_tcListUtenze_TCurve_cCurve_gvDettaglio",
    hour_headers: bool = True,
) -> str:
    header_cells = ["<th>Data</th>"]
    if hour_headers:
        header_cells += [f"<th>{label}</th>" for label in HOUR_LABELS]
    body = "".join(
        "<tr>" + "".join(f"<td>{cell}</td>" for cell in row) + "</tr>" for row in rows
    )
    id_attr = f' id="{table_id}"' if table_id else ""
    return f"<table{id_attr}><tr>{''.join(header_cells)}</tr>{body}</table>"


def page_html(*tables: str) -> str:
    return "<body><div class='header'>Edyna</div>" + "".join(tables) + "</body>"


class FakeActions:
    """Scripted browser: selectors in `visible` exist, clicks mutate the page."""

    def __init__(
        self,
        *,
        monthly_values: Optional[Dict[str, str]] = None,
        daily_html: Optional[str] = None,
        login_succeeds: bool = True,
        listing_renders: bool = True,
        curve_button: bool = True,
        grid_renders: bool = True,
        month_click_error: bool = False,
    ):
        self.url = "about:blank"
        self.visible: Set[str] = set()
        self.subtrees: Dict[str, str] = {}
        self.clicks: List[str] = []
        self.filled: Dict[str, str] = {}
        self.screenshots: List[Path] = []
        self.pauses: List[float] = []

        self.monthly_values = monthly_values if monthly_values is not None else {
            "Gennaio": "1.500,00",
            "Febbraio": "",
        }
        self.daily_html = daily_html
        self.login_succeeds = login_succeeds
        self.listing_renders = listing_renders
        self.curve_button = curve_button
        self.grid_renders = grid_renders
        self.month_click_error = month_click_error

    async def navigate(self, url: str) -> None:
        self.url = url
        self.visible |= {
            config.LOGIN_USER_SEL,
            config.LOGIN_PASSWORD_SEL,
            config.LOGIN_BUTTON_SEL,
            config.LOGIN_PANEL_SEL,
        }

    async def wait_for_element(self, selector: str, timeout: float) -> bool:
        return selector in self.visible

    async def exists(self, selector: str) -> bool:
        return selector in self.visible

    async def read_subtree(self, selector: str) -> Optional[str]:
        return self.subtrees.get(selector)

    async def click(self, selector: str) -> None:
        if selector not in self.visible:
            raise NavigationFailed(f"{selector} is not on the page")
        self.clicks.append(selector)

        if selector == config.LOGIN_BUTTON_SEL and self.login_succeeds:
            self.url = HOME_URL
            self.visible -= {
                config.LOGIN_USER_SEL,
                config.LOGIN_PASSWORD_SEL,
                config.LOGIN_BUTTON_SEL,
                config.LOGIN_PANEL_SEL,
            }
            self.visible.add(config.MENU_CONSUMERS_SEL)
        elif selector == config.MENU_CONSUMERS_SEL:
            if self.listing_renders:
                self.visible |= {config.CONSUMER_TABS_SEL, config.CONSUMER_TABLE_SEL}
            if self.curve_button:
                self.visible.add(config.CURVE_BUTTON_SEL)
        elif selector == config.CURVE_BUTTON_SEL and self.grid_renders:
            self.visible.add(config.ACTIVE_ENERGY_GRID_SEL)
            self.subtrees[config.ACTIVE_ENERGY_GRID_SEL] = monthly_grid_html(self.monthly_values)

    async def click_nth(self, selector: str, index: int) -> bool:
        if self.month_click_error:
            raise NavigationFailed("postback failed")
        if index < 0 or index >= len(self.monthly_values):
            return False
        self.clicks.append(f"{selector}#{index}")
        if self.daily_html is not None:
            self.subtrees[config.PAGE_BODY_SEL] = self.daily_html
        else:
            self.subtrees[config.PAGE_BODY_SEL] = page_html("<p>Nessun dato</p>")
        return True

    async def fill(self, selector: str, text: str, *, delay_ms: float = 0) -> None:
        self.filled[selector] = text

    async def current_url(self) -> str:
        return self.url

    async def wait_for_idle(self, timeout: float) -> None:
        return None

    async def wait_for_url_change(self, before_url: str, timeout: float) -> bool:
        return self.url != before_url

    async def pause(self, ms: float) -> None:
        self.pauses.append(ms)

    async def screenshot(self, path: Path) -> None:
        self.screenshots.append(path)


@pytest.fixture
def credentials() -> PortalCredentials:
    return PortalCredentials(login_url=LOGIN_URL, username="mario.rossi", password="s3cret")


@pytest.fixture
def uniform_daily_html() -> str:
    return page_html(hourly_table_html([["01/01/2025"] + ["1,00"] * 24]))


@pytest.fixture
def store(tmp_path) -> IngestionStore:
    ingestion_store = IngestionStore(f"sqlite:///{tmp_path / 'readings.db'}")
    ingestion_store.initialize_schema()
    yield ingestion_store
    ingestion_store.close()


def make_batch(days: Dict[str, Dict[str, Optional[float]]], month: Optional[str] = "Gennaio") -> DailyBatch:
    """Batch with the given {date: {hour_label: kwh}} readings, other slots None."""
    readings = []
    for date_text, hours in days.items():
        values = [hours.get(label) for label in HOUR_LABELS]
        readings.append(DayReading.from_hours(date_text, values))
    return DailyBatch(year=2025, month=month, days=readings)
