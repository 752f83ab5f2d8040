"""Phase-by-phase navigation of the Edyna portal.

The flow is a single linear pipeline:

    authenticate -> reach listing -> reach curve view -> extract monthly
    -> select drill-down month -> extract daily

Each phase waits with an explicit timeout. Login and required navigation
controls are hard requirements; content readiness is soft and degrades the
run instead of aborting it. Anything that fails after the monthly series
has been extracted leaves the run with monthly data only.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol, Tuple

from edyna_scraper import config
from edyna_scraper.config import PortalCredentials
from edyna_scraper.scraper import portal_tables
from edyna_scraper.scraper.errors import (
    AuthenticationFailed,
    ExtractionFailed,
    NavigationFailed,
    PortalError,
)
from edyna_scraper.scraper.models import DailyBatch, MonthlySeries, PipelineResult
from edyna_scraper.scraper.series_selector import select_latest

logger = logging.getLogger(__name__)


class BrowserActions(Protocol):
    async def navigate(self, url: str) -> None: ...

    async def wait_for_element(self, selector: str, timeout: float) -> bool: ...

    async def exists(self, selector: str) -> bool: ...

    async def read_subtree(self, selector: str) -> Optional[str]: ...

    async def click(self, selector: str) -> None: ...

    async def click_nth(self, selector: str, index: int) -> bool: ...

    async def fill(self, selector: str, text: str, *, delay_ms: float = 0) -> None: ...

    async def current_url(self) -> str: ...

    async def wait_for_idle(self, timeout: float) -> None: ...

    async def wait_for_url_change(self, before_url: str, timeout: float) -> bool: ...

    async def pause(self, ms: float) -> None: ...

    async def screenshot(self, path: Path) -> None: ...


class FlowPhase(enum.IntEnum):
    START = 0
    AUTHENTICATE = 1
    REACH_LISTING = 2
    REACH_CURVE_VIEW = 3
    EXTRACT_MONTHLY = 4
    SELECT_DRILL_DOWN = 5
    EXTRACT_DAILY = 6
    DONE = 7


@dataclass(slots=True)
class FlowTimeouts:
    login_field_ms: float = config.LOGIN_FIELD_TIMEOUT_MS
    login_navigation_ms: float = config.LOGIN_NAVIGATION_TIMEOUT_MS
    type_delay_ms: float = config.TYPE_DELAY_MS
    menu_ms: float = config.MENU_TIMEOUT_MS
    listing_idle_ms: float = config.LISTING_IDLE_TIMEOUT_MS
    landmark_attempts: int = config.LANDMARK_POLL_ATTEMPTS
    landmark_interval_ms: float = config.LANDMARK_POLL_INTERVAL_MS
    listing_settle_ms: float = 0
    curve_button_ms: float = config.CURVE_BUTTON_TIMEOUT_MS
    curve_idle_ms: float = config.CURVE_IDLE_TIMEOUT_MS
    grid_ms: float = config.GRID_TIMEOUT_MS
    daily_idle_ms: float = config.DAILY_IDLE_TIMEOUT_MS
    daily_settle_ms: float = config.DAILY_SETTLE_DELAY_MS


def login_confirmed(before_url: str, after_url: str, login_form_present: bool) -> bool:
    """Heuristic login check: we navigated away, the form is gone, and we are
    no longer on the login endpoint."""
    navigated = after_url != before_url
    on_login_endpoint = config.LOGIN_ENDPOINT_MARKER.lower() in after_url.lower()
    return navigated and not login_form_present and not on_login_endpoint


class PortalFlow:
    """Drives one authenticated session through the extraction phases."""

    def __init__(
        self,
        actions: BrowserActions,
        credentials: PortalCredentials,
        *,
        timeouts: Optional[FlowTimeouts] = None,
        debug_shots: bool = False,
        screenshot_dir: Path = Path("."),
    ):
        self.actions = actions
        self.credentials = credentials
        self.timeouts = timeouts or FlowTimeouts()
        self.debug_shots = debug_shots
        self.screenshot_dir = screenshot_dir
        self.phase = FlowPhase.START

    def _enter(self, phase: FlowPhase) -> None:
        if phase <= self.phase:
            raise RuntimeError(f"Cannot move from {self.phase.name} back to {phase.name}")
        logger.debug(f"Entering phase {phase.name}")
        self.phase = phase

    async def _debug_screenshot(self, name: str) -> None:
        if not self.debug_shots:
            return
        path = self.screenshot_dir / name
        try:
            await self.actions.screenshot(path)
        except Exception as exc:  # diagnostics only
            logger.warning(f"Could not save screenshot {path}: {exc}")
            return
        logger.info(f"Screenshot saved: {path}")

    async def run(self) -> PipelineResult:
        result = PipelineResult()
        try:
            await self.authenticate()
            await self.reach_listing(result)
            curve_ready = await self.reach_curve_view(result)
            if curve_ready:
                result.monthly = await self.extract_monthly()
            else:
                self._enter(FlowPhase.EXTRACT_MONTHLY)
        except AuthenticationFailed:
            raise
        except PortalError:
            await self._debug_screenshot(config.SCREENSHOT_FLOW_FAILURE)
            raise

        logger.info(f"Monthly active energy (kWh): {result.monthly.parsed_map()}")

        try:
            month = self.select_drill_down(result.monthly)
            if month is None:
                self.phase = FlowPhase.DONE
                return result
            label, index = month
            result.drill_down_month = label
            result.daily = await self.extract_daily(label, index)
        except PortalError as exc:
            message = f"Daily extraction failed: {exc}"
            logger.error(message)
            result.warnings.append(message)
            await self._debug_screenshot(config.SCREENSHOT_DAILY_FAILURE)

        if not result.has_daily_data:
            result.warnings.append("No daily hourly data found")
        self.phase = FlowPhase.DONE
        return result

    async def authenticate(self) -> None:
        self._enter(FlowPhase.AUTHENTICATE)
        actions = self.actions
        logger.info(f"Opening login URL: {self.credentials.login_url}")
        await actions.navigate(self.credentials.login_url)

        for selector in (config.LOGIN_USER_SEL, config.LOGIN_PASSWORD_SEL, config.LOGIN_BUTTON_SEL):
            if not await actions.wait_for_element(selector, self.timeouts.login_field_ms):
                await self._debug_screenshot(config.SCREENSHOT_LOGIN_FAILURE)
                raise AuthenticationFailed(f"Login form field {selector} did not appear")

        logger.info("Filling credentials...")
        await actions.fill(config.LOGIN_USER_SEL, self.credentials.username, delay_ms=self.timeouts.type_delay_ms)
        await actions.fill(config.LOGIN_PASSWORD_SEL, self.credentials.password, delay_ms=self.timeouts.type_delay_ms)

        logger.info("Submitting login...")
        before_url = await actions.current_url()
        await actions.click(config.LOGIN_BUTTON_SEL)
        await actions.wait_for_url_change(before_url, self.timeouts.login_navigation_ms)

        after_url = await actions.current_url()
        form_present = await actions.exists(config.LOGIN_PANEL_SEL)
        if not login_confirmed(before_url, after_url, form_present):
            await self._debug_screenshot(config.SCREENSHOT_LOGIN_FAILURE)
            raise AuthenticationFailed("Login not confirmed as successful.")
        logger.info(f"Login successful (heuristic). Current URL: {after_url}")

    async def reach_listing(self, result: PipelineResult) -> bool:
        """Open the consumer listing; returns False when readiness was not confirmed."""
        self._enter(FlowPhase.REACH_LISTING)
        actions = self.actions
        if not await actions.wait_for_element(config.MENU_CONSUMERS_SEL, self.timeouts.menu_ms):
            raise NavigationFailed("Consumer menu entry did not appear")

        before_url = await actions.current_url()
        logger.info('Clicking "Verbraucher"...')
        await actions.click(config.MENU_CONSUMERS_SEL)
        await actions.wait_for_idle(self.timeouts.listing_idle_ms)
        logger.debug(f"Post-click URL changed? {before_url != await actions.current_url()}")

        ready = False
        for attempt in range(1, self.timeouts.landmark_attempts + 1):
            tabs_present = await actions.exists(config.CONSUMER_TABS_SEL)
            table_present = await actions.exists(config.CONSUMER_TABLE_SEL)
            logger.debug(
                f"Landmark poll {attempt}: tab container={tabs_present}, consumer table={table_present}"
            )
            if tabs_present and table_present:
                ready = True
                break
            await actions.pause(self.timeouts.landmark_interval_ms)

        await actions.pause(self.timeouts.listing_settle_ms)

        if not ready:
            message = "Consumer listing not detected; proceeding cautiously."
            logger.warning(message)
            result.warnings.append(message)
        return ready

    async def reach_curve_view(self, result: PipelineResult) -> bool:
        """Open the first load-curve tab; False means monthly detail is skipped."""
        self._enter(FlowPhase.REACH_CURVE_VIEW)
        actions = self.actions
        logger.info("Waiting for first curve button...")
        if not await actions.wait_for_element(config.CURVE_BUTTON_SEL, self.timeouts.curve_button_ms):
            message = "Curve button not found within extended timeout; skipping monthly detail."
            logger.warning(message)
            result.warnings.append(message)
            return False

        before_url = await actions.current_url()
        await actions.click(config.CURVE_BUTTON_SEL)
        await actions.wait_for_idle(self.timeouts.curve_idle_ms)
        logger.debug(f"Curve view URL changed? {before_url != await actions.current_url()}")
        return True

    async def extract_monthly(self) -> MonthlySeries:
        self._enter(FlowPhase.EXTRACT_MONTHLY)
        logger.info("Waiting for active energy grid...")
        if not await self.actions.wait_for_element(config.ACTIVE_ENERGY_GRID_SEL, self.timeouts.grid_ms):
            raise ExtractionFailed("Active energy grid not found after extended wait.")

        html = await self.actions.read_subtree(config.ACTIVE_ENERGY_GRID_SEL)
        if html is None:
            raise ExtractionFailed("Active energy grid disappeared before it could be read.")
        return portal_tables.parse_monthly_grid(html)

    def select_drill_down(self, monthly: MonthlySeries) -> Optional[Tuple[str, int]]:
        self._enter(FlowPhase.SELECT_DRILL_DOWN)
        selection = select_latest(monthly)
        if selection is None:
            logger.info("No non-null month found, skipping daily view navigation.")
        else:
            logger.info(f"Latest non-null month: {selection[0]} (index {selection[1]})")
        return selection

    async def extract_daily(self, month_label: str, index: int) -> Optional[DailyBatch]:
        self._enter(FlowPhase.EXTRACT_DAILY)
        actions = self.actions
        if not await actions.click_nth(config.MONTH_LINK_SEL, index):
            logger.warning(f"Monthly link for {month_label} (index {index}) not found.")
            return None

        logger.info(f"Navigating to daily view for: {month_label}")
        await actions.wait_for_idle(self.timeouts.daily_idle_ms)
        await actions.pause(self.timeouts.daily_settle_ms)

        html = await actions.read_subtree(config.PAGE_BODY_SEL)
        if html is None:
            return None
        batch = portal_tables.parse_hourly_table(html, month_label)
        if batch is not None:
            logger.info(f"Scraped {len(batch.days)} days with hourly data.")
        return batch
