"""Wait for the results page to finish its asynchronous table reload.

The page exposes no completion event, so completion is inferred from three
DOM signals sampled in sequence:

1. the loading placeholder shows up in the table body (soft; a fast reload
   may never show it, so its timeout is swallowed),
2. the placeholder is gone again (hard),
3. the body holds at least one row (hard),

followed by a fixed settling pause for trailing re-renders.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Callable, Tuple

from playwright.async_api import Page

from mirtargetlink import page_selectors
from mirtargetlink.config import config
from mirtargetlink.errors import ReloadTimeout
from mirtargetlink.json_logger import JsonLogger, log_event
from mirtargetlink.models import ReloadState

TABLE_STATE_SCRIPT = """
({ selector, placeholder }) => {
  const body = document.querySelector(selector);
  if (!body) return { present: false, loading: false, rows: 0 };
  return {
    present: true,
    loading: (body.textContent || '').includes(placeholder),
    rows: body.querySelectorAll('tr').length,
  };
}
"""

FINGERPRINT_SCRIPT = """
(selector) => {
  const el = document.querySelector(selector);
  return el ? (el.textContent || '') : '';
}
"""


@dataclass(frozen=True)
class TableSnapshot:
    present: bool
    loading: bool
    row_count: int

    @property
    def state(self) -> ReloadState:
        if self.loading:
            return ReloadState.LOADING_INDICATOR_VISIBLE
        if self.present and self.row_count > 0:
            return ReloadState.CONTENT_REFRESHED
        return ReloadState.IDLE


async def sample_table(page: Page, body_selector: str) -> TableSnapshot:
    raw = await page.evaluate(
        TABLE_STATE_SCRIPT,
        {"selector": body_selector, "placeholder": page_selectors.LOADING_PLACEHOLDER},
    )
    raw = raw or {}
    return TableSnapshot(
        present=bool(raw.get("present")),
        loading=bool(raw.get("loading")),
        row_count=int(raw.get("rows") or 0),
    )


async def capture_fingerprint(page: Page, table_selector: str = page_selectors.INTERACTION_TABLE) -> str:
    text = await page.evaluate(FINGERPRINT_SCRIPT, page_selectors.table_body(table_selector))
    return " ".join((text or "").split())


async def _poll_until(
    page: Page,
    *,
    body_selector: str,
    condition: Callable[[TableSnapshot], bool],
    timeout_ms: int,
    poll_interval_ms: int,
) -> Tuple[bool, TableSnapshot]:
    deadline = asyncio.get_event_loop().time() + (timeout_ms / 1000)
    snapshot = await sample_table(page, body_selector)
    while not condition(snapshot):
        if asyncio.get_event_loop().time() >= deadline:
            return False, snapshot
        await asyncio.sleep(poll_interval_ms / 1000)
        snapshot = await sample_table(page, body_selector)
    return True, snapshot


async def await_reload(
    page: Page,
    previous_fingerprint: str | None,
    timeout_ms: int | None = None,
    *,
    logger: JsonLogger,
    table_selector: str = page_selectors.INTERACTION_TABLE,
    loading_appear_timeout_ms: int | None = None,
    rows_timeout_ms: int | None = None,
    settle_ms: int | None = None,
    poll_interval_ms: int | None = None,
) -> ReloadState:
    """Block until the table reload has completed or raise ReloadTimeout.

    ``previous_fingerprint`` is accepted for the caller's own before/after
    comparison and is not used to decide completion.
    """

    _ = previous_fingerprint
    reload_budget = config.reload_timeout_ms if timeout_ms is None else timeout_ms
    appear_budget = config.loading_appear_timeout_ms if loading_appear_timeout_ms is None else loading_appear_timeout_ms
    rows_budget = config.rows_timeout_ms if rows_timeout_ms is None else rows_timeout_ms
    settle = config.settle_ms if settle_ms is None else settle_ms
    interval = config.poll_interval_ms if poll_interval_ms is None else poll_interval_ms
    body_selector = page_selectors.table_body(table_selector)

    log_event(
        logger=logger,
        phase="reload",
        message="Waiting for table reload",
        table=table_selector,
        timeout_ms=reload_budget,
    )

    seen_loading, snapshot = await _poll_until(
        page,
        body_selector=body_selector,
        condition=lambda snap: snap.loading,
        timeout_ms=appear_budget,
        poll_interval_ms=interval,
    )
    log_event(
        logger=logger,
        phase="reload",
        message="Loading placeholder observed" if seen_loading else "Loading placeholder not observed; continuing",
        state=snapshot.state.value,
    )

    cleared, snapshot = await _poll_until(
        page,
        body_selector=body_selector,
        condition=lambda snap: snap.present and not snap.loading,
        timeout_ms=reload_budget,
        poll_interval_ms=interval,
    )
    if not cleared:
        _log_timeout(logger, phase="loading_clearance", timeout_ms=reload_budget, snapshot=snapshot)
        raise ReloadTimeout("loading_clearance", reload_budget, last_state=snapshot.state.value)

    populated, snapshot = await _poll_until(
        page,
        body_selector=body_selector,
        condition=lambda snap: snap.present and snap.row_count > 0,
        timeout_ms=rows_budget,
        poll_interval_ms=interval,
    )
    if not populated:
        _log_timeout(logger, phase="row_population", timeout_ms=rows_budget, snapshot=snapshot)
        raise ReloadTimeout("row_population", rows_budget, last_state=snapshot.state.value)

    if settle:
        await asyncio.sleep(settle / 1000)

    log_event(
        logger=logger,
        phase="reload",
        message="Table reloaded",
        state=ReloadState.CONTENT_REFRESHED.value,
        row_count=snapshot.row_count,
    )
    return ReloadState.CONTENT_REFRESHED


def _log_timeout(logger: JsonLogger, *, phase: str, timeout_ms: int, snapshot: TableSnapshot) -> None:
    log_event(
        logger=logger,
        phase="reload",
        status="error",
        message="Table reload phase timed out",
        reload_phase=phase,
        timeout_ms=timeout_ms,
        state=ReloadState.TIMED_OUT.value,
        last_observed=snapshot.state.value,
        row_count=snapshot.row_count,
    )
