from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Mapping

from playwright.async_api import Page, TimeoutError

from mirtargetlink import page_selectors
from mirtargetlink.browser import BrowserSession, open_session
from mirtargetlink.config import config
from mirtargetlink.engine.controls import apply_settings, settings_for_mode, trigger_reload
from mirtargetlink.engine.extract import INTERACTION_SHAPE, NODE_SHAPE, extract_rows
from mirtargetlink.engine.reload import await_reload, capture_fingerprint
from mirtargetlink.errors import (
    ControlNotFound,
    MirTargetLinkError,
    NavigationTimeout,
    SessionFailure,
    ValidationError,
)
from mirtargetlink.json_logger import JsonLogger, log_event, timed_event
from mirtargetlink.models import DEFAULT_MODE, MODE_NETWORK, AnalysisResult, Query
from mirtargetlink.network_export import NetworkExport, fetch_network_export

SessionOpener = Callable[..., Awaitable[BrowserSession]]
NetworkFetcher = Callable[..., Awaitable[NetworkExport]]


class QueryState(str, Enum):
    START = "Start"
    NAVIGATED = "Navigated"
    SUBMITTED = "Submitted"
    RESULTS_PAGE_RESOLVED = "ResultsPageResolved"
    CONFIG_APPLIED = "ConfigApplied"
    RELOADED = "Reloaded"
    EXTRACTED = "Extracted"
    DONE = "Done"
    FAILED = "Failed"


_FORWARD = [
    QueryState.START,
    QueryState.NAVIGATED,
    QueryState.SUBMITTED,
    QueryState.RESULTS_PAGE_RESOLVED,
    QueryState.CONFIG_APPLIED,
    QueryState.RELOADED,
    QueryState.EXTRACTED,
    QueryState.DONE,
]


@dataclass
class EngineSettings:
    base_url: str = field(default_factory=lambda: config.base_url)
    nav_timeout_ms: int = field(default_factory=lambda: config.nav_timeout_ms)
    reload_timeout_ms: int = field(default_factory=lambda: config.reload_timeout_ms)
    loading_appear_timeout_ms: int = field(default_factory=lambda: config.loading_appear_timeout_ms)
    rows_timeout_ms: int = field(default_factory=lambda: config.rows_timeout_ms)
    settle_ms: int = field(default_factory=lambda: config.settle_ms)
    poll_interval_ms: int = field(default_factory=lambda: config.poll_interval_ms)
    result_limit: int = field(default_factory=lambda: config.result_limit)
    type_delay_ms: int = field(default_factory=lambda: config.type_delay_ms)
    executable_path: str | None = None


class QueryRun:
    """Linear state tracker for one invocation; no backward transitions."""

    def __init__(self, *, logger: JsonLogger) -> None:
        self.logger = logger
        self.state = QueryState.START
        self.history: list[QueryState] = [QueryState.START]
        self.failure_reason: str | None = None

    def advance(self, state: QueryState) -> None:
        if self.state is QueryState.FAILED:
            raise RuntimeError("cannot advance a failed run")
        if _FORWARD.index(state) != _FORWARD.index(self.state) + 1:
            raise RuntimeError(f"invalid transition {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)
        log_event(logger=self.logger, phase="state", message=f"Reached {state.value}", state=state.value)

    def fail(self, reason: str) -> None:
        if self.state in (QueryState.DONE, QueryState.FAILED):
            return
        self.failure_reason = reason
        self.state = QueryState.FAILED
        self.history.append(QueryState.FAILED)
        log_event(
            logger=self.logger,
            phase="state",
            status="error",
            message=f"Failed: {reason}",
            state=QueryState.FAILED.value,
        )


async def _wait_for_results_url(page: Page, *, timeout_ms: int, poll_interval_ms: int) -> str:
    deadline = asyncio.get_event_loop().time() + (timeout_ms / 1000)
    while True:
        current_url = page.url or ""
        if any(marker in current_url for marker in page_selectors.RESULTS_URL_MARKERS):
            return current_url
        if asyncio.get_event_loop().time() >= deadline:
            raise NavigationTimeout(
                f"Results page not reached within {timeout_ms} ms",
                last_url=current_url,
            )
        await asyncio.sleep(poll_interval_ms / 1000)


async def _navigate_and_submit(page: Page, query: Query, *, run: QueryRun, settings: EngineSettings) -> str:
    try:
        await page.goto(settings.base_url, wait_until="networkidle", timeout=settings.nav_timeout_ms)
    except TimeoutError as exc:
        raise NavigationTimeout(f"Landing page did not load: {exc}", url=settings.base_url) from exc
    run.advance(QueryState.NAVIGATED)

    try:
        await page.wait_for_selector(page_selectors.SEARCH_INPUT, timeout=settings.nav_timeout_ms)
    except TimeoutError as exc:
        raise NavigationTimeout("Search input not found on landing page", selector=page_selectors.SEARCH_INPUT) from exc
    await page.type(page_selectors.SEARCH_INPUT, query.term, delay=settings.type_delay_ms)
    await page.click(page_selectors.SEARCH_SUBMIT)
    run.advance(QueryState.SUBMITTED)

    results_url = await _wait_for_results_url(
        page, timeout_ms=settings.nav_timeout_ms, poll_interval_ms=settings.poll_interval_ms
    )
    body_selector = page_selectors.table_body(page_selectors.INTERACTION_TABLE)
    try:
        await page.wait_for_selector(body_selector, timeout=settings.nav_timeout_ms)
    except TimeoutError as exc:
        raise NavigationTimeout("Interaction table not rendered on results page", url=results_url) from exc
    run.advance(QueryState.RESULTS_PAGE_RESOLVED)
    log_event(logger=run.logger, phase="navigation", message="Loaded results page", url=results_url)
    return results_url


def _success_message(query: Query, *, interactions_empty: bool, nodes_empty: bool) -> str:
    message = f"miRTargetLink 2.0 analysis completed successfully for '{query.term}' in mode '{query.mode}'."
    if interactions_empty:
        message += " No interaction data available for this mode."
    if nodes_empty:
        message += " No node annotation data available for this mode."
    return message


async def run_query(
    query: Query,
    *,
    logger: JsonLogger,
    settings: EngineSettings | None = None,
    session_opener: SessionOpener = open_session,
    network_fetcher: NetworkFetcher = fetch_network_export,
) -> AnalysisResult:
    """Run one lookup end to end; the session is released on every exit path."""

    settings = settings or EngineSettings()
    run = QueryRun(logger=logger)
    session = await session_opener(logger=logger, executable_path=settings.executable_path)
    page = session.page
    run_logger = logger.bind(session_id=session.session_id)
    run.logger = run_logger
    warnings: list[str] = []

    try:
        await _navigate_and_submit(page, query, run=run, settings=settings)

        fingerprint = await capture_fingerprint(page)
        skipped = await apply_settings(page, settings_for_mode(query.mode), logger=run_logger)
        if skipped:
            warnings.append(f"Controls not present on this page: {', '.join(skipped)}")
        try:
            await trigger_reload(page)
        except ControlNotFound as exc:
            skipped.append(exc.control_id)
            warnings.append("Apply-configuration control missing; tables reflect page defaults")
            log_event(
                logger=run_logger,
                phase="configure",
                status="warn",
                message="Apply-configuration control not found; continuing with current tables",
                selector=exc.selector,
            )
        run.advance(QueryState.CONFIG_APPLIED)

        await await_reload(
            page,
            fingerprint,
            settings.reload_timeout_ms,
            logger=run_logger,
            loading_appear_timeout_ms=settings.loading_appear_timeout_ms,
            rows_timeout_ms=settings.rows_timeout_ms,
            settle_ms=settings.settle_ms,
            poll_interval_ms=settings.poll_interval_ms,
        )
        if fingerprint and await capture_fingerprint(page) == fingerprint:
            log_event(
                logger=run_logger,
                phase="reload",
                status="warn",
                message="Table content unchanged after reload",
            )
        run.advance(QueryState.RELOADED)

        interactions = await extract_rows(
            page, page_selectors.INTERACTION_TABLE, INTERACTION_SHAPE, settings.result_limit, logger=run_logger
        )
        nodes = await extract_rows(
            page, page_selectors.NODE_TABLE, NODE_SHAPE, settings.result_limit, logger=run_logger
        )
        run.advance(QueryState.EXTRACTED)

        network_payload: Dict[str, Any] | None = None
        if query.mode == MODE_NETWORK:
            export = await network_fetcher(query.term, request=page.request, logger=run_logger)
            network_payload = export.to_payload()
            if not export.available:
                warnings.append(f"Network export unavailable: {export.reason}")

        result = AnalysisResult(
            success=True,
            query=query.term,
            mode=query.mode,
            message=_success_message(query, interactions_empty=interactions.empty, nodes_empty=nodes.empty),
            interactions=interactions.records,
            nodes=nodes.records,
            network=network_payload,
            skipped_controls=skipped,
            warnings=warnings,
        )
        run.advance(QueryState.DONE)
        return result
    except MirTargetLinkError as exc:
        run.fail(exc.kind)
        raise
    except Exception as exc:
        last_state = run.state.value
        run.fail(SessionFailure.kind)
        raise SessionFailure(
            f"Browser session failed after {last_state}: {exc}",
            last_state=last_state,
            error_type=type(exc).__name__,
        ) from exc
    finally:
        await session.close()
        log_event(logger=run_logger, phase="session", message="Browser session released", state=run.state.value)


async def invoke(
    arguments: Mapping[str, Any],
    *,
    logger: JsonLogger,
    settings: EngineSettings | None = None,
    session_opener: SessionOpener = open_session,
    network_fetcher: NetworkFetcher = fetch_network_export,
) -> Dict[str, Any]:
    """Invocation boundary: raw ``{query, mode?}`` in, result or structured error envelope out."""

    raw_query = arguments.get("query")
    raw_mode = arguments.get("mode")
    try:
        query = Query.from_arguments(arguments)
    except ValidationError as exc:
        log_event(logger=logger, phase="validate", status="error", message=exc.message)
        return _error_envelope(raw_query, raw_mode, exc)

    bound = logger.bind(query=query.term, mode=query.mode)
    try:
        with timed_event(logger=bound, phase="query", message="miRTargetLink lookup"):
            result = await run_query(
                query,
                logger=bound,
                settings=settings,
                session_opener=session_opener,
                network_fetcher=network_fetcher,
            )
    except MirTargetLinkError as exc:
        return _error_envelope(query.term, query.mode, exc)
    return result.to_payload()


def _error_envelope(query: Any, mode: Any, exc: MirTargetLinkError) -> Dict[str, Any]:
    return {
        "success": False,
        "query": query if isinstance(query, str) else "",
        "mode": mode if isinstance(mode, str) and mode else DEFAULT_MODE,
        "message": exc.message,
        "error": exc.to_payload(),
    }
