import json
from dataclasses import dataclass, field
from unittest.mock import AsyncMock

import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from mirtargetlink import page_selectors
from mirtargetlink.engine import controls, extract, orchestrator, reload
from mirtargetlink.errors import NavigationTimeout, SessionFailure, ValidationError
from mirtargetlink.network_export import NetworkExport

BASE_URL = "https://example.test/mirtargetlink2/"
RESULTS_URL = "https://example.test/mirtargetlink2/network/TP53"

INTERACTIONS = [
    ["hsa-miR-125b-5p", "TP53", "Strong", "miRTarBase", "Luciferase", "19818772"],
    ["hsa-miR-504", "TP53", "Strong", "miRTarBase", "Western blot", "19819810"],
]
NODES = [["KEGG", "pathways", "p53 signaling pathway", "gene", "TP53, MDM2"]]


class _FakeResultsPage:
    def __init__(
        self,
        *,
        results_url: str | None = RESULTS_URL,
        missing_controls: set[str] | None = None,
        table_states: list[dict] | None = None,
        interactions: list[list[str]] | None = None,
        nodes: list[list[str]] | None = None,
        fingerprints: list[str] | None = None,
        goto_error: Exception | None = None,
    ) -> None:
        self.url = "about:blank"
        self.results_url = results_url
        self.missing = missing_controls or set()
        self.table_states = table_states or [{"present": True, "loading": True, "rows": 1}, {"present": True, "loading": False, "rows": 2}]
        self.tables = {
            "#interactionTable tbody tr": INTERACTIONS if interactions is None else interactions,
            "#nodeTable tbody tr": NODES if nodes is None else nodes,
        }
        self.fingerprints = fingerprints or ["before", "after"]
        self.goto_error = goto_error
        self.typed: list[tuple[str, str]] = []
        self.applied: list[tuple[str, object]] = []
        self.clicked: list[str] = []
        self.request = object()

    async def goto(self, url: str, wait_until: str = "load", timeout: int | None = None) -> None:
        if self.goto_error is not None:
            raise self.goto_error
        self.url = url

    async def wait_for_selector(self, selector: str, timeout: int | None = None) -> None:
        return None

    async def type(self, selector: str, text: str, delay: int = 0) -> None:
        self.typed.append((selector, text))

    async def click(self, selector: str) -> None:
        if selector == page_selectors.SEARCH_SUBMIT and self.results_url:
            self.url = self.results_url

    async def evaluate(self, script: str, arg=None):
        if script == controls.SET_CONTROL_SCRIPT:
            if arg["selector"] in self.missing:
                return False
            self.applied.append((arg["selector"], arg["value"]))
            return True
        if script == controls.CLICK_SCRIPT:
            if arg in self.missing:
                return False
            self.clicked.append(arg)
            return True
        if script == reload.TABLE_STATE_SCRIPT:
            return self.table_states.pop(0) if len(self.table_states) > 1 else self.table_states[0]
        if script == reload.FINGERPRINT_SCRIPT:
            return self.fingerprints.pop(0) if len(self.fingerprints) > 1 else self.fingerprints[0]
        if script == extract.ROWS_SCRIPT:
            rows = self.tables[arg["selector"]]
            return {"total": len(rows), "rows": rows[: arg["limit"]]}
        raise AssertionError(f"unexpected script: {script!r}")


@dataclass
class _FakeSession:
    page: _FakeResultsPage
    session_id: str = "session-1"
    close_calls: int = 0
    opened_with: dict = field(default_factory=dict)

    async def close(self) -> None:
        self.close_calls += 1


def _opener(session: _FakeSession) -> AsyncMock:
    async def _open(**kwargs):
        session.opened_with = kwargs
        return session

    return AsyncMock(side_effect=_open)


def _settings(**overrides) -> orchestrator.EngineSettings:
    values = {
        "base_url": BASE_URL,
        "nav_timeout_ms": 40,
        "reload_timeout_ms": 40,
        "loading_appear_timeout_ms": 5,
        "rows_timeout_ms": 40,
        "settle_ms": 0,
        "poll_interval_ms": 1,
        "result_limit": 10,
        "type_delay_ms": 0,
    }
    values.update(overrides)
    return orchestrator.EngineSettings(**values)


@pytest.mark.asyncio
async def test_default_mode_applies_validated_settings(logger) -> None:
    page = _FakeResultsPage()
    session = _FakeSession(page=page)

    payload = await orchestrator.invoke(
        {"query": "TP53"}, logger=logger, settings=_settings(), session_opener=_opener(session)
    )

    assert payload["success"] is True
    assert payload["query"] == "TP53"
    assert payload["mode"] == "validated"
    assert page.typed == [("input.form-control", "TP53")]
    assert page.applied == [
        ("#targetCheckboxWeak", True),
        ("#targetCheckboxStrong", True),
        ("#targetCheckboxPredicted", False),
        ("#miRNAPathwaySwitch", True),
        ("#neighboursSwitch", True),
        ("#layoutSelect", "euler"),
    ]
    assert page.clicked == ["#updateConfig"]
    assert payload["interactions"][0] == {
        "source_entity": "hsa-miR-125b-5p",
        "target_entity": "TP53",
        "support_level": "Strong",
        "source_database": "miRTarBase",
        "experiment_info": "Luciferase",
        "reference": "19818772",
    }
    assert payload["nodes"][0]["category"] == "p53 signaling pathway"
    assert session.close_calls == 1


@pytest.mark.asyncio
async def test_empty_query_is_rejected_before_opening_a_session(logger) -> None:
    opener = AsyncMock()

    payload = await orchestrator.invoke(
        {"query": "", "mode": "predicted"}, logger=logger, settings=_settings(), session_opener=opener
    )

    assert payload["success"] is False
    assert payload["error"]["kind"] == "ValidationError"
    opener.assert_not_awaited()


@pytest.mark.asyncio
async def test_unknown_mode_is_rejected(logger) -> None:
    opener = AsyncMock()

    payload = await orchestrator.invoke({"query": "TP53", "mode": "bogus"}, logger=logger, session_opener=opener)

    assert payload["error"]["kind"] == "ValidationError"
    opener.assert_not_awaited()


@pytest.mark.asyncio
@pytest.mark.parametrize(("term", "mode"), [("", None), ("   ", "validated"), ("TP53", "bogus")])
async def test_run_query_with_invalid_query_never_opens_a_session(logger, term, mode) -> None:
    opener = AsyncMock()

    with pytest.raises(ValidationError):
        await orchestrator.run_query(orchestrator.Query(term, mode), logger=logger, session_opener=opener)

    opener.assert_not_awaited()


def test_query_construction_normalizes_term_and_mode() -> None:
    assert orchestrator.Query("  TP53 ", " Predicted ") == orchestrator.Query("TP53", "predicted")
    assert orchestrator.Query("TP53").mode == "validated"
    assert orchestrator.Query("TP53", "").mode == "validated"


@pytest.mark.asyncio
async def test_unresolved_results_page_is_navigation_timeout(logger) -> None:
    page = _FakeResultsPage(results_url=None)
    session = _FakeSession(page=page)

    payload = await orchestrator.invoke(
        {"query": "TP53"}, logger=logger, settings=_settings(), session_opener=_opener(session)
    )

    assert payload["success"] is False
    assert payload["error"]["kind"] == "NavigationTimeout"
    assert "interactions" not in payload
    assert "nodes" not in payload
    assert session.close_calls == 1


@pytest.mark.asyncio
async def test_empty_interaction_table_is_success_with_no_data_message(logger) -> None:
    page = _FakeResultsPage(interactions=[], nodes=[])
    session = _FakeSession(page=page)

    payload = await orchestrator.invoke(
        {"query": "TP53", "mode": "predicted"}, logger=logger, settings=_settings(), session_opener=_opener(session)
    )

    assert payload["success"] is True
    assert payload["interactions"] == []
    assert payload["nodes"] == []
    assert "No interaction data available" in payload["message"]
    assert session.close_calls == 1


@pytest.mark.asyncio
async def test_reload_timeout_fails_and_releases_session(logger) -> None:
    page = _FakeResultsPage(table_states=[{"present": True, "loading": False, "rows": 0}])
    session = _FakeSession(page=page)

    payload = await orchestrator.invoke(
        {"query": "TP53"}, logger=logger, settings=_settings(), session_opener=_opener(session)
    )

    assert payload["success"] is False
    assert payload["error"]["kind"] == "ReloadTimeout"
    assert payload["error"]["details"]["phase"] == "row_population"
    assert session.close_calls == 1


@pytest.mark.asyncio
async def test_missing_control_is_reported_but_not_fatal(logger) -> None:
    page = _FakeResultsPage(missing_controls={"#neighboursSwitch"})
    session = _FakeSession(page=page)

    payload = await orchestrator.invoke(
        {"query": "hsa-miR-21-5p"}, logger=logger, settings=_settings(), session_opener=_opener(session)
    )

    assert payload["success"] is True
    assert payload["skipped_controls"] == ["neighbor-expansion"]
    assert any("neighbor-expansion" in warning for warning in payload["warnings"])
    assert session.close_calls == 1


@pytest.mark.asyncio
async def test_missing_apply_trigger_is_reported_but_not_fatal(logger) -> None:
    page = _FakeResultsPage(missing_controls={"#updateConfig"})
    session = _FakeSession(page=page)

    payload = await orchestrator.invoke(
        {"query": "TP53"}, logger=logger, settings=_settings(), session_opener=_opener(session)
    )

    assert payload["success"] is True
    assert payload["skipped_controls"] == ["apply-config"]


@pytest.mark.asyncio
async def test_crash_mid_flight_becomes_session_failure(logger) -> None:
    page = _FakeResultsPage(goto_error=RuntimeError("Target page, context or browser has been closed"))
    session = _FakeSession(page=page)

    payload = await orchestrator.invoke(
        {"query": "TP53"}, logger=logger, settings=_settings(), session_opener=_opener(session)
    )

    assert payload["success"] is False
    assert payload["error"]["kind"] == "SessionFailure"
    assert payload["error"]["details"]["last_state"] == "Start"
    assert session.close_calls == 1


@pytest.mark.asyncio
async def test_landing_page_timeout_is_navigation_timeout(logger) -> None:
    page = _FakeResultsPage(goto_error=PlaywrightTimeoutError("Timeout 40ms exceeded"))
    session = _FakeSession(page=page)

    with pytest.raises(NavigationTimeout):
        await orchestrator.run_query(
            orchestrator.Query.parse("TP53"),
            logger=logger,
            settings=_settings(),
            session_opener=_opener(session),
        )

    assert session.close_calls == 1


@pytest.mark.asyncio
async def test_session_open_failure_is_structured(logger) -> None:
    opener = AsyncMock(side_effect=SessionFailure("Browser session could not be created: no chromium"))

    payload = await orchestrator.invoke({"query": "TP53"}, logger=logger, session_opener=opener)

    assert payload["success"] is False
    assert payload["error"]["kind"] == "SessionFailure"


@pytest.mark.asyncio
async def test_network_mode_attaches_unavailable_export_without_failing(logger) -> None:
    page = _FakeResultsPage()
    session = _FakeSession(page=page)
    fetcher = AsyncMock(
        return_value=NetworkExport(
            query="TP53", available=False, url="https://example.test/api/network/TP53", status=404, reason="HTTP 404"
        )
    )

    payload = await orchestrator.invoke(
        {"query": "TP53", "mode": "network"},
        logger=logger,
        settings=_settings(),
        session_opener=_opener(session),
        network_fetcher=fetcher,
    )

    assert payload["success"] is True
    assert payload["mode"] == "network"
    assert payload["network"] == {"available": False, "status": 404, "reason": "HTTP 404"}
    assert payload["warnings"] == ["Network export unavailable: HTTP 404"]
    assert fetcher.await_args.kwargs["request"] is page.request
    assert session.close_calls == 1


@pytest.mark.asyncio
async def test_non_network_modes_skip_export(logger) -> None:
    session = _FakeSession(page=_FakeResultsPage())
    fetcher = AsyncMock()

    payload = await orchestrator.invoke(
        {"query": "TP53", "mode": "predicted"},
        logger=logger,
        settings=_settings(),
        session_opener=_opener(session),
        network_fetcher=fetcher,
    )

    assert "network" not in payload
    fetcher.assert_not_awaited()


@pytest.mark.asyncio
async def test_unchanged_content_after_reload_only_warns(logger, log_stream) -> None:
    page = _FakeResultsPage(fingerprints=["same rows"])
    session = _FakeSession(page=page)

    payload = await orchestrator.invoke(
        {"query": "TP53"}, logger=logger, settings=_settings(), session_opener=_opener(session)
    )

    assert payload["success"] is True
    events = [json.loads(line) for line in log_stream.getvalue().splitlines()]
    assert any(event["message"] == "Table content unchanged after reload" for event in events)


@pytest.mark.asyncio
async def test_states_progress_linearly_to_done(logger, log_stream) -> None:
    session = _FakeSession(page=_FakeResultsPage())

    await orchestrator.run_query(
        orchestrator.Query.parse("TP53"), logger=logger, settings=_settings(), session_opener=_opener(session)
    )

    events = [json.loads(line) for line in log_stream.getvalue().splitlines()]
    states = [event["state"] for event in events if event["phase"] == "state"]
    assert states == [
        "Navigated",
        "Submitted",
        "ResultsPageResolved",
        "ConfigApplied",
        "Reloaded",
        "Extracted",
        "Done",
    ]


def test_query_run_rejects_skipped_transition(logger) -> None:
    run = orchestrator.QueryRun(logger=logger)

    with pytest.raises(RuntimeError, match="invalid transition"):
        run.advance(orchestrator.QueryState.SUBMITTED)


def test_query_run_cannot_advance_after_failure(logger) -> None:
    run = orchestrator.QueryRun(logger=logger)
    run.fail("NavigationTimeout")

    with pytest.raises(RuntimeError):
        run.advance(orchestrator.QueryState.NAVIGATED)
    assert run.history == [orchestrator.QueryState.START, orchestrator.QueryState.FAILED]
