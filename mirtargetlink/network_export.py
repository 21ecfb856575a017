"""Best-effort direct export of the interaction network for a query term.

The endpoint answers for some terms only, so a non-success response is an
expected outcome: callers get ``NetworkExport(available=False)`` instead of
an exception and decide themselves whether that is fatal (``require()``).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict
from urllib.parse import quote

from playwright.async_api import APIRequestContext, Error as PlaywrightError, async_playwright

from mirtargetlink.config import config
from mirtargetlink.errors import UpstreamUnavailable
from mirtargetlink.json_logger import JsonLogger, log_event

REQUEST_ACCEPT = "application/json, text/plain, */*"


@dataclass
class NetworkExport:
    query: str
    available: bool
    url: str
    status: int | None = None
    payload: Any = None
    reason: str | None = None

    def to_payload(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"available": self.available, "status": self.status}
        if self.available:
            data["data"] = self.payload
        else:
            data["reason"] = self.reason
        return data

    def require(self) -> Any:
        if not self.available:
            raise UpstreamUnavailable(
                f"Network export unavailable for {self.query!r}: {self.reason}",
                status=self.status,
                url=self.url,
            )
        return self.payload


def build_export_url(term: str, url_template: str | None = None) -> str:
    template = url_template or config.export_url_template
    return template.format(query=quote(term, safe=""))


async def fetch_network_export(
    term: str,
    *,
    request: APIRequestContext,
    logger: JsonLogger,
    url_template: str | None = None,
    timeout_ms: int | None = None,
) -> NetworkExport:
    url = build_export_url(term, url_template)
    try:
        response = await request.get(
            url,
            headers={"Accept": REQUEST_ACCEPT},
            timeout=timeout_ms if timeout_ms is not None else config.nav_timeout_ms,
        )
    except PlaywrightError as exc:
        log_event(
            logger=logger,
            phase="network_export",
            status="warn",
            message="Network export request failed",
            url=url,
            error=str(exc),
        )
        return NetworkExport(query=term, available=False, url=url, reason=f"request failed: {exc}")

    status = response.status
    if not response.ok:
        log_event(
            logger=logger,
            phase="network_export",
            status="warn",
            message="Network export returned non-success status",
            url=url,
            status_code=status,
        )
        return NetworkExport(query=term, available=False, url=url, status=status, reason=f"HTTP {status}")

    try:
        payload = await response.json()
    except ValueError as exc:
        log_event(
            logger=logger,
            phase="network_export",
            status="warn",
            message="Network export body is not JSON",
            url=url,
            status_code=status,
        )
        return NetworkExport(
            query=term, available=False, url=url, status=status, reason=f"invalid JSON body: {exc}"
        )

    log_event(logger=logger, phase="network_export", message="Network export retrieved", url=url, status_code=status)
    return NetworkExport(query=term, available=True, url=url, status=status, payload=payload)


async def export_network(term: str, *, logger: JsonLogger) -> NetworkExport:
    """Fetch the export without a browser page, using a standalone request context."""

    async with async_playwright() as playwright:
        request = await playwright.request.new_context()
        try:
            return await fetch_network_export(term, request=request, logger=logger)
        finally:
            await request.dispose()
