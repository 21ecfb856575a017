from __future__ import annotations

import contextlib
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict

from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright

from mirtargetlink.config import config
from mirtargetlink.errors import SessionFailure
from mirtargetlink.json_logger import JsonLogger, log_event

LAUNCH_ARGS = ["--no-sandbox", "--disable-setuid-sandbox"]


async def launch_browser(
    *,
    playwright: Any,
    logger: JsonLogger,
    executable_path: str | None = None,
    headless: bool | None = None,
) -> Browser:
    chrome_exec = (executable_path if executable_path is not None else config.browser_executable).strip() or None
    resolved_headless = config.browser_headless if headless is None else headless
    launch_kwargs: Dict[str, Any] = {"headless": resolved_headless, "args": list(LAUNCH_ARGS)}

    if chrome_exec and Path(chrome_exec).is_file():
        launch_kwargs["executable_path"] = chrome_exec
        log_event(
            logger=logger,
            phase="session",
            message="Launching Playwright with local browser executable",
            executable_path=chrome_exec,
            headless=resolved_headless,
        )
    elif chrome_exec:
        log_event(
            logger=logger,
            phase="session",
            status="warn",
            message="Configured browser executable missing; falling back to bundled Chromium",
            executable_path=chrome_exec,
            headless=resolved_headless,
        )
    else:
        log_event(
            logger=logger,
            phase="session",
            message="Launching Playwright with bundled Chromium",
            headless=resolved_headless,
        )

    try:
        return await playwright.chromium.launch(**launch_kwargs)
    except Exception as exc:
        if launch_kwargs.pop("executable_path", None) is not None:
            log_event(
                logger=logger,
                phase="session",
                status="warn",
                message="Local browser launch failed; retrying with bundled Chromium",
                executable_path=chrome_exec,
                headless=resolved_headless,
                error=str(exc),
            )
            return await playwright.chromium.launch(**launch_kwargs)
        raise


@dataclass
class BrowserSession:
    """One exclusively-owned browsing context for the duration of a query."""

    session_id: str
    page: Page
    context: BrowserContext | None = None
    browser: Browser | None = None
    playwright: Playwright | None = None
    release_count: int = 0

    @property
    def released(self) -> bool:
        return self.release_count > 0

    async def close(self) -> None:
        if self.released:
            return
        self.release_count += 1
        if self.context is not None:
            with contextlib.suppress(Exception):
                await self.context.close()
        if self.browser is not None:
            with contextlib.suppress(Exception):
                await self.browser.close()
        if self.playwright is not None:
            with contextlib.suppress(Exception):
                await self.playwright.stop()


async def open_session(*, logger: JsonLogger, executable_path: str | None = None) -> BrowserSession:
    session_id = uuid.uuid4().hex
    playwright: Playwright | None = None
    browser: Browser | None = None
    try:
        playwright = await async_playwright().start()
        browser = await launch_browser(playwright=playwright, logger=logger, executable_path=executable_path)
        context = await browser.new_context()
        page = await context.new_page()
    except Exception as exc:
        if browser is not None:
            with contextlib.suppress(Exception):
                await browser.close()
        if playwright is not None:
            with contextlib.suppress(Exception):
                await playwright.stop()
        log_event(
            logger=logger,
            phase="session",
            status="error",
            message="Browser session could not be created",
            error=str(exc),
        )
        raise SessionFailure(f"Browser session could not be created: {exc}") from exc

    log_event(logger=logger, phase="session", message="Browser session opened", session_id=session_id)
    return BrowserSession(
        session_id=session_id,
        page=page,
        context=context,
        browser=browser,
        playwright=playwright,
    )
