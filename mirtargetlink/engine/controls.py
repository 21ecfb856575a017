"""Apply query configuration to the interactive controls of the results page."""

from __future__ import annotations

from typing import Iterable, Tuple

from playwright.async_api import Page

from mirtargetlink import page_selectors
from mirtargetlink.errors import ControlNotFound
from mirtargetlink.json_logger import JsonLogger, log_event
from mirtargetlink.models import (
    MODE_NETWORK,
    MODE_PREDICTED,
    MODE_VALIDATED,
    ControlSetting,
)

# Sets the value and notifies the page's own change handlers; returns false
# when the element is absent or does not take the value (a select without a
# matching option ends up with nothing selected).
SET_CONTROL_SCRIPT = """
({ selector, value }) => {
  const el = document.querySelector(selector);
  if (!el) return false;
  if (typeof value === 'boolean') {
    el.checked = value;
  } else {
    el.value = value;
    if (el.value !== value) return false;
    el.dispatchEvent(new Event('input', { bubbles: true }));
  }
  el.dispatchEvent(new Event('change', { bubbles: true }));
  return true;
}
"""

CLICK_SCRIPT = """
(selector) => {
  const el = document.querySelector(selector);
  if (!el) return false;
  el.click();
  return true;
}
"""

_SHARED_SETTINGS: Tuple[ControlSetting, ...] = (
    ControlSetting("pathway-overlay", True),
    ControlSetting("neighbor-expansion", True),
    ControlSetting("layout", "euler"),
)

_EVIDENCE_SETTINGS = {
    MODE_VALIDATED: (
        ControlSetting("weak-evidence", True),
        ControlSetting("strong-evidence", True),
        ControlSetting("predicted-evidence", False),
    ),
    MODE_PREDICTED: (
        ControlSetting("weak-evidence", False),
        ControlSetting("strong-evidence", False),
        ControlSetting("predicted-evidence", True),
    ),
}
# Network mode shows the validated interaction network.
_EVIDENCE_SETTINGS[MODE_NETWORK] = _EVIDENCE_SETTINGS[MODE_VALIDATED]


def settings_for_mode(mode: str) -> Tuple[ControlSetting, ...]:
    try:
        evidence = _EVIDENCE_SETTINGS[mode]
    except KeyError:
        raise ValueError(f"Unknown mode: {mode!r}") from None
    return evidence + _SHARED_SETTINGS


async def apply_control(page: Page, setting: ControlSetting) -> None:
    """Set one control and signal the change; does not wait for the page to react."""

    selector = page_selectors.CONTROL_SELECTORS.get(setting.control_id)
    if selector is None:
        raise ValueError(f"Unknown control id: {setting.control_id!r}")
    found = await page.evaluate(SET_CONTROL_SCRIPT, {"selector": selector, "value": setting.value})
    if not found:
        raise ControlNotFound(setting.control_id, selector)


async def apply_settings(
    page: Page,
    settings: Iterable[ControlSetting],
    *,
    logger: JsonLogger,
) -> list[str]:
    """Apply settings back-to-back; returns the ids of controls that were absent."""

    skipped: list[str] = []
    for setting in settings:
        try:
            await apply_control(page, setting)
        except ControlNotFound as exc:
            skipped.append(setting.control_id)
            log_event(
                logger=logger,
                phase="configure",
                status="warn",
                message="Control not found; skipping",
                control_id=exc.control_id,
                selector=exc.selector,
            )
            continue
        log_event(
            logger=logger,
            phase="configure",
            message="Control applied",
            control_id=setting.control_id,
            value=setting.value,
        )
    return skipped


async def trigger_reload(page: Page) -> None:
    found = await page.evaluate(CLICK_SCRIPT, page_selectors.APPLY_CONFIG)
    if not found:
        raise ControlNotFound("apply-config", page_selectors.APPLY_CONFIG)
