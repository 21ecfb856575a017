"""
CONFIG.PY — SINGLE SOURCE OF TRUTH

This module is the ONLY place allowed to read environment variables.

All config is loaded ONCE at import time and cached in a single in-memory
Config object. Every key is optional and falls back to the default listed in
DEFAULTS; a value that is present but cannot be parsed fails early with
ConfigError.

To use a config value, import:

    from mirtargetlink.config import config

Do not access os.getenv directly from any other module.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping

from dotenv import load_dotenv


PROJECT_ROOT = Path(__file__).resolve().parents[1]

# Load variables from .env if it exists; OS env overrides these automatically
load_dotenv(PROJECT_ROOT / ".env")

if os.getenv("DEBUG_CONFIG") == "1":
    print("[CONFIG] Loaded .env from:", PROJECT_ROOT / ".env")


logger = logging.getLogger(__name__)

DEFAULTS: Dict[str, str] = {
    "MIRTARGETLINK_BASE_URL": "https://ccb-compute.cs.uni-saarland.de/mirtargetlink2/",
    "MIRTARGETLINK_EXPORT_URL_TEMPLATE": (
        "https://ccb-compute.cs.uni-saarland.de/mirtargetlink2/api/network/{query}"
    ),
    "BROWSER_EXECUTABLE": "",
    "BROWSER_HEADLESS": "true",
    "NAV_TIMEOUT_MS": "60000",
    "RELOAD_TIMEOUT_MS": "120000",
    "LOADING_APPEAR_TIMEOUT_MS": "20000",
    "ROWS_TIMEOUT_MS": "30000",
    "SETTLE_MS": "2500",
    "POLL_INTERVAL_MS": "250",
    "RESULT_LIMIT": "10",
    "TYPE_DELAY_MS": "50",
    "JSON_LOG_FILE": "",
}

TRUE_VALUES = {"1", "true", "yes", "on"}
FALSE_VALUES = {"0", "false", "no", "off"}


class ConfigError(RuntimeError):
    """Raised when configuration cannot be loaded."""


def _load_env_values(environ: Mapping[str, str] | None = None) -> Dict[str, str]:
    source = os.environ if environ is None else environ
    values: Dict[str, str] = {}
    for key, default in DEFAULTS.items():
        raw = source.get(key)
        values[key] = default if raw is None or not raw.strip() else raw.strip()
    return values


def _parse_bool(value: str, *, key: str) -> bool:
    normalized = value.strip().lower()
    if normalized in TRUE_VALUES:
        return True
    if normalized in FALSE_VALUES:
        return False
    message = f"Config key {key} must be a boolean string; got {value!r}"
    logger.error(message)
    raise ConfigError(message)


def _parse_int(value: str, *, key: str, minimum: int = 0) -> int:
    try:
        parsed = int(value.strip())
    except (TypeError, ValueError):
        message = f"Config key {key} must be an integer; got {value!r}"
        logger.error(message)
        raise ConfigError(message)
    if parsed < minimum:
        message = f"Config key {key} must be >= {minimum}; got {parsed}"
        logger.error(message)
        raise ConfigError(message)
    return parsed


def _clean_url(value: str, *, key: str) -> str:
    stripped = value.strip()
    if not stripped.startswith(("http://", "https://")):
        message = f"Config key {key} must be an http(s) URL; got {value!r}"
        logger.error(message)
        raise ConfigError(message)
    return stripped


def _clean_template(value: str, *, key: str) -> str:
    cleaned = _clean_url(value, key=key)
    if "{query}" not in cleaned:
        message = f"Config key {key} must contain a {{query}} placeholder"
        logger.error(message)
        raise ConfigError(message)
    return cleaned


@dataclass(slots=True, frozen=True)
class Config:
    base_url: str
    export_url_template: str
    browser_executable: str
    browser_headless: bool
    nav_timeout_ms: int
    reload_timeout_ms: int
    loading_appear_timeout_ms: int
    rows_timeout_ms: int
    settle_ms: int
    poll_interval_ms: int
    result_limit: int
    type_delay_ms: int
    json_log_file: str

    @classmethod
    def load_from_env(cls, environ: Mapping[str, str] | None = None) -> Config:
        values = _load_env_values(environ)

        return cls(
            base_url=_clean_url(values["MIRTARGETLINK_BASE_URL"], key="MIRTARGETLINK_BASE_URL"),
            export_url_template=_clean_template(
                values["MIRTARGETLINK_EXPORT_URL_TEMPLATE"], key="MIRTARGETLINK_EXPORT_URL_TEMPLATE"
            ),
            browser_executable=values["BROWSER_EXECUTABLE"],
            browser_headless=_parse_bool(values["BROWSER_HEADLESS"], key="BROWSER_HEADLESS"),
            nav_timeout_ms=_parse_int(values["NAV_TIMEOUT_MS"], key="NAV_TIMEOUT_MS", minimum=1),
            reload_timeout_ms=_parse_int(values["RELOAD_TIMEOUT_MS"], key="RELOAD_TIMEOUT_MS", minimum=1),
            loading_appear_timeout_ms=_parse_int(
                values["LOADING_APPEAR_TIMEOUT_MS"], key="LOADING_APPEAR_TIMEOUT_MS"
            ),
            rows_timeout_ms=_parse_int(values["ROWS_TIMEOUT_MS"], key="ROWS_TIMEOUT_MS", minimum=1),
            settle_ms=_parse_int(values["SETTLE_MS"], key="SETTLE_MS"),
            poll_interval_ms=_parse_int(values["POLL_INTERVAL_MS"], key="POLL_INTERVAL_MS", minimum=1),
            result_limit=_parse_int(values["RESULT_LIMIT"], key="RESULT_LIMIT", minimum=1),
            type_delay_ms=_parse_int(values["TYPE_DELAY_MS"], key="TYPE_DELAY_MS"),
            json_log_file=values["JSON_LOG_FILE"],
        )


config = Config.load_from_env()
