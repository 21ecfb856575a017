"""Failure kinds raised by the lookup engine.

Every exception carries a stable ``kind`` tag so transports can surface
``{"kind": ..., "message": ...}`` without leaking low-level exception text.
"""

from __future__ import annotations

from typing import Any, Dict


class MirTargetLinkError(Exception):
    kind = "MirTargetLinkError"

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"kind": self.kind, "message": self.message}
        if self.details:
            payload["details"] = dict(self.details)
        return payload


class ValidationError(MirTargetLinkError):
    """Empty or malformed query; raised before any session is opened."""

    kind = "ValidationError"


class NavigationTimeout(MirTargetLinkError):
    """The results page never reached a known URL shape."""

    kind = "NavigationTimeout"


class ControlNotFound(MirTargetLinkError):
    """A named control is absent from the page or cannot take the requested value."""

    kind = "ControlNotFound"

    def __init__(self, control_id: str, selector: str) -> None:
        super().__init__(
            f"Control {control_id!r} not found on page or did not take the requested value",
            control_id=control_id,
            selector=selector,
        )
        self.control_id = control_id
        self.selector = selector


class ReloadTimeout(MirTargetLinkError):
    """A reload synchronization phase exceeded its budget."""

    kind = "ReloadTimeout"

    def __init__(self, phase: str, timeout_ms: int, last_state: str | None = None) -> None:
        super().__init__(
            f"Table reload did not complete: {phase} exceeded {timeout_ms} ms",
            phase=phase,
            timeout_ms=timeout_ms,
            last_state=last_state,
        )
        self.phase = phase
        self.timeout_ms = timeout_ms


class SessionFailure(MirTargetLinkError):
    """The browsing session could not be created or crashed mid-flight."""

    kind = "SessionFailure"


class UpstreamUnavailable(MirTargetLinkError):
    """The direct network export endpoint did not return usable data."""

    kind = "UpstreamUnavailable"
