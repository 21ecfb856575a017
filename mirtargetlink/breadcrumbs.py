"""Per-session call history for the tool transport."""

from __future__ import annotations

import copy
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Mapping


@dataclass(frozen=True)
class Breadcrumb:
    time: str
    tool: str
    input: Dict[str, Any]
    output: Any

    def to_payload(self) -> Dict[str, Any]:
        return {"time": self.time, "tool": self.tool, "input": self.input, "output": self.output}


class BreadcrumbLog:
    """Append-only log keyed by session id.

    A session's entries exist between ``open`` and ``close``; appending to a
    session that was never opened (or already closed) raises ``KeyError``.
    """

    def __init__(self) -> None:
        self._sessions: Dict[str, list[Breadcrumb]] = {}

    def open(self, session_id: str) -> None:
        self._sessions.setdefault(session_id, [])

    def close(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)

    def is_open(self, session_id: str) -> bool:
        return session_id in self._sessions

    def append(self, session_id: str, *, tool: str, input: Mapping[str, Any], output: Any) -> Breadcrumb:
        entries = self._sessions[session_id]
        crumb = Breadcrumb(
            time=datetime.now(timezone.utc).isoformat(),
            tool=tool,
            input=copy.deepcopy(dict(input)),
            output=copy.deepcopy(output),
        )
        entries.append(crumb)
        return crumb

    def entries(self, session_id: str) -> list[Breadcrumb]:
        return list(self._sessions.get(session_id, []))
