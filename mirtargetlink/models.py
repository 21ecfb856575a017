from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, NamedTuple, Sequence, Tuple, Union

from mirtargetlink.errors import ValidationError

MODE_VALIDATED = "validated"
MODE_PREDICTED = "predicted"
MODE_NETWORK = "network"
MODES = (MODE_VALIDATED, MODE_PREDICTED, MODE_NETWORK)
DEFAULT_MODE = MODE_VALIDATED


@dataclass(frozen=True)
class Query:
    """A validated lookup; construction fails with ValidationError, never later."""

    term: str
    mode: str = DEFAULT_MODE

    def __post_init__(self) -> None:
        term, mode = self.term, self.mode
        if not isinstance(term, str) or not term.strip():
            raise ValidationError("query must be a non-empty string", field="query")
        if mode is None or (isinstance(mode, str) and not mode.strip()):
            resolved_mode = DEFAULT_MODE
        elif isinstance(mode, str) and mode.strip().lower() in MODES:
            resolved_mode = mode.strip().lower()
        else:
            raise ValidationError(
                f"mode must be one of {', '.join(MODES)}; got {mode!r}",
                field="mode",
            )
        object.__setattr__(self, "term", term.strip())
        object.__setattr__(self, "mode", resolved_mode)

    @classmethod
    def parse(cls, term: Any, mode: Any = None) -> "Query":
        """Build a Query from raw invocation arguments."""

        return cls(term=term, mode=mode)

    @classmethod
    def from_arguments(cls, arguments: Mapping[str, Any]) -> "Query":
        return cls.parse(arguments.get("query"), arguments.get("mode"))


ControlValue = Union[bool, str]


@dataclass(frozen=True)
class ControlSetting:
    control_id: str
    value: ControlValue


class ReloadState(str, Enum):
    IDLE = "Idle"
    LOADING_INDICATOR_VISIBLE = "LoadingIndicatorVisible"
    CONTENT_REFRESHED = "ContentRefreshed"
    TIMED_OUT = "TimedOut"


class InteractionRecord(NamedTuple):
    source_entity: str
    target_entity: str
    support_level: str
    source_database: str
    experiment_info: str
    reference: str


class NodeAnnotationRecord(NamedTuple):
    source: str
    category_set: str
    category: str
    node_type: str
    covered_entities: str


@dataclass
class AnalysisResult:
    success: bool
    query: str
    mode: str
    message: str
    interactions: Tuple[InteractionRecord, ...] | None = None
    nodes: Tuple[NodeAnnotationRecord, ...] | None = None
    network: Dict[str, Any] | None = None
    skipped_controls: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "success": self.success,
            "query": self.query,
            "mode": self.mode,
            "message": self.message,
        }
        if self.interactions is not None:
            payload["interactions"] = _records_payload(self.interactions)
        if self.nodes is not None:
            payload["nodes"] = _records_payload(self.nodes)
        if self.network is not None:
            payload["network"] = self.network
        if self.skipped_controls:
            payload["skipped_controls"] = list(self.skipped_controls)
        if self.warnings:
            payload["warnings"] = list(self.warnings)
        return payload


def _records_payload(records: Sequence[NamedTuple]) -> list[Dict[str, str]]:
    return [dict(record._asdict()) for record in records]
