"""Page synchronization and extraction engine for miRTargetLink lookups."""

from typing import Any

__all__ = ["invoke", "run_query"]


def __getattr__(name: str) -> Any:
    if name in __all__:
        from mirtargetlink.engine import orchestrator

        return getattr(orchestrator, name)
    raise AttributeError(name)
