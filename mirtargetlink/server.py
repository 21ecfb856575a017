"""
MCP tool server for miRTargetLink lookups.

Three tools are exposed over stdio through ``FastMCP``: ``run_mirtargetlink``
(``{query, mode?}``), ``get_breadcrumbs`` and ``ping`` (``{msg?}``). The
server only routes calls; lookup semantics live in ``mirtargetlink.engine``.
"""

from __future__ import annotations

import uuid
from typing import Any, Awaitable, Callable, Dict, Mapping

from mcp.server.fastmcp import FastMCP

from mirtargetlink.breadcrumbs import BreadcrumbLog
from mirtargetlink.engine import orchestrator
from mirtargetlink.json_logger import JsonLogger, log_event

ToolHandler = Callable[[Mapping[str, Any]], Awaitable[Any]]

SERVER_NAME = "miRTargetLink2_MCP"
SERVER_VERSION = "1.0.0"


class ToolError(Exception):
    def __init__(self, kind: str, message: str) -> None:
        super().__init__(f"{kind}: {message}")
        self.kind = kind
        self.message = message


class ToolRegistry:
    """Registry of tool handlers keyed by name."""

    def __init__(self) -> None:
        self._handlers: Dict[str, tuple[ToolHandler, str]] = {}

    def register(self, name: str, handler: ToolHandler, description: str = "") -> None:
        self._handlers[name] = (handler, description)

    def has(self, name: str) -> bool:
        return name in self._handlers

    async def dispatch(self, name: str, arguments: Mapping[str, Any]) -> Any:
        handler_info = self._handlers.get(name)
        if handler_info is None:
            raise ToolError("UnknownTool", f"Unknown tool: {name}")
        handler, _ = handler_info
        return await handler(arguments)

    def description(self, name: str) -> str:
        return self._handlers[name][1]

    def describe(self) -> list[Dict[str, str]]:
        return [{"name": name, "description": description} for name, (_, description) in self._handlers.items()]

    @property
    def tool_names(self) -> list[str]:
        return list(self._handlers.keys())


class ToolServer:
    """One server process is one MCP session and one breadcrumb trail."""

    def __init__(
        self,
        *,
        logger: JsonLogger,
        breadcrumbs: BreadcrumbLog | None = None,
        session_id: str | None = None,
        invoke: Callable[..., Awaitable[Dict[str, Any]]] | None = None,
    ) -> None:
        self.logger = logger
        self.breadcrumbs = breadcrumbs or BreadcrumbLog()
        self.session_id = session_id or uuid.uuid4().hex
        self._invoke = invoke or orchestrator.invoke
        self.registry = ToolRegistry()
        self.registry.register(
            "run_mirtargetlink",
            self._run_mirtargetlink,
            "Fetch validated or predicted miRNA-target interactions via miRTargetLink 2.0.",
        )
        self.registry.register(
            "get_breadcrumbs", self._get_breadcrumbs, "Return previous tool invocations for this session."
        )
        self.registry.register("ping", self._ping, "Ping tool for connectivity testing.")

    def open(self) -> None:
        self.breadcrumbs.open(self.session_id)
        log_event(
            logger=self.logger,
            phase="server",
            message=f"{SERVER_NAME} initialized and ready",
            version=SERVER_VERSION,
            session_id=self.session_id,
            tools=self.registry.tool_names,
        )

    def close(self) -> None:
        self.breadcrumbs.close(self.session_id)
        log_event(logger=self.logger, phase="server", message="Server session closed", session_id=self.session_id)

    async def _run_mirtargetlink(self, arguments: Mapping[str, Any]) -> Dict[str, Any]:
        result = await self._invoke(arguments, logger=self.logger)
        self.breadcrumbs.append(self.session_id, tool="run_mirtargetlink", input=arguments, output=result)
        return result

    async def _get_breadcrumbs(self, arguments: Mapping[str, Any]) -> list[Dict[str, Any]]:
        return [crumb.to_payload() for crumb in self.breadcrumbs.entries(self.session_id)]

    async def _ping(self, arguments: Mapping[str, Any]) -> str:
        msg = arguments.get("msg")
        return f"pong: {msg if isinstance(msg, str) else 'hello'}"

    async def call_tool(self, tool: Any, arguments: Any = None) -> Dict[str, Any]:
        """Dispatch one call; always returns ``{ok, result}`` or ``{ok: False, error}``."""

        try:
            if not isinstance(tool, str) or not tool:
                raise ToolError("InvalidRequest", "Request is missing a tool name")
            arguments = arguments or {}
            if not isinstance(arguments, Mapping):
                raise ToolError("InvalidRequest", "arguments must be a JSON object")
            result = await self.registry.dispatch(tool, arguments)
        except ToolError as exc:
            log_event(logger=self.logger, phase="server", status="warn", message=exc.message, kind=exc.kind, tool=tool)
            return {"ok": False, "error": {"kind": exc.kind, "message": exc.message}}
        except Exception as exc:
            log_event(
                logger=self.logger,
                phase="server",
                status="error",
                message="Tool handler failed",
                tool=tool,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            return {"ok": False, "error": {"kind": "InternalError", "message": f"{tool} failed: {exc}"}}
        return {"ok": True, "result": result}


def build_mcp(server: ToolServer) -> FastMCP:
    """Register the server's tools on a FastMCP instance."""

    mcp = FastMCP(SERVER_NAME)

    async def _call(tool: str, arguments: Dict[str, Any]) -> Any:
        response = await server.call_tool(tool, arguments)
        if not response["ok"]:
            error = response["error"]
            raise ToolError(error["kind"], error["message"])
        return response["result"]

    @mcp.tool(name="run_mirtargetlink", description=server.registry.description("run_mirtargetlink"))
    async def run_mirtargetlink(query: str, mode: str | None = None) -> Dict[str, Any]:
        arguments: Dict[str, Any] = {"query": query}
        if mode is not None:
            arguments["mode"] = mode
        return await _call("run_mirtargetlink", arguments)

    @mcp.tool(name="get_breadcrumbs", description=server.registry.description("get_breadcrumbs"))
    async def get_breadcrumbs() -> list[Dict[str, Any]]:
        return await _call("get_breadcrumbs", {})

    @mcp.tool(name="ping", description=server.registry.description("ping"))
    async def ping(msg: str = "hello") -> str:
        return await _call("ping", {"msg": msg})

    return mcp


async def serve_stdio(server: ToolServer) -> int:
    """Serve MCP over stdin/stdout until the client disconnects."""

    mcp = build_mcp(server)
    server.open()
    try:
        await mcp.run_stdio_async()
    finally:
        server.close()
    return 0
