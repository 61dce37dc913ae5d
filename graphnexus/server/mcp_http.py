"""Streamable HTTP transport for the MCP server, one transport per session.

A POST without an ``mcp-session-id`` header starts a new session. Requests
carrying an id are routed to that session's transport. A session is removed
from the map once its server loop ends, which happens when the client sends
DELETE or the transport closes.
"""

from contextlib import asynccontextmanager
from typing import Dict, Optional
from uuid import uuid4

import anyio
from anyio.abc import TaskGroup
from mcp.server.lowlevel import Server
from mcp.server.streamable_http import MCP_SESSION_ID_HEADER, StreamableHTTPServerTransport
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.types import Receive, Scope, Send

from ..utils.logger import app_logger

SESSION_NOT_FOUND = -32001
NO_VALID_SESSION = -32000


def jsonrpc_error(status_code: int, code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"jsonrpc": "2.0", "error": {"code": code, "message": message}, "id": None},
    )


class MCPSessionManager:
    """Routes ``/api/mcp`` requests to per-session MCP transports.

    Mounted as a raw ASGI endpoint. ``run()`` must be active (normally from
    the application lifespan) before new sessions can be created.
    """

    def __init__(self, server: Server):
        self.logger = app_logger.bind(component="mcp_http")
        self.server = server
        self.sessions: Dict[str, StreamableHTTPServerTransport] = {}
        self._task_group: Optional[TaskGroup] = None

    @asynccontextmanager
    async def run(self):
        async with anyio.create_task_group() as task_group:
            self._task_group = task_group
            try:
                yield self
            finally:
                task_group.cancel_scope.cancel()
                self._task_group = None
                self.sessions.clear()

    async def __call__(self, scope: Scope, receive: Receive, send: Send):
        await self.handle_request(scope, receive, send)

    async def handle_request(self, scope: Scope, receive: Receive, send: Send):
        request = Request(scope, receive)
        session_id = request.headers.get(MCP_SESSION_ID_HEADER)

        if session_id:
            transport = self.sessions.get(session_id)
            if transport is None:
                response = jsonrpc_error(404, SESSION_NOT_FOUND, "Session not found. Re-initialize.")
                await response(scope, receive, send)
                return
            await transport.handle_request(scope, receive, send)
            return

        if request.method != "POST":
            response = jsonrpc_error(400, NO_VALID_SESSION, "No valid session. Send a POST to initialize.")
            await response(scope, receive, send)
            return

        transport = await self._start_session()
        await transport.handle_request(scope, receive, send)

    async def _start_session(self) -> StreamableHTTPServerTransport:
        if self._task_group is None:
            raise RuntimeError("MCP session manager is not running")

        session_id = uuid4().hex
        transport = StreamableHTTPServerTransport(mcp_session_id=session_id)
        self.sessions[session_id] = transport

        async def run_server(*, task_status=anyio.TASK_STATUS_IGNORED):
            try:
                async with transport.connect() as (read_stream, write_stream):
                    task_status.started()
                    await self.server.run(
                        read_stream,
                        write_stream,
                        self.server.create_initialization_options(),
                    )
            except Exception as e:
                self.logger.error(f"MCP session {session_id} failed: {e}")
            finally:
                self.sessions.pop(session_id, None)
                self.logger.info(f"MCP session {session_id} closed")

        await self._task_group.start(run_server)
        self.logger.info(f"MCP session {session_id} started")
        return transport
