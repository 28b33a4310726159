"""
ASGI adapter - bridges the ASGI protocol to Trellis applications.

HTTP requests are read in full, dispatched through the application and
answered with exactly one response. When the client disconnects before the
pipeline finishes, nothing is sent.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Callable, Optional

from .request import Request
from .response import Response

if TYPE_CHECKING:
    from .application import Application


class ASGIAdapter:
    """
    ASGI application adapter.

    Converts ASGI events to Trellis requests and runs lifespan hooks.
    """

    __slots__ = ("app", "logger")

    def __init__(self, app: "Application"):
        self.app = app
        self.logger = logging.getLogger("trellis.asgi")

    async def __call__(self, scope: dict, receive: Callable, send: Callable):
        """ASGI entry point."""
        scope_type = scope["type"]

        if scope_type == "http":
            await self.handle_http(scope, receive, send)
        elif scope_type == "lifespan":
            await self.handle_lifespan(scope, receive, send)
        else:
            self.logger.warning(f"Unsupported ASGI scope type: {scope_type}")

    async def _read_body(self, receive: Callable) -> tuple[bytes, bool]:
        """Read the full body; returns (body, disconnected)."""
        chunks = []
        while True:
            message = await receive()
            if message["type"] == "http.disconnect":
                return b"".join(chunks), True
            chunks.append(message.get("body", b""))
            if not message.get("more_body", False):
                return b"".join(chunks), False

    async def _watch_disconnect(self, request: Request, receive: Callable) -> None:
        while True:
            message = await receive()
            if message["type"] == "http.disconnect":
                request.mark_disconnected()
                self.logger.debug(f"Client disconnected: {request.method} {request.path}")
                return

    async def handle_http(self, scope: dict, receive: Callable, send: Callable):
        """Handle one HTTP request."""
        body, disconnected = await self._read_body(receive)
        request = Request.from_scope(scope, body)
        if disconnected:
            request.mark_disconnected()

        watcher: Optional[asyncio.Task] = None
        if not disconnected:
            watcher = asyncio.ensure_future(self._watch_disconnect(request, receive))

        try:
            try:
                response = await self.app.handle(request)
            except Exception as e:
                self.logger.error(f"Critical error in request pipeline: {e}", exc_info=True)
                response = Response.json(
                    {"error": {"status": 500, "code": "INTERNAL_ERROR", "message": "Internal server error"}},
                    status=500,
                )
        finally:
            if watcher is not None:
                watcher.cancel()
                try:
                    await watcher
                except asyncio.CancelledError:
                    pass

        if response.aborted or request.is_disconnected:
            return

        await response.send_asgi(send)

    async def handle_lifespan(self, scope: dict, receive: Callable, send: Callable):
        """Handle ASGI lifespan events."""
        while True:
            message = await receive()

            if message["type"] == "lifespan.startup":
                try:
                    await self.app.startup()
                    self.logger.debug("Application startup complete")
                    await send({"type": "lifespan.startup.complete"})
                except Exception as e:
                    self.logger.error(f"Startup error: {e}", exc_info=True)
                    await send({"type": "lifespan.startup.failed", "message": str(e)})
                    raise

            elif message["type"] == "lifespan.shutdown":
                try:
                    await self.app.shutdown()
                    self.logger.debug("Application shutdown complete")
                    await send({"type": "lifespan.shutdown.complete"})
                except Exception as e:
                    self.logger.error(f"Shutdown error: {e}", exc_info=True)
                    await send({"type": "lifespan.shutdown.failed", "message": str(e)})
                break

    def __repr__(self) -> str:
        return f"<ASGIAdapter app={self.app!r}>"
