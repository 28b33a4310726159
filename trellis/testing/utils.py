"""
Trellis Testing - ASGI scope and message helpers.
"""

from __future__ import annotations

import asyncio
from typing import List, Optional


def make_test_scope(
    method: str = "GET",
    path: str = "/",
    query_string: str = "",
    headers: Optional[List[tuple]] = None,
    scheme: str = "http",
    client: Optional[tuple] = None,
    scope_type: str = "http",
) -> dict:
    """
    Build a minimal ASGI HTTP scope for testing.

    Args:
        method: HTTP method.
        path: Request path.
        query_string: Raw query string (without ``?``).
        headers: List of ``(name, value)`` tuples (strings or bytes).
        scheme: URL scheme.
        client: ``(host, port)`` tuple.
        scope_type: ASGI scope type.
    """
    raw_headers: list[tuple[bytes, bytes]] = []
    if headers:
        for name, value in headers:
            raw_headers.append((
                name.encode("latin-1") if isinstance(name, str) else name,
                value.encode("latin-1") if isinstance(value, str) else value,
            ))

    return {
        "type": scope_type,
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": method,
        "path": path,
        "raw_path": path.encode("utf-8"),
        "query_string": (
            query_string.encode("utf-8")
            if isinstance(query_string, str)
            else query_string
        ),
        "headers": raw_headers,
        "scheme": scheme,
        "server": ("127.0.0.1", 3000),
        "client": client or ("127.0.0.1", 12345),
        "root_path": "",
    }


def make_test_receive(
    body: bytes = b"",
    *,
    chunks: Optional[List[bytes]] = None,
    disconnect: Optional[asyncio.Event] = None,
):
    """
    Create an ASGI receive callable.

    After the body has been delivered, ``receive`` blocks like a live
    connection until ``disconnect`` is set, then reports ``http.disconnect``.

    Args:
        body: Complete request body bytes.
        chunks: Optional list of body chunks (overrides *body*).
        disconnect: Event signalling the client went away.
    """
    if chunks:
        messages: list[dict] = []
        for i, chunk in enumerate(chunks):
            messages.append({
                "type": "http.request",
                "body": chunk,
                "more_body": i < len(chunks) - 1,
            })
    else:
        messages = [{"type": "http.request", "body": body, "more_body": False}]

    gone = disconnect or asyncio.Event()
    idx = 0

    async def receive():
        nonlocal idx
        if idx < len(messages):
            msg = messages[idx]
            idx += 1
            return msg
        await gone.wait()
        return {"type": "http.disconnect"}

    return receive
