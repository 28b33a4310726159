"""
Response - outbound status, headers and body.

Handlers may return a ``Response`` directly; any other return value is
rendered by the pipeline with the route's default status.
"""

from __future__ import annotations

from typing import Any, Callable, Awaitable, Dict, List, Mapping, Optional, Tuple

import orjson


def _json_default_serializer(o: Any) -> Any:
    """Default JSON serializer for non-standard types."""
    if isinstance(o, (set, frozenset)):
        return list(o)
    if hasattr(o, "isoformat"):
        return o.isoformat()
    if hasattr(o, "to_dict"):
        return o.to_dict()
    return str(o)


def dumps(obj: Any) -> bytes:
    return orjson.dumps(obj, default=_json_default_serializer, option=orjson.OPT_NON_STR_KEYS)


class Response:
    """
    HTTP response.

    Also serves as the mutable "raw response handle" exposed to stages
    through the execution context: handlers may set ``status`` or headers on
    it before returning a plain value.
    """

    __slots__ = ("status", "content", "_headers", "aborted")

    def __init__(
        self,
        content: Any = b"",
        status: int = 200,
        headers: Optional[Mapping[str, str]] = None,
        media_type: Optional[str] = None,
    ):
        self.status = status
        self.content = content
        self._headers: Dict[str, str] = {}
        if headers:
            for key, value in headers.items():
                self._headers[key.lower()] = value
        if media_type:
            self._headers["content-type"] = media_type
        self.aborted = False

    @property
    def headers(self) -> Dict[str, str]:
        return self._headers

    def set_header(self, name: str, value: str) -> None:
        self._headers[name.lower()] = value

    # ========================================================================
    # Factory Methods
    # ========================================================================

    @classmethod
    def json(
        cls,
        obj: Any,
        status: int = 200,
        *,
        headers: Optional[Mapping[str, str]] = None,
    ) -> "Response":
        """Create JSON response."""
        return cls(
            content=dumps(obj),
            status=status,
            headers=headers,
            media_type="application/json",
        )

    @classmethod
    def text(cls, content: str, status: int = 200, **kwargs: Any) -> "Response":
        return cls(content=content, status=status, media_type="text/plain; charset=utf-8", **kwargs)

    @classmethod
    def empty(cls, status: int = 204) -> "Response":
        return cls(b"", status=status)

    # ========================================================================
    # Encoding
    # ========================================================================

    def body_bytes(self) -> bytes:
        """Encode content to bytes, filling in a content type if missing."""
        content = self.content
        if content is None:
            return b""
        if isinstance(content, bytes):
            if content and "content-type" not in self._headers:
                self._headers["content-type"] = "application/octet-stream"
            return content
        if isinstance(content, str):
            self._headers.setdefault("content-type", "text/plain; charset=utf-8")
            return content.encode("utf-8")
        self._headers.setdefault("content-type", "application/json")
        return dumps(content)

    def json_body(self) -> Any:
        """Decode the body as JSON (used by tests and the test client)."""
        data = self.body_bytes()
        return orjson.loads(data) if data else None

    def asgi_headers(self, body: bytes) -> List[Tuple[bytes, bytes]]:
        headers = dict(self._headers)
        headers["content-length"] = str(len(body))
        return [
            (name.encode("latin-1"), str(value).encode("latin-1"))
            for name, value in headers.items()
        ]

    async def send_asgi(self, send: Callable[[dict], Awaitable[None]]) -> None:
        """Send start + body messages over ASGI."""
        body = self.body_bytes()
        await send({
            "type": "http.response.start",
            "status": self.status,
            "headers": self.asgi_headers(body),
        })
        await send({
            "type": "http.response.body",
            "body": body,
            "more_body": False,
        })

    def __repr__(self) -> str:
        return f"<Response [{self.status}]>"
