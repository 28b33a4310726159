"""
Request - already-parsed inbound request handed to the pipeline.

The transport (ASGI adapter, test client) reads the socket; the pipeline only
sees verb, path, query, headers and body.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Tuple
from urllib.parse import parse_qsl

import orjson

from .faults import BadRequestFault


_UNSET = object()


class Request:
    """
    Inbound HTTP request.

    Attributes:
        method: Upper-case HTTP verb
        path: Request path without query string
        query_string: Raw query string
        headers: Lower-cased header mapping
        body: Raw body bytes
        scope: Raw ASGI scope when created by the ASGI adapter
        state: Per-request scratch space for pipeline stages
    """

    __slots__ = (
        "method", "path", "query_string", "headers", "body", "scope",
        "state", "client", "_query", "_query_list", "_json", "_disconnected",
    )

    def __init__(
        self,
        method: str,
        path: str,
        *,
        headers: Optional[Mapping[str, str] | List[Tuple[str, str]]] = None,
        body: bytes | str = b"",
        query_string: str = "",
        query: Optional[Mapping[str, Any]] = None,
        scope: Optional[dict] = None,
        client: Optional[Tuple[str, int]] = None,
    ):
        if "?" in path and not query_string:
            path, query_string = path.split("?", 1)

        self.method = method.upper()
        self.path = path or "/"
        self.query_string = query_string
        self.headers = _normalize_headers(headers)
        self.body = body.encode("utf-8") if isinstance(body, str) else body
        self.scope = scope
        self.client = client
        self.state: Dict[str, Any] = {}
        self._query: Optional[Dict[str, str]] = dict(query) if query is not None else None
        self._query_list: Optional[List[Tuple[str, str]]] = None
        self._json: Any = _UNSET
        self._disconnected = False

    @classmethod
    def from_scope(cls, scope: dict, body: bytes = b"") -> "Request":
        """Build a request from an ASGI HTTP scope."""
        raw_headers = [
            (name.decode("latin-1"), value.decode("latin-1"))
            for name, value in scope.get("headers", ())
        ]
        query_string = scope.get("query_string", b"")
        if isinstance(query_string, bytes):
            query_string = query_string.decode("latin-1")
        return cls(
            scope.get("method", "GET"),
            scope.get("path", "/"),
            headers=raw_headers,
            body=body,
            query_string=query_string,
            scope=scope,
            client=scope.get("client"),
        )

    # ------------------------------------------------------------------
    # Query & headers
    # ------------------------------------------------------------------

    @property
    def query(self) -> Dict[str, str]:
        """Query parameters; a repeated key keeps its last value."""
        if self._query is None:
            self._query = dict(self.query_items())
        return self._query

    def query_items(self) -> List[Tuple[str, str]]:
        """All query pairs in order, including repeated keys."""
        if self._query_list is None:
            if self._query is not None and not self.query_string:
                self._query_list = list(self._query.items())
            else:
                self._query_list = parse_qsl(self.query_string, keep_blank_values=True)
        return self._query_list

    def query_param(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return self.query.get(key, default)

    def header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.headers.get(name.lower(), default)

    @property
    def content_type(self) -> str:
        return (self.headers.get("content-type") or "").split(";")[0].strip().lower()

    # ------------------------------------------------------------------
    # Body
    # ------------------------------------------------------------------

    def text(self, encoding: str = "utf-8") -> str:
        return self.body.decode(encoding)

    def json(self) -> Any:
        """
        Parse body as JSON (cached).

        Raises:
            BadRequestFault: If the body is not valid JSON
        """
        if self._json is _UNSET:
            if not self.body:
                self._json = None
            else:
                try:
                    self._json = orjson.loads(self.body)
                except orjson.JSONDecodeError as exc:
                    raise BadRequestFault(
                        "Malformed JSON body", code="INVALID_JSON",
                    ) from exc
        return self._json

    def form(self) -> Dict[str, str]:
        """Parse an urlencoded body."""
        return dict(parse_qsl(self.text(), keep_blank_values=True))

    def parsed_body(self) -> Any:
        """Body decoded according to its content type."""
        if not self.body:
            return None
        ctype = self.content_type
        if ctype == "application/x-www-form-urlencoded":
            return self.form()
        if ctype.startswith("text/"):
            return self.text()
        if not ctype or ctype == "application/json" or ctype.endswith("+json"):
            return self.json()
        return self.body

    # ------------------------------------------------------------------
    # Connection state
    # ------------------------------------------------------------------

    @property
    def is_disconnected(self) -> bool:
        return self._disconnected

    def mark_disconnected(self) -> None:
        """Called by the transport when the client goes away."""
        self._disconnected = True

    def __repr__(self) -> str:
        return f"<Request {self.method} {self.path}>"


def _normalize_headers(headers: Any) -> Dict[str, str]:
    if not headers:
        return {}
    items = headers.items() if isinstance(headers, Mapping) else headers
    return {str(name).lower(): str(value) for name, value in items}
