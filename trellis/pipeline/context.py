"""
ExecutionContext - the per-request view shared by all pipeline stages.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from ..request import Request
    from ..response import Response
    from ..router import HandlerDescriptor


@dataclass
class HttpArgumentsHost:
    """HTTP-specific accessors, returned by ``switch_to_http()``."""

    request: "Request"
    response: "Response"

    def get_request(self) -> "Request":
        return self.request

    def get_response(self) -> "Response":
        return self.response


@dataclass
class ExecutionContext:
    """
    Request-scoped context passed to guards, pipes, interceptors and filters.

    Created at dispatch and dropped once the response is produced. It is
    never shared across requests.

    Attributes:
        request: Inbound request handle
        response: Mutable response handle (status/headers)
        descriptor: Matched handler descriptor (None for unmatched requests)
        params: Path parameters bound by the router
        state: Scratch space stages can use to agree on "this request"
    """

    request: "Request"
    response: "Response"
    descriptor: Optional["HandlerDescriptor"] = None
    params: Dict[str, str] = field(default_factory=dict)
    state: Dict[str, Any] = field(default_factory=dict)

    def get_request(self) -> "Request":
        return self.request

    def get_response(self) -> "Response":
        return self.response

    def get_class(self) -> Optional[type]:
        """Controller class owning the matched handler."""
        return self.descriptor.controller_class if self.descriptor else None

    def get_handler(self) -> Optional[Callable[..., Any]]:
        """Bound handler method."""
        return self.descriptor.handler if self.descriptor else None

    def switch_to_http(self) -> HttpArgumentsHost:
        return HttpArgumentsHost(self.request, self.response)

    @property
    def route_path(self) -> Optional[str]:
        return self.descriptor.full_path if self.descriptor else None

    @property
    def request_id(self) -> Optional[str]:
        return self.state.get("request_id")

    @property
    def cancelled(self) -> bool:
        """True once the transport reported the client went away."""
        return self.request.is_disconnected
