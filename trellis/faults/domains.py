"""
Trellis faults - HTTP-facing fault types.

Every fault here carries a stable status code. Guards, pipes, handlers and
interceptors raise them; the exception-filter stage turns them into
responses.
"""

from typing import Any, Optional

from .core import Fault, FaultDomain, Severity


class HttpFault(Fault):
    """
    Fault with an outward HTTP status.

    Example:
        raise HttpFault(418, "I'm a teapot", code="TEAPOT")
    """

    status: int = 500
    default_code: str = "HTTP_ERROR"
    default_message: str = "HTTP error"
    default_domain: FaultDomain = FaultDomain.FLOW

    def __init__(
        self,
        status: Optional[int] = None,
        message: Optional[str] = None,
        *,
        code: Optional[str] = None,
        domain: Optional[FaultDomain] = None,
        severity: Optional[Severity] = None,
        public: bool = True,
        metadata: Optional[dict[str, Any]] = None,
    ):
        if status is not None:
            self.status = status
        super().__init__(
            code=code or self.default_code,
            message=message or self.default_message,
            domain=domain or self.default_domain,
            severity=severity,
            public=public,
            metadata=metadata,
        )

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["status"] = self.status
        return data


class _StatusFault(HttpFault):
    """Fixed-status fault; the first positional argument is the message."""

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        code: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
        **kwargs: Any,
    ):
        super().__init__(None, message, code=code, metadata=metadata, **kwargs)


# ============================================================================
# 4xx
# ============================================================================

class BadRequestFault(_StatusFault):
    status = 400
    default_code = "BAD_REQUEST"
    default_message = "Bad Request"
    default_domain = FaultDomain.VALIDATION


class ValidationFault(BadRequestFault):
    """A pipe rejected an input value."""

    default_code = "VALIDATION_FAILED"
    default_message = "Validation failed"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        field: Optional[str] = None,
        **kwargs: Any,
    ):
        metadata = dict(kwargs.pop("metadata", None) or {})
        if field is not None:
            metadata.setdefault("field", field)
        self.field = field
        super().__init__(message, metadata=metadata, **kwargs)


class UnauthorizedFault(_StatusFault):
    status = 401
    default_code = "UNAUTHORIZED"
    default_message = "Unauthorized"
    default_domain = FaultDomain.SECURITY


class ForbiddenFault(_StatusFault):
    """A guard denied the request."""

    status = 403
    default_code = "FORBIDDEN"
    default_message = "Forbidden resource"
    default_domain = FaultDomain.SECURITY


class NotFoundFault(_StatusFault):
    status = 404
    default_code = "NOT_FOUND"
    default_message = "Not Found"
    default_domain = FaultDomain.ROUTING


class MethodNotAllowedFault(_StatusFault):
    status = 405
    default_code = "METHOD_NOT_ALLOWED"
    default_message = "Method Not Allowed"
    default_domain = FaultDomain.ROUTING


class ConflictFault(_StatusFault):
    status = 409
    default_code = "CONFLICT"
    default_message = "Conflict"


class UnprocessableEntityFault(_StatusFault):
    status = 422
    default_code = "UNPROCESSABLE_ENTITY"
    default_message = "Unprocessable Entity"
    default_domain = FaultDomain.VALIDATION


class TooManyRequestsFault(_StatusFault):
    status = 429
    default_code = "TOO_MANY_REQUESTS"
    default_message = "Too Many Requests"
    default_domain = FaultDomain.SECURITY


# ============================================================================
# 5xx
# ============================================================================

class InternalServerFault(_StatusFault):
    status = 500
    default_code = "INTERNAL_ERROR"
    default_message = "Internal server error"
    default_domain = FaultDomain.SYSTEM

    def __init__(self, message: Optional[str] = None, **kwargs: Any):
        kwargs.setdefault("public", False)
        super().__init__(message, **kwargs)


class ServiceUnavailableFault(_StatusFault):
    status = 503
    default_code = "SERVICE_UNAVAILABLE"
    default_message = "Service Unavailable"
    default_domain = FaultDomain.SYSTEM
