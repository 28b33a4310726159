"""
Exception filters - the stage that turns an error into a response.

Filters are bound globally, per controller, or per handler. Resolution:
1. Typed filters whose declared exception types match win; the closest
   type in the exception's MRO is the most specific.
2. Ties go to the nearest binding (method, then class, then global), then
   to declaration order.
3. Catch-all filters (declared with no types) are used only when no typed
   filter matches.
4. ``DefaultExceptionFilter`` is the final fallback.
"""

from __future__ import annotations

import logging
import traceback
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence, Tuple, TYPE_CHECKING

from .core import Fault, FaultDomain, Severity
from .domains import HttpFault

if TYPE_CHECKING:
    from ..pipeline.context import ExecutionContext
    from ..response import Response


logger = logging.getLogger("trellis.faults")


# Binding levels, nearest last
GLOBAL_LEVEL = 0
CLASS_LEVEL = 1
METHOD_LEVEL = 2


# Status for non-HTTP faults, by domain
DOMAIN_STATUS = {
    FaultDomain.CONFIG: 500,
    FaultDomain.ROUTING: 404,
    FaultDomain.SECURITY: 403,
    FaultDomain.VALIDATION: 400,
    FaultDomain.FLOW: 500,
    FaultDomain.SYSTEM: 500,
}

_SEVERITY_LEVELS = {
    Severity.INFO: logging.DEBUG,
    Severity.WARN: logging.INFO,
    Severity.ERROR: logging.WARNING,
    Severity.FATAL: logging.ERROR,
}


class ExceptionFilter:
    """
    Base class for exception filters.

    Subclasses implement ``catch`` and return either a ``Response`` or a
    body that is rendered with the status from ``status_for``.

    Example:
        @catch(KeyError)
        class MissingKeyFilter(ExceptionFilter):
            def catch(self, exception, context):
                return Response.json({"missing": str(exception)}, status=404)
    """

    def catch(self, exception: BaseException, context: "ExecutionContext") -> Any:
        raise NotImplementedError


@dataclass(frozen=True)
class FilterBinding:
    """A filter instance with the exception types it declared."""

    filter: Any
    exception_types: Tuple[type, ...] = ()
    level: int = GLOBAL_LEVEL
    order: int = 0

    @property
    def catch_all(self) -> bool:
        return not self.exception_types

    def distance(self, exception: BaseException) -> Optional[int]:
        """MRO distance to the closest declared type, None if no match."""
        mro = type(exception).__mro__
        best: Optional[int] = None
        for exc_type in self.exception_types:
            if isinstance(exception, exc_type):
                d = mro.index(exc_type) if exc_type in mro else len(mro)
                if best is None or d < best:
                    best = d
        return best


def select_filter(
    bindings: Sequence[FilterBinding],
    exception: BaseException,
) -> Optional[FilterBinding]:
    """Pick the binding that handles ``exception`` (None: use the default)."""
    typed = []
    catch_alls = []
    for binding in bindings:
        if binding.catch_all:
            catch_alls.append(binding)
            continue
        d = binding.distance(exception)
        if d is not None:
            typed.append((d, -binding.level, binding.order, binding))

    if typed:
        typed.sort(key=lambda item: item[:3])
        return typed[0][3]

    if catch_alls:
        return min(catch_alls, key=lambda b: (-b.level, b.order))

    return None


def status_for(exception: BaseException) -> int:
    """Outward status for any exception."""
    if isinstance(exception, HttpFault):
        return exception.status
    if isinstance(exception, Fault):
        return DOMAIN_STATUS.get(exception.domain, 500)
    return 500


def error_body(
    exception: BaseException,
    context: Optional["ExecutionContext"] = None,
    *,
    expose_internals: bool = False,
) -> Dict[str, Any]:
    """
    Build the outward error envelope.

    Messages of non-public faults and plain exceptions are withheld unless
    ``expose_internals`` is set.
    """
    status = status_for(exception)

    if isinstance(exception, Fault):
        code = exception.code
        if exception.public:
            message = exception.message
        else:
            message = "Internal server error" if status >= 500 else "Request failed"
    else:
        code = "INTERNAL_ERROR"
        message = "Internal server error"

    error: Dict[str, Any] = {
        "status": status,
        "code": code,
        "message": message,
    }

    if context is not None:
        error["path"] = context.request.path
        if context.request_id:
            error["request_id"] = context.request_id

    if isinstance(exception, Fault) and exception.public and exception.metadata:
        error["details"] = exception.metadata

    if expose_internals and not (isinstance(exception, Fault) and exception.public):
        error["exception"] = type(exception).__name__
        error["detail"] = str(exception)
        error["stack"] = traceback.format_exception(
            type(exception), exception, exception.__traceback__,
        )

    return {"error": error}


class DefaultExceptionFilter(ExceptionFilter):
    """
    Fallback filter: every error becomes a JSON envelope.

    Unfiltered non-fault errors are logged with their traceback and surface
    as a generic 500.
    """

    def __init__(self, *, expose_internals: bool = False):
        self.expose_internals = expose_internals

    def catch(self, exception: BaseException, context: "ExecutionContext") -> "Response":
        from ..response import Response

        status = status_for(exception)
        route = context.route_path if context is not None else None

        if isinstance(exception, Fault):
            level = _SEVERITY_LEVELS.get(exception.severity, logging.WARNING)
            if status >= 500:
                level = max(level, logging.ERROR)
            logger.log(
                level,
                f"{exception.code} on {route or context.request.path}: {exception.message}",
                exc_info=status >= 500,
            )
        else:
            logger.error(
                f"Unhandled {type(exception).__name__} on {route or context.request.path}: {exception}",
                exc_info=exception,
            )

        return Response.json(
            error_body(exception, context, expose_internals=self.expose_internals),
            status=status,
        )

