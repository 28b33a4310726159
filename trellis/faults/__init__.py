"""
Trellis faults - structured errors and exception filters.
"""

from .core import Fault, FaultDomain, Severity
from .domains import (
    HttpFault,
    BadRequestFault,
    ValidationFault,
    UnauthorizedFault,
    ForbiddenFault,
    NotFoundFault,
    MethodNotAllowedFault,
    ConflictFault,
    UnprocessableEntityFault,
    TooManyRequestsFault,
    InternalServerFault,
    ServiceUnavailableFault,
)
from .filters import (
    ExceptionFilter,
    DefaultExceptionFilter,
    FilterBinding,
    select_filter,
    status_for,
    error_body,
    GLOBAL_LEVEL,
    CLASS_LEVEL,
    METHOD_LEVEL,
)

__all__ = [
    "Fault",
    "FaultDomain",
    "Severity",
    "HttpFault",
    "BadRequestFault",
    "ValidationFault",
    "UnauthorizedFault",
    "ForbiddenFault",
    "NotFoundFault",
    "MethodNotAllowedFault",
    "ConflictFault",
    "UnprocessableEntityFault",
    "TooManyRequestsFault",
    "InternalServerFault",
    "ServiceUnavailableFault",
    "ExceptionFilter",
    "DefaultExceptionFilter",
    "FilterBinding",
    "select_filter",
    "status_for",
    "error_body",
    "GLOBAL_LEVEL",
    "CLASS_LEVEL",
    "METHOD_LEVEL",
]
