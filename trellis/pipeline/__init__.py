"""
Trellis pipeline - per-request execution of guards, pipes, handler,
interceptors and exception filters.
"""

from .context import ExecutionContext, HttpArgumentsHost
from .params import (
    ALL,
    ArgumentMetadata,
    Body,
    Header,
    Param,
    ParamMarker,
    ParamSource,
    ParamSpec,
    Query,
    Req,
    Res,
    build_param_plan,
    extract_value,
)
from .pipes import (
    PipeTransform,
    ValidationPipe,
    ParseIntPipe,
    ParseFloatPipe,
    ParseBoolPipe,
    ParseArrayPipe,
    DefaultValuePipe,
)
from .engine import (
    CLIENT_CLOSED_REQUEST,
    CallHandler,
    PipelineEngine,
    RequestCancelled,
    aborted_response,
)

__all__ = [
    "ExecutionContext",
    "HttpArgumentsHost",
    "ALL",
    "ArgumentMetadata",
    "Body",
    "Header",
    "Param",
    "ParamMarker",
    "ParamSource",
    "ParamSpec",
    "Query",
    "Req",
    "Res",
    "build_param_plan",
    "extract_value",
    "PipeTransform",
    "ValidationPipe",
    "ParseIntPipe",
    "ParseFloatPipe",
    "ParseBoolPipe",
    "ParseArrayPipe",
    "DefaultValuePipe",
    "CLIENT_CLOSED_REQUEST",
    "CallHandler",
    "PipelineEngine",
    "RequestCancelled",
    "aborted_response",
]
