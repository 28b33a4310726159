"""
Handler parameter plans.

A handler declares where each argument comes from with ``typing.Annotated``
markers:

    @GET("/:id")
    def show(
        self,
        request: Request,
        id: Annotated[int, Param("id", ParseIntPipe)],
        verbose: Annotated[bool, Query("verbose", ParseBoolPipe)] = False,
    ):
        ...

Plans are built once at harvest time; at request time ``extract_value``
pulls the raw value out of the execution context and the pipe stage
transforms it.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from typing import Annotated, Any, List, Optional, Tuple, get_args, get_origin, get_type_hints

logger = logging.getLogger("trellis.pipeline")


# Key selecting the whole mapping (all path params, all query params, ...)
ALL = "*"


class ParamSource:
    """Where a handler argument is read from."""

    PATH = "path"
    QUERY = "query"
    BODY = "body"
    HEADER = "header"
    REQUEST = "request"
    RESPONSE = "response"
    CONTEXT = "context"
    # Parameter without marker and without default; rejected at bootstrap
    UNBOUND = "unbound"


# ============================================================================
# Markers
# ============================================================================

class ParamMarker:
    """
    Base for parameter markers.

    Args:
        key: Name to read. Defaults to the parameter name for path, query
            and header sources and to the whole body for ``Body``. ``"*"``
            selects the whole mapping.
        *pipes: Parameter-level pipes (classes or instances), run after
            global, class and method pipes.
    """

    source: str = ParamSource.UNBOUND

    def __init__(self, key: Optional[str] = None, *pipes: Any):
        self.key = key
        self.pipes = tuple(pipes)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.key!r})"


class Param(ParamMarker):
    source = ParamSource.PATH


class Query(ParamMarker):
    source = ParamSource.QUERY


class Body(ParamMarker):
    source = ParamSource.BODY


class Header(ParamMarker):
    source = ParamSource.HEADER


class Req(ParamMarker):
    """The raw request handle."""

    source = ParamSource.REQUEST

    def __init__(self) -> None:
        super().__init__(None)


class Res(ParamMarker):
    """The mutable response handle."""

    source = ParamSource.RESPONSE

    def __init__(self) -> None:
        super().__init__(None)


# ============================================================================
# Plan
# ============================================================================

@dataclass(frozen=True)
class ArgumentMetadata:
    """What a pipe is told about the value it transforms."""

    type: str
    data: Optional[str] = None
    metatype: Any = None
    name: Optional[str] = None


@dataclass(frozen=True)
class ParamSpec:
    """
    One argument of a handler.

    Attributes:
        index: Position in the handler signature (self excluded)
        name: Parameter name, used as keyword when calling the handler
        source: ``ParamSource`` value
        key: Resolved key within the source (None for whole body / handles)
        pipes: Parameter-level pipes in declaration order
        annotation: Declared type (the ``Annotated`` origin when present)
        default: Parameter default, ``inspect.Parameter.empty`` if none
    """

    index: int
    name: str
    source: str
    key: Optional[str] = None
    pipes: Tuple[Any, ...] = ()
    annotation: Any = None
    default: Any = inspect.Parameter.empty

    @property
    def has_default(self) -> bool:
        return self.default is not inspect.Parameter.empty

    @property
    def metadata(self) -> ArgumentMetadata:
        return ArgumentMetadata(
            type=self.source,
            data=self.key,
            metatype=self.annotation,
            name=self.name,
        )

    @property
    def transformable(self) -> bool:
        """Handles (request/response/context) never go through pipes."""
        return self.source in (
            ParamSource.PATH, ParamSource.QUERY, ParamSource.BODY, ParamSource.HEADER,
        )


def build_param_plan(cls: type, name: str, func: Any) -> List[ParamSpec]:
    """
    Derive the ordered parameter plan of a handler method.

    Parameters with neither a marker nor a recognised handle type are
    recorded as ``UNBOUND`` when they have no default (the router rejects
    those at bootstrap) and skipped otherwise.
    """
    try:
        hints = get_type_hints(func, include_extras=True)
    except Exception:
        logger.debug(f"Could not resolve type hints of {cls.__qualname__}.{name}; using raw annotations")
        hints = {}

    signature = inspect.signature(func)
    plan: List[ParamSpec] = []
    index = 0

    for param_name, param in signature.parameters.items():
        if param_name == "self":
            continue
        if param.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
            continue

        annotation = hints.get(param_name, param.annotation)
        marker, base_type = _split_annotation(annotation)
        default = param.default

        # Marker given as the default value: ``id: int = Param("id")``
        if marker is None and isinstance(default, ParamMarker):
            marker, default = default, inspect.Parameter.empty

        if marker is None:
            handle_source = _handle_source(base_type)
            if handle_source is not None:
                marker_source, key, pipes = handle_source, None, ()
            elif default is not inspect.Parameter.empty:
                continue
            else:
                marker_source, key, pipes = ParamSource.UNBOUND, None, ()
        else:
            marker_source = marker.source
            key = marker.key
            pipes = marker.pipes
            if key is None and marker_source in (
                ParamSource.PATH, ParamSource.QUERY, ParamSource.HEADER,
            ):
                key = param_name

        plan.append(ParamSpec(
            index=index,
            name=param_name,
            source=marker_source,
            key=key,
            pipes=tuple(pipes),
            annotation=base_type if base_type is not inspect.Parameter.empty else None,
            default=default,
        ))
        index += 1

    return plan


def _split_annotation(annotation: Any) -> Tuple[Optional[ParamMarker], Any]:
    if get_origin(annotation) is Annotated:
        base, *extras = get_args(annotation)
        for extra in extras:
            if isinstance(extra, ParamMarker):
                return extra, base
            if isinstance(extra, type) and issubclass(extra, ParamMarker):
                return extra(), base
        return None, base
    return None, annotation


def _handle_source(annotation: Any) -> Optional[str]:
    from ..request import Request
    from ..response import Response
    from .context import ExecutionContext

    if annotation is Request:
        return ParamSource.REQUEST
    if annotation is Response:
        return ParamSource.RESPONSE
    if annotation is ExecutionContext:
        return ParamSource.CONTEXT
    return None


# ============================================================================
# Extraction
# ============================================================================

def extract_value(spec: ParamSpec, context: Any) -> Any:
    """
    Read the raw value of ``spec`` from an execution context.

    Missing values come back as None, or as the parameter default when it
    has one.
    """
    request = context.request
    source = spec.source

    if source == ParamSource.REQUEST:
        return request
    if source == ParamSource.RESPONSE:
        return context.response
    if source == ParamSource.CONTEXT:
        return context

    if source == ParamSource.PATH:
        value = dict(context.params) if spec.key == ALL else context.params.get(spec.key)
    elif source == ParamSource.QUERY:
        value = dict(request.query) if spec.key == ALL else request.query.get(spec.key)
    elif source == ParamSource.HEADER:
        value = dict(request.headers) if spec.key == ALL else request.header(spec.key)
    elif source == ParamSource.BODY:
        body = request.parsed_body()
        if spec.key is None or spec.key == ALL:
            value = body
        elif isinstance(body, dict):
            value = body.get(spec.key)
        else:
            value = None
    else:
        raise RuntimeError(f"Parameter '{spec.name}' has no source")

    if value is None and spec.has_default:
        return spec.default
    return value
