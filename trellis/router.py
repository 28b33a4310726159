"""
Router - dispatch table from (verb, path) to handler descriptors.

Path syntax:
- literal segments: ``/users/active``
- placeholders: ``/users/:id`` or ``/users/{id}`` (one non-empty segment)
- trailing wildcard: ``/files/*`` or ``/files/*path`` (rest of the path,
  at least one segment)

Two-tier lookup:
1. Static route hash map: O(1) for routes without placeholders
2. Segment trie for the rest, preferring literal > placeholder > wildcard
   at every segment and backtracking when a branch dead-ends

The table is built once at bootstrap and is read-only afterwards.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, TYPE_CHECKING
from urllib.parse import unquote

from .faults.filters import CLASS_LEVEL, METHOD_LEVEL, FilterBinding
from .metadata import ControllerFact, MetadataKind, MetadataRegistry, RouteFact
from .modules.errors import BootstrapError
from .pipeline.params import ALL, ParamSource, ParamSpec

if TYPE_CHECKING:
    from .di.core import Container
    from .modules.graph import ModuleGraph, ModuleNode


logger = logging.getLogger("trellis.router")


HTTP_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS")


# ============================================================================
# Errors
# ============================================================================

class RouteConflictError(BootstrapError):
    """
    Two handlers claim the same verb and path shape.

    Example:
        UsersController.show:   GET /users/:id
        UsersController.byName: GET /users/:name  <- CONFLICT
    """

    def __init__(self, method: str, path: str, handlers: List[str]):
        self.method = method
        self.path = path
        self.handlers = handlers
        handler_list = "\n".join(f"   - {h}" for h in handlers)
        super().__init__(
            f"Route conflict: {method} {path}\n   Claimed by:\n{handler_list}",
            suggestion="Give one of the handlers a distinct path or verb.",
            details={"method": method, "path": path},
        )


class RouteDeclarationError(BootstrapError):
    """A route or handler signature cannot be served."""


# ============================================================================
# Paths
# ============================================================================

def normalize_path(path: str) -> str:
    """Leading slash, no trailing slash, duplicate slashes collapsed."""
    segments = [s for s in (path or "").split("/") if s]
    return "/" + "/".join(segments)


def join_paths(*parts: str) -> str:
    return normalize_path("/".join(p for p in parts if p))


@dataclass(frozen=True)
class Segment:
    kind: str  # "literal" | "param" | "wildcard"
    value: str


def parse_pattern(path: str) -> List[Segment]:
    """
    Split a normalized route path into segments.

    Raises:
        RouteDeclarationError: Empty placeholder name or non-trailing wildcard
    """
    raw = [s for s in path.split("/") if s]
    segments: List[Segment] = []
    for index, part in enumerate(raw):
        if part.startswith(":") or (part.startswith("{") and part.endswith("}")):
            name = part[1:] if part.startswith(":") else part[1:-1]
            if not name:
                raise RouteDeclarationError(f"Empty placeholder in route path {path}")
            segments.append(Segment("param", name))
        elif part.startswith("*"):
            if index != len(raw) - 1:
                raise RouteDeclarationError(
                    f"Wildcard must be the last segment of route path {path}",
                )
            segments.append(Segment("wildcard", part[1:] or "*"))
        else:
            segments.append(Segment("literal", part))
    return segments


def shape_of(segments: List[Segment]) -> str:
    """Path with placeholder names erased (``/users/:``)."""
    parts = []
    for seg in segments:
        if seg.kind == "literal":
            parts.append(seg.value)
        elif seg.kind == "param":
            parts.append(":")
        else:
            parts.append("*")
    return "/" + "/".join(parts)


# ============================================================================
# Descriptors
# ============================================================================

@dataclass
class HandlerDescriptor:
    """
    Everything the pipeline needs to serve one route.

    Stage component lists hold resolved instances, in binding order
    (class-level before method-level). Global components are added by the
    application at dispatch.
    """

    controller_class: type
    controller: Any
    method_name: str
    handler: Any
    http_method: str
    full_path: str
    status_code: int = 200
    params: List[ParamSpec] = field(default_factory=list)
    param_pipes: Dict[str, List[Any]] = field(default_factory=dict)
    param_names: List[str] = field(default_factory=list)
    guards: List[Any] = field(default_factory=list)
    pipes: List[Any] = field(default_factory=list)
    interceptors: List[Any] = field(default_factory=list)
    filters: List[FilterBinding] = field(default_factory=list)
    module: Optional["ModuleNode"] = None

    @property
    def name(self) -> str:
        return f"{self.controller_class.__name__}.{self.method_name}"

    def __repr__(self) -> str:
        return f"<HandlerDescriptor {self.http_method} {self.full_path} -> {self.name}>"


@dataclass
class RouteMatch:
    """Result of a successful route match."""

    descriptor: HandlerDescriptor
    params: Dict[str, str]


class _TrieNode:
    """Segment trie node for dynamic route matching."""

    __slots__ = ("children", "param_child", "wildcard", "descriptor")

    def __init__(self) -> None:
        self.children: Dict[str, "_TrieNode"] = {}
        self.param_child: Optional["_TrieNode"] = None
        self.wildcard: Optional[HandlerDescriptor] = None
        self.descriptor: Optional[HandlerDescriptor] = None


class RouteTable:
    """
    Per-verb dispatch table.

    Example:
        table = RouteTable()
        table.add(descriptor)
        match = table.match("GET", "/users/42")
        match.params  # {"id": "42"}
    """

    def __init__(self) -> None:
        self._static: Dict[str, Dict[str, HandlerDescriptor]] = {}
        self._tries: Dict[str, _TrieNode] = {}
        self._shapes: Dict[Tuple[str, str], HandlerDescriptor] = {}
        self._routes: List[HandlerDescriptor] = []

    def add(self, descriptor: HandlerDescriptor) -> None:
        """
        Register a descriptor.

        Raises:
            RouteConflictError: Verb and path shape already taken
        """
        method = descriptor.http_method.upper()
        path = normalize_path(descriptor.full_path)
        segments = parse_pattern(path)

        shape_key = (method, shape_of(segments))
        existing = self._shapes.get(shape_key)
        if existing is not None:
            raise RouteConflictError(
                method, path,
                [f"{existing.name} ({existing.full_path})", f"{descriptor.name} ({path})"],
            )
        self._shapes[shape_key] = descriptor

        descriptor.full_path = path
        descriptor.param_names = [s.value for s in segments if s.kind != "literal"]

        if all(s.kind == "literal" for s in segments):
            self._static.setdefault(method, {})[path] = descriptor
        else:
            node = self._tries.setdefault(method, _TrieNode())
            for seg in segments:
                if seg.kind == "literal":
                    node = node.children.setdefault(seg.value, _TrieNode())
                elif seg.kind == "param":
                    if node.param_child is None:
                        node.param_child = _TrieNode()
                    node = node.param_child
                else:
                    node.wildcard = descriptor
                    break
            else:
                node.descriptor = descriptor

        self._routes.append(descriptor)

    def match(self, method: str, path: str) -> Optional[RouteMatch]:
        """
        Find the handler for ``method`` and ``path``.

        HEAD requests fall back to GET routes when no HEAD route matches.
        """
        method = method.upper()
        result = self._match(method, path)
        if result is None and method == "HEAD":
            result = self._match("GET", path)
        return result

    def _match(self, method: str, path: str) -> Optional[RouteMatch]:
        segments = [unquote(s) for s in path.split("/") if s]

        static = self._static.get(method)
        if static:
            descriptor = static.get("/" + "/".join(segments))
            if descriptor is not None:
                return RouteMatch(descriptor, {})

        root = self._tries.get(method)
        if root is None:
            return None

        captured: List[str] = []
        descriptor = self._walk(root, segments, 0, captured)
        if descriptor is None:
            return None
        return RouteMatch(descriptor, dict(zip(descriptor.param_names, captured)))

    def _walk(
        self,
        node: _TrieNode,
        segments: List[str],
        index: int,
        captured: List[str],
    ) -> Optional[HandlerDescriptor]:
        if index == len(segments):
            return node.descriptor

        segment = segments[index]

        child = node.children.get(segment)
        if child is not None:
            found = self._walk(child, segments, index + 1, captured)
            if found is not None:
                return found

        if node.param_child is not None:
            captured.append(segment)
            found = self._walk(node.param_child, segments, index + 1, captured)
            if found is not None:
                return found
            captured.pop()

        if node.wildcard is not None:
            captured.append("/".join(segments[index:]))
            return node.wildcard

        return None

    def routes(self) -> List[HandlerDescriptor]:
        """All descriptors in registration order."""
        return list(self._routes)

    def has_route(self, method: str, path: str) -> bool:
        return self.match(method, path) is not None

    def __len__(self) -> int:
        return len(self._routes)


# ============================================================================
# Compilation
# ============================================================================

def _catch_types(registry: MetadataRegistry, instance: Any) -> Tuple[type, ...]:
    cls = instance if isinstance(instance, type) else type(instance)
    registry.harvest(cls)
    types = registry.lookup_one(MetadataKind.CATCH, cls)
    if types is None:
        types = getattr(instance, "catches", ())
    return tuple(types or ())


def bind_filter_list(
    registry: MetadataRegistry,
    instances: List[Any],
    level: int,
) -> List[FilterBinding]:
    return [
        FilterBinding(
            filter=instance,
            exception_types=_catch_types(registry, instance),
            level=level,
            order=order,
        )
        for order, instance in enumerate(instances)
    ]


def build_route_table(
    graph: "ModuleGraph",
    container: "Container",
    *,
    global_prefix: str = "",
) -> RouteTable:
    """
    Compile every controller of ``graph`` into a route table.

    Controllers must already be instantiated in ``container``. Stage
    components referenced by class are resolved in each controller's module.

    Raises:
        RouteConflictError: Duplicate verb + path shape
        RouteDeclarationError: Handler argument without a source, or
            reading a path parameter the route does not declare
    """
    registry = graph.registry
    table = RouteTable()

    for controller_cls, node in graph.controllers():
        registry.harvest(controller_cls)
        fact = registry.lookup_one(MetadataKind.CONTROLLER, controller_cls)
        if not isinstance(fact, ControllerFact):
            raise RouteDeclarationError(
                f"{controller_cls.__qualname__} is listed as a controller of module "
                f"{node.name} but is not decorated with @controller",
            )

        instance = container.resolve(controller_cls)

        def resolve_all(items: List[Any]) -> List[Any]:
            return [container.resolve_enhancer(item, node) for item in items]

        class_guards = resolve_all(registry.lookup(MetadataKind.GUARDS, controller_cls))
        class_pipes = resolve_all(registry.lookup(MetadataKind.PIPES, controller_cls))
        class_interceptors = resolve_all(registry.lookup(MetadataKind.INTERCEPTORS, controller_cls))
        class_filters = resolve_all(registry.lookup(MetadataKind.FILTERS, controller_cls))

        logger.info(f"{controller_cls.__name__} {{{join_paths(global_prefix, fact.prefix)}}}")

        for route in registry.lookup(MetadataKind.ROUTES, controller_cls):
            if not isinstance(route, RouteFact):
                continue
            target = (controller_cls, route.method_name)
            full_path = join_paths(global_prefix, fact.prefix, route.path)
            params: List[ParamSpec] = registry.lookup(MetadataKind.PARAMS, target)

            descriptor = HandlerDescriptor(
                controller_class=controller_cls,
                controller=instance,
                method_name=route.method_name,
                handler=getattr(instance, route.method_name),
                http_method=route.http_method.upper(),
                full_path=full_path,
                status_code=route.status_code,
                params=params,
                param_pipes={
                    spec.name: resolve_all(list(spec.pipes)) for spec in params
                },
                guards=class_guards + resolve_all(registry.lookup(MetadataKind.GUARDS, target)),
                pipes=class_pipes + resolve_all(registry.lookup(MetadataKind.PIPES, target)),
                interceptors=class_interceptors + resolve_all(
                    registry.lookup(MetadataKind.INTERCEPTORS, target)
                ),
                filters=(
                    bind_filter_list(registry, class_filters, CLASS_LEVEL)
                    + bind_filter_list(
                        registry,
                        resolve_all(registry.lookup(MetadataKind.FILTERS, target)),
                        METHOD_LEVEL,
                    )
                ),
                module=node,
            )
            _validate_params(descriptor)
            table.add(descriptor)
            logger.info(f"Mapped {{{descriptor.full_path}, {descriptor.http_method}}} route")

    return table


def _validate_params(descriptor: HandlerDescriptor) -> None:
    declared = {s.value for s in parse_pattern(normalize_path(descriptor.full_path)) if s.kind != "literal"}
    for spec in descriptor.params:
        if spec.source == ParamSource.UNBOUND:
            raise RouteDeclarationError(
                f"Parameter '{spec.name}' of {descriptor.name} has no source",
                suggestion=(
                    "Annotate it with Param, Query, Body, Header, Req or Res, "
                    "or give it a default value."
                ),
            )
        if spec.source == ParamSource.PATH and spec.key != ALL and spec.key not in declared:
            raise RouteDeclarationError(
                f"Parameter '{spec.name}' of {descriptor.name} reads path parameter "
                f"'{spec.key}', which {descriptor.http_method} {descriptor.full_path} does not declare",
            )
