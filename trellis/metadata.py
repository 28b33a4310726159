"""
Metadata Registry - explicit store of declarative facts.

Decorators in ``trellis.decorators`` only stage facts on the objects they
decorate. Bootstrap harvests those staged facts into a ``MetadataRegistry``
instance, freezes it, and every other layer queries it lazily.

Targets are either a class or a ``(class, method_name)`` pair.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Tuple
import inspect


# Attribute used by decorators to stage facts on classes and functions
STAGED_ATTR = "__trellis_facts__"


class MetadataKind:
    """Well-known fact kinds."""

    COMPONENT = "component"
    MODULE = "module"
    CONTROLLER = "controller"
    ROUTES = "routes"
    PARAMS = "params"
    GUARDS = "guards"
    PIPES = "pipes"
    INTERCEPTORS = "interceptors"
    FILTERS = "filters"
    CATCH = "catch"


# Kinds holding a single value: re-declaration replaces (last write wins)
SINGLE_VALUE_KINDS = frozenset((
    MetadataKind.COMPONENT,
    MetadataKind.MODULE,
    MetadataKind.CONTROLLER,
    MetadataKind.CATCH,
))


class RegistryFrozenError(RuntimeError):
    """Raised when a fact is declared after bootstrap froze the registry."""


@dataclass(frozen=True)
class RouteFact:
    """A handler method bound to an HTTP verb and sub-path."""

    method_name: str
    http_method: str
    path: str = ""
    status_code: int = 200


@dataclass(frozen=True)
class ControllerFact:
    """A class is a routable controller with a base path."""

    prefix: str = ""


@dataclass(frozen=True)
class ComponentFact:
    """A class is an injectable component."""

    scope: str = "singleton"


@dataclass
class StagedFact:
    """Fact waiting on a decorated object until harvest."""

    kind: str
    payload: Any
    order: int = 0


def stage(obj: Any, kind: str, payload: Any, *, before_existing: bool = False) -> None:
    """
    Attach a fact to ``obj`` without touching any registry.

    With ``before_existing`` the fact goes ahead of facts of the same kind
    already staged. Stacked decorators apply bottom-up, so an outer
    decorator uses this to come first in reading order.
    """
    facts = obj.__dict__.get(STAGED_ATTR) if hasattr(obj, "__dict__") else None
    if facts is None:
        facts = []
        setattr(obj, STAGED_ATTR, facts)
    index = len(facts)
    if before_existing:
        index = next((i for i, fact in enumerate(facts) if fact.kind == kind), index)
    facts.insert(index, StagedFact(kind=kind, payload=payload))
    for position, fact in enumerate(facts):
        fact.order = position


def staged_facts(obj: Any) -> List[StagedFact]:
    """Facts staged directly on ``obj`` (never inherited ones)."""
    return list(getattr(obj, "__dict__", {}).get(STAGED_ATTR, ()))


class MetadataRegistry:
    """
    Process-level key/value store of declarative facts.

    Pure storage: no validation happens here. Population happens
    synchronously during bootstrap, before any request can arrive, so the
    registry needs no locking.

    Example:
        registry = MetadataRegistry()
        registry.declare(MetadataKind.CONTROLLER, UsersController, ControllerFact("/users"))
        registry.lookup_one(MetadataKind.CONTROLLER, UsersController)
    """

    def __init__(self) -> None:
        self._facts: Dict[Tuple[str, Any], List[Any]] = {}
        self._harvested: set = set()
        self._frozen = False

    # ------------------------------------------------------------------
    # Population
    # ------------------------------------------------------------------

    def declare(self, kind: str, target: Any, payload: Any) -> None:
        """
        Record a fact.

        Single-value kinds replace any prior value; all other kinds append.
        """
        if self._frozen:
            raise RegistryFrozenError(
                f"Cannot declare '{kind}' on {_describe(target)}: registry is frozen"
            )
        key = (kind, target)
        if kind in SINGLE_VALUE_KINDS:
            self._facts[key] = [payload]
        else:
            self._facts.setdefault(key, []).append(payload)

    def harvest(self, cls: type) -> None:
        """
        Copy facts staged by decorators on ``cls`` and its methods.

        Methods are visited in definition order. Harvesting the same class
        twice is a no-op.
        """
        if cls in self._harvested:
            return
        self._harvested.add(cls)

        for fact in staged_facts(cls):
            self.declare(fact.kind, cls, fact.payload)

        for name, member in vars(cls).items():
            func = _unwrap_member(member)
            if func is None:
                continue
            facts = staged_facts(func)
            if not facts:
                continue
            for fact in facts:
                if fact.kind == MetadataKind.ROUTES:
                    # Routes are keyed by the class so they keep declaration order
                    self.declare(fact.kind, cls, _bind_route(fact.payload, name))
                else:
                    self.declare(fact.kind, (cls, name), fact.payload)

            if any(f.kind == MetadataKind.ROUTES for f in facts):
                from .pipeline.params import build_param_plan

                for spec in build_param_plan(cls, name, func):
                    self.declare(MetadataKind.PARAMS, (cls, name), spec)

    def freeze(self) -> None:
        """Switch to the read-only phase."""
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def is_harvested(self, cls: type) -> bool:
        return cls in self._harvested

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def lookup(self, kind: str, target: Any) -> List[Any]:
        """Accumulated facts for ``kind``/``target`` (empty list if none)."""
        return list(self._facts.get((kind, target), ()))

    def lookup_one(self, kind: str, target: Any, default: Any = None) -> Any:
        """Latest fact for a single-value kind."""
        facts = self._facts.get((kind, target))
        if not facts:
            return default
        return facts[-1]

    def has(self, kind: str, target: Any) -> bool:
        return bool(self._facts.get((kind, target)))

    def targets(self, kind: str) -> Iterator[Any]:
        """All targets carrying at least one fact of ``kind``."""
        for (fact_kind, target), facts in self._facts.items():
            if fact_kind == kind and facts:
                yield target

    def __len__(self) -> int:
        return sum(len(v) for v in self._facts.values())


def _unwrap_member(member: Any) -> Optional[Any]:
    if isinstance(member, (staticmethod, classmethod)):
        member = member.__func__
    if inspect.isfunction(member):
        return member
    return None


def _bind_route(payload: Any, method_name: str) -> RouteFact:
    if isinstance(payload, RouteFact):
        return RouteFact(
            method_name=method_name,
            http_method=payload.http_method,
            path=payload.path,
            status_code=payload.status_code,
        )
    return payload


def _describe(target: Any) -> str:
    if isinstance(target, tuple):
        cls, name = target
        return f"{getattr(cls, '__qualname__', cls)}.{name}"
    return getattr(target, "__qualname__", repr(target))
