"""
Provider implementations for different instantiation strategies.

A provider knows its token, its scope, the dependencies it needs and how to
produce an instance once those are resolved. Resolution itself (caching,
cycle detection, visibility) lives in ``trellis.di.core.Container``.
"""

from __future__ import annotations

import inspect
import types
from dataclasses import dataclass
from typing import Annotated, Any, Callable, Dict, List, Optional, Sequence, Tuple, Union, get_args, get_origin

from .decorators import Inject
from .errors import DIError, ScopeError


class Scope:
    """Provider lifetimes."""

    SINGLETON = "singleton"
    TRANSIENT = "transient"

    ALL = (SINGLETON, TRANSIENT)


def token_name(token: Any) -> str:
    """Human-readable token for diagnostics."""
    if isinstance(token, str):
        return token
    return getattr(token, "__name__", None) or repr(token)


@dataclass(frozen=True)
class ProviderMeta:
    """Compact provider metadata used in diagnostics and inspection."""

    name: str
    token: str
    scope: str
    kind: str
    module: str = ""
    qualname: str = ""
    line: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "token": self.token,
            "scope": self.scope,
            "kind": self.kind,
            "module": self.module,
            "qualname": self.qualname,
            "line": self.line,
        }


@dataclass(frozen=True)
class Dependency:
    """
    A declared dependency.

    ``name`` is the keyword used to pass the value; None means positional.
    """

    token: Any
    name: Optional[str] = None
    optional: bool = False
    has_default: bool = False


def _check_scope(scope: str) -> str:
    if scope not in Scope.ALL:
        raise ScopeError(
            f"Unknown scope '{scope}'",
            suggestion=f"Use one of: {', '.join(Scope.ALL)}",
        )
    return scope


def _source_line(obj: Any) -> Optional[int]:
    try:
        _, line = inspect.getsourcelines(obj)
    except (TypeError, OSError):
        line = None
    return line


def _unwrap_optional(annotation: Any) -> Tuple[Any, bool]:
    """``Optional[T]`` and ``T | None`` become ``(T, True)``."""
    origin = get_origin(annotation)
    if origin is Union or origin is types.UnionType:
        args = [arg for arg in get_args(annotation) if arg is not type(None)]
        if len(args) == 1 and len(args) < len(get_args(annotation)):
            return args[0], True
    return annotation, False


def _parse_annotation(annotation: Any) -> Tuple[Any, bool]:
    """Token and optional flag from a type hint."""
    annotation, optional = _unwrap_optional(annotation)
    if get_origin(annotation) is Annotated:
        base, *extras = get_args(annotation)
        base, inner = _unwrap_optional(base)
        optional = optional or inner
        for extra in extras:
            if isinstance(extra, Inject):
                token = extra.token if extra.token is not None else base
                return token, extra.optional or optional
        return base, optional
    return annotation, optional


def _signature_dependencies(func: Callable, owner: str) -> List[Dependency]:
    """
    Extract keyword dependencies from a callable's annotations.

    Unannotated parameters with defaults are left alone; unannotated
    parameters without defaults cannot be injected.
    """
    try:
        sig = inspect.signature(func)
    except ValueError:
        return []

    try:
        type_hints = inspect.get_annotations(func, eval_str=True)
    except Exception:
        try:
            from typing import get_type_hints
            type_hints = get_type_hints(func, include_extras=True)
        except Exception:
            type_hints = {}

    deps: List[Dependency] = []
    for param_name, param in sig.parameters.items():
        if param_name in ("self", "cls"):
            continue
        if param.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
            continue

        annotation = type_hints.get(param_name, param.annotation)
        has_default = param.default is not inspect.Parameter.empty

        if annotation is inspect.Parameter.empty:
            if has_default:
                continue
            raise DIError(
                f"Missing type annotation for parameter '{param_name}' in {owner}",
                suggestion="Annotate the parameter with the class to inject or use Annotated[T, Inject(token)].",
            )

        token, optional = _parse_annotation(annotation)
        deps.append(Dependency(
            token=token,
            name=param_name,
            optional=optional or has_default,
            has_default=has_default,
        ))

    return deps


# ============================================================================
# Providers
# ============================================================================

class ClassProvider:
    """
    Provider that instantiates a class by resolving constructor dependencies.

    Example:
        ClassProvider(SqlUserRepository, token=UserRepository)
    """

    __slots__ = ("_meta", "_cls", "_token", "_scope", "_dependencies")

    def __init__(
        self,
        cls: type,
        *,
        token: Any = None,
        scope: str = Scope.SINGLETON,
    ):
        self._cls = cls
        self._token = token if token is not None else cls
        self._scope = _check_scope(scope)

        init = cls.__init__
        if init is object.__init__:
            self._dependencies: List[Dependency] = []
        else:
            self._dependencies = _signature_dependencies(init, f"{cls.__qualname__}.__init__")

        self._meta = ProviderMeta(
            name=cls.__name__,
            token=token_name(self._token),
            scope=scope,
            kind="class",
            module=cls.__module__,
            qualname=cls.__qualname__,
            line=_source_line(cls),
        )

    @property
    def meta(self) -> ProviderMeta:
        return self._meta

    @property
    def token(self) -> Any:
        return self._token

    @property
    def scope(self) -> str:
        return self._scope

    @property
    def cls(self) -> type:
        return self._cls

    @property
    def dependencies(self) -> List[Dependency]:
        return list(self._dependencies)

    def instantiate(self, args: Sequence[Any], kwargs: Dict[str, Any]) -> Any:
        return self._cls(*args, **kwargs)

    def definition(self) -> tuple:
        return ("class", self._token, self._cls, self._scope)

    def __eq__(self, other: Any) -> bool:
        return isinstance(other, ClassProvider) and other.definition() == self.definition()

    def __hash__(self) -> int:
        return hash(self.definition())

    def __repr__(self) -> str:
        return f"ClassProvider({self._meta.qualname}, token={self._meta.token})"


class FactoryProvider:
    """
    Provider that calls a factory function to produce the instance.

    Dependencies are the ``inject`` tokens (passed positionally) or, when
    ``inject`` is omitted, the factory's annotated parameters. Factories
    must be synchronous: bootstrap never awaits.

    Example:
        FactoryProvider(
            lambda cfg: Database(cfg.url),
            token="DATABASE",
            inject=[AppConfig],
        )
    """

    __slots__ = ("_meta", "_factory", "_token", "_scope", "_dependencies")

    def __init__(
        self,
        factory: Callable[..., Any],
        *,
        token: Any,
        inject: Optional[Sequence[Any]] = None,
        scope: str = Scope.SINGLETON,
    ):
        if inspect.iscoroutinefunction(factory):
            raise ScopeError(
                f"Factory for {token_name(token)} is async",
                suggestion="Bootstrap is synchronous; create async resources in an on_startup hook.",
            )

        self._factory = factory
        self._token = token
        self._scope = _check_scope(scope)

        if inject is not None:
            self._dependencies = [
                Dependency(token=_parse_annotation(tok)[0], optional=_parse_annotation(tok)[1])
                for tok in inject
            ]
        else:
            qualname = getattr(factory, "__qualname__", repr(factory))
            self._dependencies = _signature_dependencies(factory, qualname)

        self._meta = ProviderMeta(
            name=getattr(factory, "__name__", "factory"),
            token=token_name(token),
            scope=scope,
            kind="factory",
            module=getattr(factory, "__module__", "") or "",
            qualname=getattr(factory, "__qualname__", ""),
            line=_source_line(factory),
        )

    @property
    def meta(self) -> ProviderMeta:
        return self._meta

    @property
    def token(self) -> Any:
        return self._token

    @property
    def scope(self) -> str:
        return self._scope

    @property
    def dependencies(self) -> List[Dependency]:
        return list(self._dependencies)

    def instantiate(self, args: Sequence[Any], kwargs: Dict[str, Any]) -> Any:
        result = self._factory(*args, **kwargs)
        if inspect.isawaitable(result):
            raise ScopeError(
                f"Factory for {self._meta.token} returned an awaitable",
                suggestion="Factories must return the instance synchronously.",
            )
        return result

    def definition(self) -> tuple:
        return ("factory", self._token, self._factory, self._scope)

    def __eq__(self, other: Any) -> bool:
        return isinstance(other, FactoryProvider) and other.definition() == self.definition()

    def __hash__(self) -> int:
        return hash(self.definition())

    def __repr__(self) -> str:
        return f"FactoryProvider({self._meta.name}, token={self._meta.token})"


class ValueProvider:
    """Provider that returns a pre-bound constant value."""

    __slots__ = ("_meta", "_value", "_token")

    def __init__(self, value: Any, token: Any):
        self._value = value
        self._token = token
        self._meta = ProviderMeta(
            name="value",
            token=token_name(token),
            scope=Scope.SINGLETON,
            kind="value",
        )

    @property
    def meta(self) -> ProviderMeta:
        return self._meta

    @property
    def token(self) -> Any:
        return self._token

    @property
    def scope(self) -> str:
        return Scope.SINGLETON

    @property
    def value(self) -> Any:
        return self._value

    @property
    def dependencies(self) -> List[Dependency]:
        return []

    def instantiate(self, args: Sequence[Any], kwargs: Dict[str, Any]) -> Any:
        return self._value

    def definition(self) -> tuple:
        return ("value", self._token, id(self._value))

    def __eq__(self, other: Any) -> bool:
        return (
            isinstance(other, ValueProvider)
            and other._token == self._token
            and other._value is self._value
        )

    def __hash__(self) -> int:
        return hash(("value", self._token))

    def __repr__(self) -> str:
        return f"ValueProvider(token={self._meta.token})"


class AliasProvider:
    """Provider that aliases one token to another."""

    __slots__ = ("_meta", "_token", "_target")

    def __init__(self, token: Any, target: Any):
        self._token = token
        self._target = target
        self._meta = ProviderMeta(
            name="alias",
            token=token_name(token),
            scope=Scope.SINGLETON,
            kind="alias",
        )

    @property
    def meta(self) -> ProviderMeta:
        return self._meta

    @property
    def token(self) -> Any:
        return self._token

    @property
    def target(self) -> Any:
        return self._target

    @property
    def scope(self) -> str:
        return Scope.SINGLETON

    @property
    def dependencies(self) -> List[Dependency]:
        return [Dependency(token=self._target)]

    def instantiate(self, args: Sequence[Any], kwargs: Dict[str, Any]) -> Any:
        return args[0]

    def definition(self) -> tuple:
        return ("alias", self._token, self._target)

    def __eq__(self, other: Any) -> bool:
        return isinstance(other, AliasProvider) and other.definition() == self.definition()

    def __hash__(self) -> int:
        return hash(self.definition())

    def __repr__(self) -> str:
        return f"AliasProvider({self._meta.token} -> {token_name(self._target)})"


PROVIDER_TYPES = (ClassProvider, FactoryProvider, ValueProvider, AliasProvider)


def is_provider(obj: Any) -> bool:
    return isinstance(obj, PROVIDER_TYPES)
