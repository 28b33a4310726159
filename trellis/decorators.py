"""
Declaration decorators.

Every decorator here only stages facts on the decorated object; nothing is
registered at import time. Bootstrap harvests the staged facts into the
application's ``MetadataRegistry``.

Example:
    @injectable
    class UsersService:
        def find(self, user_id: int) -> dict: ...

    @controller("/users")
    @use_guards(AuthGuard)
    class UsersController:
        def __init__(self, users: UsersService):
            self.users = users

        @GET("/:id")
        def show(self, id: Annotated[int, Param("id", ParseIntPipe)]):
            return self.users.find(id)

    @module(providers=[UsersService], controllers=[UsersController])
    class UsersModule:
        pass
"""

from typing import Any, Callable, Iterable, List, Optional, Sequence, TypeVar, Union

from .di.providers import Scope
from .metadata import (
    ComponentFact,
    ControllerFact,
    MetadataKind,
    RouteFact,
    stage,
)
from .modules.declaration import ModuleDeclaration
from .pipeline.params import Body, Header, Param, Query, Req, Res

F = TypeVar("F", bound=Callable[..., Any])
T = TypeVar("T")


# ============================================================================
# Components & modules
# ============================================================================

def injectable(cls: Optional[type] = None, *, scope: str = Scope.SINGLETON) -> Any:
    """
    Mark a class as an injectable component.

    Usable bare (``@injectable``) or with options
    (``@injectable(scope="transient")``).
    """
    def decorator(target: type) -> type:
        stage(target, MetadataKind.COMPONENT, ComponentFact(scope=scope))
        return target

    if cls is not None:
        return decorator(cls)
    return decorator


def controller(prefix: str = "") -> Callable[[type], type]:
    """
    Mark a class as a routable controller mounted at ``prefix``.

    Controllers are singleton components: their constructor dependencies
    are injected like any provider's.
    """
    def decorator(cls: type) -> type:
        stage(cls, MetadataKind.CONTROLLER, ControllerFact(prefix=prefix))
        stage(cls, MetadataKind.COMPONENT, ComponentFact(scope=Scope.SINGLETON))
        return cls

    return decorator


def module(
    *,
    providers: Sequence[Any] = (),
    controllers: Sequence[type] = (),
    imports: Sequence[Any] = (),
    exports: Sequence[Any] = (),
    name: Optional[str] = None,
) -> Callable[[type], type]:
    """
    Declare a module.

    Args:
        providers: Classes or provider objects owned by this module
        controllers: Controller classes owned by this module
        imports: Modules whose exports this module may use
        exports: Own providers (or imported modules) made visible to importers
        name: Display name (defaults to the class name)
    """
    def decorator(cls: type) -> type:
        stage(cls, MetadataKind.MODULE, ModuleDeclaration(
            name=name or cls.__name__,
            providers=list(providers),
            controllers=list(controllers),
            imports=list(imports),
            exports=list(exports),
        ))
        return cls

    return decorator


# ============================================================================
# Routes
# ============================================================================

class RouteDecorator:
    """
    Base route decorator.

    Attaches route facts to controller methods without import-time side
    effects. A method may carry several route decorators.
    """

    method: Optional[str] = None

    def __init__(self, path: str = "", *, status_code: Optional[int] = None):
        """
        Initialize route decorator.

        Args:
            path: Sub-path below the controller prefix (e.g. "/:id")
            status_code: Default status for plain return values
        """
        self.path = path or ""
        self.status_code = status_code

    def __call__(self, func: F) -> F:
        stage(func, MetadataKind.ROUTES, RouteFact(
            method_name=func.__name__,
            http_method=self.method,
            path=self.path,
            status_code=self.status_code if self.status_code is not None else 200,
        ))
        return func


class GET(RouteDecorator):
    """GET request decorator."""

    method = "GET"


class POST(RouteDecorator):
    """POST request decorator."""

    method = "POST"


class PUT(RouteDecorator):
    """PUT request decorator."""

    method = "PUT"


class PATCH(RouteDecorator):
    """PATCH request decorator."""

    method = "PATCH"


class DELETE(RouteDecorator):
    """DELETE request decorator."""

    method = "DELETE"


class HEAD(RouteDecorator):
    """HEAD request decorator."""

    method = "HEAD"


class OPTIONS(RouteDecorator):
    """OPTIONS request decorator."""

    method = "OPTIONS"


def route(
    methods: Union[str, Iterable[str]],
    path: str = "",
    *,
    status_code: Optional[int] = None,
) -> Callable[[F], F]:
    """
    Bind a handler to several verbs at once.

    Example:
        @route(["GET", "HEAD"], "/health")
        def health(self): ...
    """
    verbs: List[str] = [methods] if isinstance(methods, str) else list(methods)

    def decorator(func: F) -> F:
        for verb in verbs:
            stage(func, MetadataKind.ROUTES, RouteFact(
                method_name=func.__name__,
                http_method=verb.upper(),
                path=path,
                status_code=status_code if status_code is not None else 200,
            ))
        return func

    return decorator


# ============================================================================
# Pipeline bindings
# ============================================================================

def _binding(kind: str, items: Sequence[Any]) -> Callable[[T], T]:
    # @use_guards(A) above @use_guards(B) runs A first
    def decorator(target: T) -> T:
        for item in reversed(items):
            stage(target, kind, item, before_existing=True)
        return target

    return decorator


def use_guards(*guards: Any) -> Callable[[T], T]:
    """
    Bind guards to a controller class or a handler.

    Guards expose ``can_activate(context)`` (sync or async). Classes are
    resolved through DI in the controller's module.
    """
    return _binding(MetadataKind.GUARDS, guards)


def use_pipes(*pipes: Any) -> Callable[[T], T]:
    """Bind pipes that run for every argument of the decorated handler(s)."""
    return _binding(MetadataKind.PIPES, pipes)


def use_interceptors(*interceptors: Any) -> Callable[[T], T]:
    """Bind interceptors (``intercept(context, call_next)``)."""
    return _binding(MetadataKind.INTERCEPTORS, interceptors)


def use_filters(*filters: Any) -> Callable[[T], T]:
    """Bind exception filters (``catch(exception, context)``)."""
    return _binding(MetadataKind.FILTERS, filters)


def catch(*exception_types: type) -> Callable[[T], T]:
    """
    Declare which exceptions a filter class handles.

    A filter declared without types is a catch-all.
    """
    def decorator(cls: T) -> T:
        stage(cls, MetadataKind.CATCH, tuple(exception_types))
        return cls

    return decorator


__all__ = [
    "injectable",
    "controller",
    "module",
    "RouteDecorator",
    "GET",
    "POST",
    "PUT",
    "PATCH",
    "DELETE",
    "HEAD",
    "OPTIONS",
    "route",
    "use_guards",
    "use_pipes",
    "use_interceptors",
    "use_filters",
    "catch",
    "Param",
    "Query",
    "Body",
    "Header",
    "Req",
    "Res",
]
