"""
DI Container - resolves provider tokens into instances.

Resolution of a token:
1. Cached singleton: returned as is.
2. Otherwise the provider's declared dependencies are resolved in order,
   with the resolution stack used to detect cycles before recursing.
3. The instance is built, cached under its token when it is a singleton,
   and returned.

Bootstrap is synchronous: the container never awaits. Only lifecycle hooks
(``on_startup`` / ``on_shutdown``) may be coroutines.
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple, TYPE_CHECKING

from ..metadata import ComponentFact, MetadataKind
from .errors import DIError, DependencyCycleError, ProviderNotFoundError, ProviderVisibilityError
from .providers import (
    AliasProvider,
    ClassProvider,
    Scope,
    ValueProvider,
    is_provider,
    token_name,
)

if TYPE_CHECKING:
    from ..modules.graph import ModuleGraph, ModuleNode


logger = logging.getLogger("trellis.di")


# Marker for an optional dependency that has no provider
_MISSING = object()


class ResolveCtx:
    """
    Context for one resolution.

    Tracks the resolution stack for cycle detection and diagnostics.
    """

    __slots__ = ("container", "stack")

    def __init__(self, container: "Container"):
        self.container = container
        self.stack: List[Any] = []

    def push(self, token: Any) -> None:
        self.stack.append(token)

    def pop(self) -> None:
        self.stack.pop()

    def in_cycle(self, token: Any) -> bool:
        """Check if token is currently being resolved (cycle)."""
        return token in self.stack

    def cycle_to(self, token: Any) -> List[str]:
        """Chain from the first occurrence of ``token`` back to itself."""
        start = self.stack.index(token)
        return [token_name(t) for t in self.stack[start:]] + [token_name(token)]

    def get_trace(self) -> List[str]:
        return [token_name(t) for t in self.stack]


class Container:
    """
    Provider registry plus singleton cache.

    Usually built from a resolved module graph, which also enables
    visibility checks:

        container = Container.from_graph(graph)
        container.instantiate_all()
        users = container.get(UsersService)

    Without a graph the container is a flat registry and every token is
    visible everywhere.
    """

    def __init__(self, graph: Optional["ModuleGraph"] = None):
        self._graph = graph
        self._providers: Dict[Any, Any] = {}
        self._owners: Dict[Any, List["ModuleNode"]] = {}
        self._overrides: Dict[Any, Any] = {}
        self._cache: Dict[Any, Any] = {}
        self._enhancers: Dict[Tuple[int, type], Any] = {}
        self._instances: List[Any] = []

    @classmethod
    def from_graph(cls, graph: "ModuleGraph") -> "Container":
        """Register every provider and controller of a module graph."""
        container = cls(graph)
        for entry, node in graph.providers():
            provider = container._as_provider(entry)
            for owner in graph.owners_of(provider.token):
                container.register(provider, owner)
        for controller, node in graph.controllers():
            container.register(ClassProvider(controller), node)
        logger.debug(f"Registered {len(container._providers)} provider(s)")
        return container

    def _as_provider(self, entry: Any) -> Any:
        if is_provider(entry):
            return entry
        scope = Scope.SINGLETON
        if self._graph is not None:
            fact = self._graph.registry.lookup_one(MetadataKind.COMPONENT, entry)
            if isinstance(fact, ComponentFact):
                scope = fact.scope
        return ClassProvider(entry, scope=scope)

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, provider: Any, module: Optional["ModuleNode"] = None) -> None:
        """
        Register a provider, or a class as a singleton ``ClassProvider``.

        Args:
            provider: Provider object or class
            module: Owning module node (enables visibility checks)
        """
        if not is_provider(provider):
            provider = self._as_provider(provider)
        token = provider.token
        self._providers[token] = provider
        if module is not None:
            owners = self._owners.setdefault(token, [])
            if module not in owners:
                owners.append(module)

    def override(self, token: Any, replacement: Any) -> None:
        """
        Replace what ``token`` resolves to.

        ``replacement`` is a provider object or a literal value. Must happen
        before the token is instantiated.
        """
        if token in self._cache:
            raise DIError(
                f"Cannot override {token_name(token)}: already instantiated",
                suggestion="Apply overrides before instantiate_all().",
            )
        if not is_provider(replacement):
            replacement = ValueProvider(replacement, token)
        elif replacement.token != token:
            if isinstance(replacement, ClassProvider):
                replacement = ClassProvider(replacement.cls, token=token, scope=replacement.scope)
            else:
                raise DIError(f"Override for {token_name(token)} is registered under {replacement.meta.token}")
        self._overrides[token] = replacement
        logger.debug(f"Override registered for {token_name(token)}")

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def resolve(
        self,
        token: Any,
        requesting_module: Any = None,
        *,
        optional: bool = False,
    ) -> Any:
        """
        Resolve ``token``.

        Args:
            token: Class or string key
            requesting_module: Module whose visibility applies (None: any)
            optional: Return None instead of raising when no provider exists

        Raises:
            ProviderNotFoundError: No provider for the token
            ProviderVisibilityError: Provider exists but is not visible
            DependencyCycleError: Token (indirectly) depends on itself
        """
        modules = self._modules_for(requesting_module)
        result = self._resolve(token, ResolveCtx(self), modules, None, optional)
        return None if result is _MISSING else result

    def get(self, token: Any) -> Any:
        """Resolve ``token`` ignoring module visibility."""
        return self.resolve(token)

    def has(self, token: Any) -> bool:
        return token in self._providers or token in self._overrides

    def _modules_for(self, module: Any) -> List["ModuleNode"]:
        if module is None or self._graph is None:
            return []
        try:
            return [self._graph.node(module)]
        except KeyError:
            name = getattr(module, "name", None) or getattr(module, "__name__", repr(module))
            raise DIError(
                f"Module {name} is not part of the application's module graph",
                suggestion="Import it (directly or transitively) from the root module.",
            ) from None

    def _lookup(self, token: Any) -> Any:
        provider = self._overrides.get(token)
        if provider is None:
            provider = self._providers.get(token)
        return provider

    def _check_visible(
        self,
        token: Any,
        modules: Sequence["ModuleNode"],
        requested_by: Optional[str],
    ) -> bool:
        """True when visible; False for a missing token; raises otherwise."""
        if not modules or self._graph is None:
            return True
        if any(self._graph.can_see(node, token) for node in modules):
            return True
        if token in self._overrides and not self._graph.has_token(token):
            return True
        if self._graph.has_token(token):
            raise ProviderVisibilityError(
                token_name(token),
                requested_by,
                modules[0].name,
                [owner.name for owner in self._graph.owners_of(token)],
            )
        return False

    def _resolve(
        self,
        token: Any,
        ctx: ResolveCtx,
        modules: Sequence["ModuleNode"],
        requested_by: Optional[str],
        optional: bool = False,
    ) -> Any:
        visible = self._check_visible(token, modules, requested_by)
        provider = self._lookup(token) if visible else None

        if provider is None:
            if optional:
                return _MISSING
            raise ProviderNotFoundError(
                token_name(token),
                requested_by=requested_by,
                module=modules[0].name if modules else None,
                candidates=self._candidates(token),
            )

        if token in self._cache:
            return self._cache[token]

        if ctx.in_cycle(token):
            raise DependencyCycleError(ctx.cycle_to(token))

        home = self._owners.get(token, [])
        ctx.push(token)
        try:
            if isinstance(provider, AliasProvider):
                # Aliases never cache; the target owns its lifetime
                return self._resolve(provider.target, ctx, home, token_name(token))
            args, kwargs = self._resolve_dependencies(provider, ctx, home)
            instance = provider.instantiate(args, kwargs)
        finally:
            ctx.pop()

        if provider.scope == Scope.SINGLETON:
            self._cache[token] = instance
            self._track(instance)
            logger.debug(f"Instantiated {provider.meta.kind} provider {token_name(token)}")
        return instance

    def _resolve_dependencies(
        self,
        provider: Any,
        ctx: ResolveCtx,
        modules: Sequence["ModuleNode"],
    ) -> Tuple[List[Any], Dict[str, Any]]:
        requested_by = provider.meta.qualname or provider.meta.token
        args: List[Any] = []
        kwargs: Dict[str, Any] = {}
        for dep in provider.dependencies:
            value = self._resolve(dep.token, ctx, modules, requested_by, dep.optional)
            if value is _MISSING:
                # Missing optional: the parameter default applies, else None
                if dep.name is None:
                    args.append(None)
                elif not dep.has_default:
                    kwargs[dep.name] = None
            elif dep.name is None:
                args.append(value)
            else:
                kwargs[dep.name] = value
        return args, kwargs

    def _track(self, instance: Any) -> None:
        if not any(existing is instance for existing in self._instances):
            self._instances.append(instance)

    def _candidates(self, token: Any) -> List[str]:
        if not isinstance(token, (str, type)):
            return []
        wanted = token_name(token).lower()
        return sorted(
            token_name(t) for t in self._providers
            if token_name(t).lower() == wanted and t != token
        )

    # ------------------------------------------------------------------
    # Enhancers (guards, pipes, interceptors, filters)
    # ------------------------------------------------------------------

    def resolve_enhancer(self, ref: Any, module: Any = None) -> Any:
        """
        Resolve a pipeline component referenced by class or instance.

        Instances are used as is. A class is resolved as the provider
        visible to ``module`` when there is one; otherwise a singleton is
        built for that module with dependencies visible to it.
        """
        if not isinstance(ref, type):
            return ref

        modules = self._modules_for(module)
        if ref in self._overrides or (
            self.has(ref) and (not modules or self._graph.can_see(modules[0], ref))
        ):
            return self.resolve(ref, module)

        key = (id(modules[0]) if modules else 0, ref)
        instance = self._enhancers.get(key)
        if instance is None:
            provider = ClassProvider(ref)
            ctx = ResolveCtx(self)
            ctx.push(ref)
            args, kwargs = self._resolve_dependencies(provider, ctx, modules)
            instance = provider.instantiate(args, kwargs)
            self._enhancers[key] = instance
            self._track(instance)
            logger.debug(f"Built enhancer {ref.__name__}")
        return instance

    # ------------------------------------------------------------------
    # Bootstrap & lifecycle
    # ------------------------------------------------------------------

    def instantiate_all(self) -> None:
        """
        Run every provider and controller constructor now.

        Wiring errors surface at bootstrap instead of on first request.
        Transient providers are built once to validate their wiring and
        then discarded.
        """
        for token in list(self._providers):
            self._resolve(token, ResolveCtx(self), [], None)
        logger.debug(f"Instantiated {len(self._cache)} singleton(s)")

    @property
    def instances(self) -> List[Any]:
        """Singletons and enhancers in instantiation order."""
        return list(self._instances)

    def providers(self) -> List[Any]:
        return list(self._providers.values())

    async def startup(self) -> None:
        """Run ``on_startup`` hooks in instantiation order."""
        for instance in self._instances:
            await _call_hook(instance, "on_startup")

    async def shutdown(self) -> None:
        """
        Run ``on_shutdown`` hooks in reverse instantiation order.

        A failing hook is logged and does not stop the others.
        """
        for instance in reversed(self._instances):
            try:
                await _call_hook(instance, "on_shutdown")
            except Exception:
                logger.error(
                    f"Error during shutdown of {type(instance).__name__}", exc_info=True,
                )

    def __contains__(self, token: Any) -> bool:
        return self.has(token)

    def __repr__(self) -> str:
        return f"<Container providers={len(self._providers)} cached={len(self._cache)}>"


async def _call_hook(instance: Any, name: str) -> None:
    hook = getattr(instance, name, None)
    if hook is None or not callable(hook):
        return
    result = hook()
    if inspect.isawaitable(result):
        await result
