"""
Dependency Injection (di/)

Tests Container, Providers, Scopes, Inject markers, Visibility, Cycles,
Overrides and Lifecycle hooks.
"""

from typing import Annotated, Optional

import pytest

from trellis.decorators import injectable, module
from trellis.di import (
    AliasProvider,
    ClassProvider,
    Container,
    DependencyCycleError,
    DIError,
    FactoryProvider,
    Inject,
    ProviderNotFoundError,
    ProviderVisibilityError,
    ResolveCtx,
    Scope,
    ScopeError,
    ValueProvider,
)
from trellis.modules import ModuleDeclaration, ModuleGraph


class Repository:
    pass


class Service:
    def __init__(self, repo: Repository):
        self.repo = repo


# ============================================================================
# Providers
# ============================================================================

class TestProviders:

    def test_class_provider_meta(self):
        provider = ClassProvider(Service)
        assert provider.meta.name == "Service"
        assert provider.meta.kind == "class"
        assert provider.token is Service
        assert provider.scope == Scope.SINGLETON

    def test_class_provider_dependencies(self):
        provider = ClassProvider(Service)
        (dep,) = provider.dependencies
        assert dep.token is Repository
        assert dep.name == "repo"

    def test_annotated_inject_overrides_token(self):
        class UsesConfig:
            def __init__(self, config: Annotated[dict, Inject("CONFIG")]):
                self.config = config

        (dep,) = ClassProvider(UsesConfig).dependencies
        assert dep.token == "CONFIG"

    def test_unannotated_parameter_rejected(self):
        class Untyped:
            def __init__(self, thing):
                self.thing = thing

        with pytest.raises(DIError):
            ClassProvider(Untyped)

    def test_unknown_scope_rejected(self):
        with pytest.raises(ScopeError):
            ClassProvider(Repository, scope="request")

    def test_async_factory_rejected(self):
        async def make():
            return 1

        with pytest.raises(ScopeError):
            FactoryProvider(make, token="ASYNC")

    def test_value_provider(self):
        container = Container()
        container.register(ValueProvider("postgres://localhost/db", "DB_URL"))
        assert container.resolve("DB_URL") == "postgres://localhost/db"


# ============================================================================
# Resolution
# ============================================================================

class TestResolution:

    def test_resolves_dependencies(self):
        container = Container()
        container.register(Repository)
        container.register(Service)
        service = container.resolve(Service)
        assert isinstance(service.repo, Repository)

    def test_singleton_identity(self):
        container = Container()
        container.register(Repository)
        container.register(Service)
        assert container.resolve(Service) is container.resolve(Service)
        assert container.resolve(Service).repo is container.resolve(Repository)

    def test_transient_is_rebuilt(self):
        container = Container()
        container.register(ClassProvider(Repository, scope=Scope.TRANSIENT))
        assert container.resolve(Repository) is not container.resolve(Repository)

    def test_factory_with_inject_tokens(self):
        container = Container()
        container.register(ValueProvider("sqlite://", "URL"))
        container.register(FactoryProvider(lambda url: {"url": url}, token="DB", inject=["URL"]))
        assert container.resolve("DB") == {"url": "sqlite://"}

    def test_alias_resolves_target(self):
        container = Container()
        container.register(Repository)
        container.register(AliasProvider("REPO", Repository))
        assert container.resolve("REPO") is container.resolve(Repository)

    def test_missing_provider(self):
        container = Container()
        container.register(Service)
        with pytest.raises(ProviderNotFoundError) as exc_info:
            container.resolve(Service)
        assert "token=Repository" in str(exc_info.value)
        assert "requested by" in str(exc_info.value)

    def test_optional_dependency(self):
        class Cache:
            pass

        class Reader:
            def __init__(self, cache: Annotated[Optional[Cache], Inject(Cache, optional=True)]):
                self.cache = cache

        class Defaulted:
            def __init__(self, cache: Cache = None):
                self.cache = cache

        container = Container()
        container.register(Reader)
        container.register(Defaulted)
        assert container.resolve(Reader).cache is None
        assert container.resolve(Defaulted).cache is None

    def test_optional_hint_injects_registered_provider(self):
        class Cache:
            pass

        class Defaulted:
            def __init__(self, cache: Optional[Cache] = None):
                self.cache = cache

        class Piped:
            def __init__(self, cache: Cache | None):
                self.cache = cache

        container = Container()
        container.register(Cache)
        container.register(Defaulted)
        container.register(Piped)
        assert container.resolve(Defaulted).cache is container.resolve(Cache)
        assert container.resolve(Piped).cache is container.resolve(Cache)

    def test_optional_hint_without_provider(self):
        class Cache:
            pass

        class Bare:
            def __init__(self, cache: Optional[Cache]):
                self.cache = cache

        class Marked:
            def __init__(self, cache: Annotated[Optional[Cache], "cache"] = None):
                self.cache = cache

        container = Container()
        container.register(Bare)
        container.register(Marked)
        assert container.resolve(Bare).cache is None
        assert container.resolve(Marked).cache is None

    def test_unknown_requesting_module(self):
        inner = ModuleDeclaration(name="Inner", providers=[Repository])
        graph = ModuleGraph.build(inner)
        container = Container.from_graph(graph)
        stray = ModuleDeclaration(name="Stray")
        with pytest.raises(DIError, match="Stray"):
            container.resolve(Repository, stray)

    def test_optional_resolve(self):
        assert Container().resolve("NOPE", optional=True) is None


# ============================================================================
# Cycles
# ============================================================================

class A:
    def __init__(self, b: "B"):
        self.b = b


class B:
    def __init__(self, a: A):
        self.a = a


class TestCycles:

    def test_direct_cycle(self):
        container = Container()
        container.register(A)
        container.register(B)
        with pytest.raises(DependencyCycleError) as exc_info:
            container.resolve(A)
        assert exc_info.value.cycle == ["A", "B", "A"]
        assert "A -> B -> A" in str(exc_info.value)

    def test_self_dependency(self):
        container = Container()
        container.register(FactoryProvider(lambda me: me, token="SELF", inject=["SELF"]))
        with pytest.raises(DependencyCycleError):
            container.resolve("SELF")

    def test_resolve_ctx(self):
        ctx = ResolveCtx(Container())
        ctx.push(A)
        ctx.push(B)
        assert ctx.in_cycle(A)
        assert ctx.cycle_to(A) == ["A", "B", "A"]
        ctx.pop()
        assert ctx.get_trace() == ["A"]


# ============================================================================
# Module visibility
# ============================================================================

@injectable
class Mailer:
    pass


@injectable
class Secret:
    pass


@injectable
class Notifier:
    def __init__(self, mailer: Mailer):
        self.mailer = mailer


@injectable
class Snoop:
    def __init__(self, secret: Secret):
        self.secret = secret


@module(providers=[Mailer, Secret], exports=[Mailer])
class MailModule:
    pass


class TestVisibility:

    def test_exported_provider_injected_across_modules(self):
        root = ModuleDeclaration(name="Root", imports=[MailModule], providers=[Notifier])
        container = Container.from_graph(ModuleGraph.build(root))
        container.instantiate_all()
        assert container.get(Notifier).mailer is container.get(Mailer)

    def test_unexported_provider_is_not_visible(self):
        root = ModuleDeclaration(name="Root", imports=[MailModule], providers=[Snoop])
        container = Container.from_graph(ModuleGraph.build(root))
        with pytest.raises(ProviderVisibilityError) as exc_info:
            container.instantiate_all()
        message = str(exc_info.value)
        assert "Secret" in message
        assert "MailModule" in message

    def test_resolve_from_module(self):
        root = ModuleDeclaration(name="Root", imports=[MailModule])
        graph = ModuleGraph.build(root)
        container = Container.from_graph(graph)
        assert isinstance(container.resolve(Mailer, root), Mailer)
        with pytest.raises(ProviderVisibilityError):
            container.resolve(Secret, root)

    def test_component_scope_from_decorator(self):
        @injectable(scope=Scope.TRANSIENT)
        class Ticket:
            pass

        root = ModuleDeclaration(name="Root", providers=[Ticket])
        container = Container.from_graph(ModuleGraph.build(root))
        assert container.get(Ticket) is not container.get(Ticket)


# ============================================================================
# Overrides & enhancers
# ============================================================================

class TestOverrides:

    def test_override_with_value(self):
        container = Container()
        container.register(Repository)
        container.register(Service)
        fake = object()
        container.override(Repository, fake)
        assert container.resolve(Service).repo is fake

    def test_override_with_class_provider(self):
        class FakeRepository:
            pass

        container = Container()
        container.register(Repository)
        container.override(Repository, ClassProvider(FakeRepository))
        assert isinstance(container.resolve(Repository), FakeRepository)

    def test_override_after_instantiation_rejected(self):
        container = Container()
        container.register(Repository)
        container.resolve(Repository)
        with pytest.raises(DIError):
            container.override(Repository, object())

    def test_enhancer_instance_passthrough(self):
        guard = object()
        assert Container().resolve_enhancer(guard) is guard

    def test_enhancer_class_built_once_per_module(self):
        class Guard:
            def __init__(self, repo: Repository):
                self.repo = repo

        container = Container()
        container.register(Repository)
        first = container.resolve_enhancer(Guard)
        assert container.resolve_enhancer(Guard) is first
        assert first.repo is container.resolve(Repository)


# ============================================================================
# Lifecycle
# ============================================================================

class TestLifecycle:

    @pytest.mark.asyncio
    async def test_hooks_run_in_order(self):
        calls = []

        class First:
            def on_startup(self):
                calls.append("start:first")

            def on_shutdown(self):
                calls.append("stop:first")

        class Second:
            def __init__(self, first: First):
                self.first = first

            async def on_startup(self):
                calls.append("start:second")

            async def on_shutdown(self):
                calls.append("stop:second")

        container = Container()
        container.register(First)
        container.register(Second)
        container.instantiate_all()

        await container.startup()
        await container.shutdown()
        assert calls == ["start:first", "start:second", "stop:second", "stop:first"]

    @pytest.mark.asyncio
    async def test_failing_shutdown_hook_does_not_stop_others(self):
        calls = []

        class Fragile:
            def on_shutdown(self):
                raise RuntimeError("boom")

        class Sturdy:
            def on_shutdown(self):
                calls.append("sturdy")

        container = Container()
        container.register(Sturdy)
        container.register(Fragile)
        container.instantiate_all()

        await container.shutdown()
        assert calls == ["sturdy"]
