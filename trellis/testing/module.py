"""
Trellis Testing - testing modules with provider overrides.

Overrides are applied to the container before any singleton is built, so
every consumer of an overridden token receives the replacement.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Optional, Sequence

from trellis.application import Application, TrellisFactory
from trellis.config import AppConfig
from trellis.di.providers import ClassProvider, FactoryProvider, Scope, ValueProvider


class _OverrideBy:
    """Second half of ``builder.override_provider(token).use_value(...)``."""

    __slots__ = ("_builder", "_token")

    def __init__(self, builder: "TestingModuleBuilder", token: Any):
        self._builder = builder
        self._token = token

    def use_value(self, value: Any) -> "TestingModuleBuilder":
        return self._builder._add(self._token, ValueProvider(value, self._token))

    def use_class(self, cls: type, scope: str = Scope.SINGLETON) -> "TestingModuleBuilder":
        return self._builder._add(self._token, ClassProvider(cls, token=self._token, scope=scope))

    def use_factory(
        self,
        factory: Callable[..., Any],
        inject: Optional[Sequence[Any]] = None,
        scope: str = Scope.SINGLETON,
    ) -> "TestingModuleBuilder":
        return self._builder._add(
            self._token,
            FactoryProvider(factory, token=self._token, inject=inject, scope=scope),
        )


class TestingModuleBuilder:
    """
    Fluent builder for applications under test.

    Example:
        app = (
            TestingModuleBuilder(AppModule)
            .override_provider(UsersService).use_value(fake_users)
            .compile()
        )
    """

    __test__ = False

    def __init__(self, root_module: Any, config: Optional[AppConfig] = None):
        self._root = root_module
        self._config = config
        self._overrides: Dict[Any, Any] = {}

    def _add(self, token: Any, provider: Any) -> "TestingModuleBuilder":
        self._overrides[token] = provider
        return self

    def override_provider(self, token: Any) -> _OverrideBy:
        return _OverrideBy(self, token)

    def compile(self) -> Application:
        return TrellisFactory.create(self._root, self._config, overrides=self._overrides)


def create_testing_module(
    root_module: Any,
    *,
    overrides: Optional[Dict[Any, Any]] = None,
    config: Optional[AppConfig] = None,
) -> Application:
    """
    Bootstrap ``root_module`` with ``overrides`` (token -> provider or value).

    A plain value replaces the token as is; pass ``ClassProvider(Fake)`` to
    have the container build a replacement class.
    """
    return TrellisFactory.create(root_module, config, overrides=overrides or {})
