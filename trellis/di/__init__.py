"""
Trellis DI - module-aware dependency injection.

Features:
- Class, factory, value and alias providers
- Singleton (default) and transient scopes
- Cycle detection with the full resolution chain
- Visibility enforced through the module graph
- Lifecycle hooks (on_startup / on_shutdown)
- Overrides for tests
"""

from .errors import (
    DIError,
    ProviderNotFoundError,
    ProviderVisibilityError,
    DependencyCycleError,
    ScopeError,
)
from .decorators import Inject, inject
from .providers import (
    Scope,
    ProviderMeta,
    Dependency,
    ClassProvider,
    FactoryProvider,
    ValueProvider,
    AliasProvider,
    token_name,
)
from .core import Container, ResolveCtx

__all__ = [
    "DIError",
    "ProviderNotFoundError",
    "ProviderVisibilityError",
    "DependencyCycleError",
    "ScopeError",
    "Inject",
    "inject",
    "Scope",
    "ProviderMeta",
    "Dependency",
    "ClassProvider",
    "FactoryProvider",
    "ValueProvider",
    "AliasProvider",
    "token_name",
    "Container",
    "ResolveCtx",
]
