"""
Trellis modules - declaration, graph resolution and visibility.
"""

from .errors import (
    BootstrapError,
    ModuleCycleError,
    InvalidModuleError,
    InvalidExportError,
    DuplicateProviderError,
    ProviderVisibilityError,
)
from .declaration import ModuleDeclaration
from .graph import ModuleGraph, ModuleNode, provider_token

__all__ = [
    "BootstrapError",
    "ModuleCycleError",
    "InvalidModuleError",
    "InvalidExportError",
    "DuplicateProviderError",
    "ProviderVisibilityError",
    "ModuleDeclaration",
    "ModuleGraph",
    "ModuleNode",
    "provider_token",
]
