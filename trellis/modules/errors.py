"""
Bootstrap error types with rich diagnostics.

Every error raised while assembling the application (module graph, DI,
route table) derives from ``BootstrapError``. They are fatal: the
application never starts serving.
"""

from typing import Any, Dict, List, Optional


class BootstrapError(Exception):
    """Base error for all bootstrap failures."""

    def __init__(
        self,
        message: str,
        *,
        suggestion: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.suggestion = suggestion
        self.details = details or {}

    def format_error(self) -> str:
        """Format error with rich diagnostics."""
        lines = [f"{self.__class__.__name__}: {self.message}"]

        if self.details:
            lines.append("\n   Details:")
            for key, value in self.details.items():
                lines.append(f"   - {key}: {value}")

        if self.suggestion:
            lines.append(f"\n   Suggestion: {self.suggestion}")

        return "\n".join(lines)

    def __str__(self) -> str:
        return self.format_error()


class ModuleCycleError(BootstrapError):
    """
    Modules import each other.

    Example:
        UsersModule imports AuthModule
        AuthModule imports UsersModule  <- CYCLE
    """

    def __init__(self, cycle: List[str]):
        self.cycle = cycle

        # "module A imports module B which imports module A"
        message = f"module {cycle[0]}"
        for i, name in enumerate(cycle[1:]):
            message += (" imports" if i == 0 else " which imports") + f" module {name}"

        super().__init__(
            message,
            suggestion=(
                "Move the shared providers into a separate module imported "
                "by both sides."
            ),
            details={"cycle": " -> ".join(cycle)},
        )


class InvalidModuleError(BootstrapError):
    """An import entry is not a module."""

    def __init__(self, ref: Any, imported_by: Optional[str] = None):
        self.ref = ref
        name = getattr(ref, "__qualname__", repr(ref))
        message = f"{name} is not a module"
        if imported_by:
            message += f" (imported by module {imported_by})"
        super().__init__(
            message,
            suggestion="Decorate the class with @module(...) or pass a ModuleDeclaration.",
        )


class InvalidExportError(BootstrapError):
    """A module exports something it neither provides nor imports."""

    def __init__(self, module: str, export: str):
        self.module = module
        self.export = export
        super().__init__(
            f"Module {module} exports {export}, which is neither one of its "
            f"providers nor an imported module",
            suggestion=f"Add {export} to the providers of {module} or export the module providing it.",
        )


class DuplicateProviderError(BootstrapError):
    """Two different definitions were registered under one token."""

    def __init__(self, token: str, modules: List[str]):
        self.token = token
        self.modules = modules
        super().__init__(
            f"Token {token} has conflicting provider definitions in modules "
            f"{', '.join(modules)}",
            suggestion="Declare the provider once and export it from its module.",
            details={"token": token, "modules": modules},
        )


class ProviderVisibilityError(BootstrapError):
    """A token exists but is not visible from the requesting module."""

    def __init__(
        self,
        token: str,
        requested_by: Optional[str],
        module: str,
        owners: List[str],
    ):
        self.token = token
        self.requested_by = requested_by
        self.module = module
        self.owners = owners

        who = f"{requested_by} in module {module}" if requested_by else f"module {module}"
        super().__init__(
            f"{who} requested {token}, which is not visible from module {module}",
            suggestion=(
                f"Export {token} from {', '.join(owners)} and import that "
                f"module into {module}."
            ),
            details={"token": token, "provided_by": owners},
        )
