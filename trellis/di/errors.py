"""
DI-specific error types with rich diagnostics.
"""

from typing import List, Optional

from ..modules.errors import BootstrapError, ProviderVisibilityError


class DIError(BootstrapError):
    """Base exception for DI errors."""


class ProviderNotFoundError(DIError):
    """Provider not found for requested token."""

    def __init__(
        self,
        token: str,
        requested_by: Optional[str] = None,
        module: Optional[str] = None,
        candidates: Optional[List[str]] = None,
    ):
        self.token = token
        self.requested_by = requested_by
        self.module = module
        self.candidates = candidates or []

        msg = f"No provider found for token={token}"
        if requested_by:
            msg += f", requested by {requested_by}"
        if module:
            msg += f" in module {module}"

        suggestion = f"Register a provider for {token}"
        if module:
            suggestion += f" in module {module} or in a module it imports (and export it)"
        if self.candidates:
            suggestion += f". Similar tokens: {', '.join(self.candidates)}"

        super().__init__(msg, suggestion=suggestion, details={"token": token})


class DependencyCycleError(DIError):
    """Circular dependency detected."""

    def __init__(self, cycle: List[str]):
        self.cycle = cycle
        super().__init__(
            f"Detected dependency cycle: {' -> '.join(cycle)}",
            suggestion=(
                "Extract the shared behaviour into a third provider, or pass "
                "one side a factory instead of the instance."
            ),
            details={"cycle_length": len(cycle) - 1},
        )


class ScopeError(DIError):
    """Invalid provider declaration (bad scope, async factory, ...)."""


__all__ = [
    "DIError",
    "ProviderNotFoundError",
    "ProviderVisibilityError",
    "DependencyCycleError",
    "ScopeError",
]
