"""
Module declarations.
"""

from dataclasses import dataclass, field
from typing import Any, List, Optional


@dataclass(eq=False)
class ModuleDeclaration:
    """
    A module: a named bundle of providers and controllers plus its imports
    and exports.

    Usually produced by ``@module(...)`` on a class, but can be built
    directly, which is handy for modules configured at runtime:

        def database_module(url: str) -> ModuleDeclaration:
            return ModuleDeclaration(
                name="DatabaseModule",
                providers=[ValueProvider(url, "DATABASE_URL"), Database],
                exports=[Database],
            )

    Attributes:
        name: Display name used in diagnostics
        providers: Classes or provider objects
        controllers: Controller classes
        imports: Module classes or declarations
        exports: Own provider tokens, or imported modules to re-export
    """

    name: Optional[str] = None
    providers: List[Any] = field(default_factory=list)
    controllers: List[type] = field(default_factory=list)
    imports: List[Any] = field(default_factory=list)
    exports: List[Any] = field(default_factory=list)
