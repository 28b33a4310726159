"""
Module graph resolver.

Walks the import tree from the root module (depth-first, declaration
order), validates exports, and computes which provider tokens each module
may see:

    visible(M) = providers(M) ∪ exports(I) for each direct import I

An export entry naming an imported module forwards that module's exports.
Visibility is never transitive beyond that and never implicitly global.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Set, Tuple

from ..metadata import MetadataKind, MetadataRegistry
from .declaration import ModuleDeclaration
from .errors import (
    DuplicateProviderError,
    InvalidExportError,
    InvalidModuleError,
    ModuleCycleError,
)

logger = logging.getLogger("trellis.bootstrap")


def provider_token(entry: Any) -> Any:
    """Token of a provider entry (a class or a provider object)."""
    if isinstance(entry, type):
        return entry
    token = getattr(entry, "token", None)
    if token is None:
        raise TypeError(f"{entry!r} is neither a class nor a provider")
    return token


def _name(token: Any) -> str:
    if isinstance(token, str):
        return token
    return getattr(token, "__name__", None) or repr(token)


@dataclass(eq=False)
class ModuleNode:
    """
    A resolved module.

    Attributes:
        ref: What was imported (decorated class or declaration)
        declaration: The module declaration
        imports: Directly imported nodes, in declaration order
        providers: Provider entries in declaration order
        provider_tokens: Tokens declared by this module
        exported: Tokens this module makes visible to importers
        visible: Tokens this module may inject
    """

    ref: Any
    declaration: ModuleDeclaration
    imports: List["ModuleNode"] = field(default_factory=list)
    providers: List[Any] = field(default_factory=list)
    provider_tokens: Set[Any] = field(default_factory=set)
    exported: Set[Any] = field(default_factory=set)
    visible: Set[Any] = field(default_factory=set)

    @property
    def name(self) -> str:
        if self.declaration.name:
            return self.declaration.name
        return getattr(self.ref, "__name__", "AnonymousModule")

    @property
    def controllers(self) -> List[type]:
        return list(self.declaration.controllers)

    def __repr__(self) -> str:
        return f"<ModuleNode {self.name}>"


class ModuleGraph:
    """
    Resolved module tree.

    Example:
        graph = ModuleGraph.build(AppModule, registry)
        graph.can_see(graph.root, UsersService)
    """

    def __init__(self, registry: MetadataRegistry):
        self.registry = registry
        self.root: Optional[ModuleNode] = None
        self._nodes: Dict[Any, ModuleNode] = {}
        self._order: List[ModuleNode] = []
        self._owners: Dict[Any, List[ModuleNode]] = {}
        self._definitions: Dict[Any, Any] = {}

    @classmethod
    def build(cls, root: Any, registry: Optional[MetadataRegistry] = None) -> "ModuleGraph":
        """
        Resolve the module tree rooted at ``root``.

        Raises:
            ModuleCycleError: Modules import each other
            InvalidModuleError: An import is not a module
            InvalidExportError: A module exports a foreign token
            DuplicateProviderError: One token, two different definitions
        """
        graph = cls(registry if registry is not None else MetadataRegistry())
        graph.root = graph._visit(root, [], None)
        logger.debug(
            f"Resolved {len(graph._order)} module(s): "
            f"{', '.join(node.name for node in graph._order)}"
        )
        return graph

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def _declaration_of(self, ref: Any, imported_by: Optional[str]) -> ModuleDeclaration:
        if isinstance(ref, ModuleDeclaration):
            return ref
        if isinstance(ref, type):
            self.registry.harvest(ref)
            declaration = self.registry.lookup_one(MetadataKind.MODULE, ref)
            if isinstance(declaration, ModuleDeclaration):
                return declaration
        raise InvalidModuleError(ref, imported_by)

    def _visit(self, ref: Any, path: List[Any], imported_by: Optional[str]) -> ModuleNode:
        # Importing the same module twice is idempotent
        node = self._nodes.get(ref)
        if node is not None:
            return node

        declaration = self._declaration_of(ref, imported_by)

        if ref in path:
            start = path.index(ref)
            cycle = path[start:] + [ref]
            raise ModuleCycleError([self._display(r) for r in cycle])

        node = ModuleNode(ref=ref, declaration=declaration)
        path.append(ref)
        try:
            for imported in declaration.imports:
                node.imports.append(self._visit(imported, path, node.name))
        finally:
            path.pop()

        self._register_providers(node)
        self._resolve_exports(node)

        node.visible = set(node.provider_tokens)
        for imported in node.imports:
            node.visible |= imported.exported

        for controller in declaration.controllers:
            self.registry.harvest(controller)

        self._nodes[ref] = node
        self._order.append(node)
        return node

    def _display(self, ref: Any) -> str:
        node = self._nodes.get(ref)
        if node is not None:
            return node.name
        if isinstance(ref, ModuleDeclaration):
            return ref.name or "AnonymousModule"
        declaration = self.registry.lookup_one(MetadataKind.MODULE, ref)
        if isinstance(declaration, ModuleDeclaration) and declaration.name:
            return declaration.name
        return getattr(ref, "__name__", repr(ref))

    def _register_providers(self, node: ModuleNode) -> None:
        for entry in node.declaration.providers:
            token = provider_token(entry)
            if isinstance(entry, type):
                self.registry.harvest(entry)

            existing = self._definitions.get(token)
            if existing is not None and not _same_definition(existing, entry):
                owners = [owner.name for owner in self._owners.get(token, ())]
                if node.name not in owners:
                    owners.append(node.name)
                raise DuplicateProviderError(_name(token), owners)

            if token in node.provider_tokens:
                continue

            self._definitions.setdefault(token, entry)
            self._owners.setdefault(token, []).append(node)
            node.providers.append(entry)
            node.provider_tokens.add(token)

    def _resolve_exports(self, node: ModuleNode) -> None:
        imported = {child.ref: child for child in node.imports}
        for entry in node.declaration.exports:
            child = imported.get(entry)
            if child is not None:
                node.exported |= child.exported
                continue

            if isinstance(entry, ModuleDeclaration) or self._is_module_class(entry):
                raise InvalidExportError(node.name, self._display(entry))

            try:
                token = provider_token(entry) if not isinstance(entry, str) else entry
            except TypeError:
                raise InvalidExportError(node.name, repr(entry)) from None

            if token not in node.provider_tokens:
                raise InvalidExportError(node.name, _name(token))
            node.exported.add(token)

    def _is_module_class(self, entry: Any) -> bool:
        if not isinstance(entry, type):
            return False
        self.registry.harvest(entry)
        return self.registry.has(MetadataKind.MODULE, entry)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def modules(self) -> List[ModuleNode]:
        """Modules in dependency-first order (imports before importers)."""
        return list(self._order)

    def node(self, ref: Any) -> ModuleNode:
        if isinstance(ref, ModuleNode):
            return ref
        return self._nodes[ref]

    def owner_of(self, token: Any) -> Optional[ModuleNode]:
        """First module (in resolution order) declaring ``token``."""
        owners = self._owners.get(token)
        return owners[0] if owners else None

    def owners_of(self, token: Any) -> List[ModuleNode]:
        return list(self._owners.get(token, ()))

    def has_token(self, token: Any) -> bool:
        return token in self._owners

    def can_see(self, module: Any, token: Any) -> bool:
        return token in self.node(module).visible

    def visible_tokens(self, module: Any) -> Set[Any]:
        return set(self.node(module).visible)

    def providers(self) -> Iterator[Tuple[Any, ModuleNode]]:
        """Every (provider entry, owning module) once, dependency-first."""
        for node in self._order:
            for entry in node.providers:
                token = provider_token(entry)
                if self._owners[token][0] is node:
                    yield entry, node

    def controllers(self) -> List[Tuple[type, ModuleNode]]:
        """
        Controllers with their module, in deterministic order.

        Modules come dependency-first; a controller listed by more than one
        module belongs to the first.
        """
        seen: Set[type] = set()
        result = []
        for node in self._order:
            for controller in node.declaration.controllers:
                if controller in seen:
                    continue
                seen.add(controller)
                result.append((controller, node))
        return result

    def __len__(self) -> int:
        return len(self._order)

    def __contains__(self, ref: Any) -> bool:
        return ref in self._nodes


def _same_definition(a: Any, b: Any) -> bool:
    if a is b:
        return True
    if isinstance(a, type) or isinstance(b, type):
        # A bare class and ClassProvider(cls) for the same class are the same
        cls_a = a if isinstance(a, type) else getattr(a, "cls", None)
        cls_b = b if isinstance(b, type) else getattr(b, "cls", None)
        return cls_a is not None and cls_a is cls_b and provider_token(a) == provider_token(b)
    return a == b
