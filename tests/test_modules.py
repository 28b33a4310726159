"""
Module graph: import resolution, exports, visibility and cycles.
"""

import pytest

from trellis.decorators import injectable, module
from trellis.di.providers import ClassProvider, ValueProvider
from trellis.modules import (
    DuplicateProviderError,
    InvalidExportError,
    InvalidModuleError,
    ModuleCycleError,
    ModuleDeclaration,
    ModuleGraph,
)


@injectable
class Database:
    pass


@injectable
class UsersService:
    def __init__(self, db: Database):
        self.db = db


@injectable
class AuditLog:
    pass


@module(providers=[Database, AuditLog], exports=[Database])
class DatabaseModule:
    pass


@module(imports=[DatabaseModule], providers=[UsersService], exports=[UsersService])
class UsersModule:
    pass


@module(imports=[UsersModule, DatabaseModule])
class AppModule:
    pass


# ============================================================================
# Resolution
# ============================================================================

class TestGraphResolution:

    def test_dependency_first_order(self):
        graph = ModuleGraph.build(AppModule)
        assert [node.name for node in graph.modules] == ["DatabaseModule", "UsersModule", "AppModule"]

    def test_root_node(self):
        graph = ModuleGraph.build(AppModule)
        assert graph.root.ref is AppModule
        assert len(graph) == 3
        assert DatabaseModule in graph

    def test_shared_import_resolved_once(self):
        graph = ModuleGraph.build(AppModule)
        users = graph.node(UsersModule)
        app = graph.node(AppModule)
        assert users.imports[0] is app.imports[1]

    def test_idempotent_import_registers_providers_once(self):
        graph = ModuleGraph.build(AppModule)
        providers = [entry for entry, _ in graph.providers()]
        assert providers.count(Database) == 1

    def test_declaration_without_class(self):
        config = ModuleDeclaration(
            name="ConfigModule",
            providers=[ValueProvider({"debug": True}, "CONFIG")],
            exports=["CONFIG"],
        )
        root = ModuleDeclaration(name="Root", imports=[config])
        graph = ModuleGraph.build(root)
        assert graph.can_see(root, "CONFIG")
        assert graph.owner_of("CONFIG").name == "ConfigModule"

    def test_non_module_import_rejected(self):
        @module(imports=[Database])
        class Broken:
            pass

        with pytest.raises(InvalidModuleError) as exc_info:
            ModuleGraph.build(Broken)
        assert "imported by module Broken" in str(exc_info.value)


# ============================================================================
# Visibility
# ============================================================================

class TestVisibility:

    def test_own_providers_visible(self):
        graph = ModuleGraph.build(AppModule)
        assert graph.can_see(DatabaseModule, AuditLog)

    def test_imported_exports_visible(self):
        graph = ModuleGraph.build(AppModule)
        assert graph.can_see(UsersModule, Database)
        assert graph.can_see(AppModule, UsersService)

    def test_unexported_provider_hidden(self):
        graph = ModuleGraph.build(AppModule)
        assert not graph.can_see(UsersModule, AuditLog)
        assert not graph.can_see(AppModule, AuditLog)

    def test_visibility_is_not_transitive(self):
        @module(imports=[UsersModule])
        class Outer:
            pass

        graph = ModuleGraph.build(Outer)
        assert graph.can_see(Outer, UsersService)
        assert not graph.can_see(Outer, Database)

    def test_reexport_of_imported_module(self):
        @module(imports=[DatabaseModule], exports=[DatabaseModule])
        class CoreModule:
            pass

        @module(imports=[CoreModule])
        class Feature:
            pass

        graph = ModuleGraph.build(Feature)
        assert graph.can_see(Feature, Database)
        assert not graph.can_see(Feature, AuditLog)


# ============================================================================
# Errors
# ============================================================================

class TestGraphErrors:

    def test_module_cycle(self):
        a = ModuleDeclaration(name="A")
        b = ModuleDeclaration(name="B", imports=[a])
        a.imports.append(b)

        with pytest.raises(ModuleCycleError) as exc_info:
            ModuleGraph.build(a)
        assert exc_info.value.cycle == ["A", "B", "A"]
        assert "module A imports module B which imports module A" in str(exc_info.value)

    def test_self_import_is_a_cycle(self):
        a = ModuleDeclaration(name="Loop")
        a.imports.append(a)
        with pytest.raises(ModuleCycleError):
            ModuleGraph.build(a)

    def test_export_of_foreign_token(self):
        @module(imports=[DatabaseModule], exports=[Database])
        class Leaky:
            pass

        with pytest.raises(InvalidExportError) as exc_info:
            ModuleGraph.build(Leaky)
        assert exc_info.value.module == "Leaky"

    def test_export_of_module_not_imported(self):
        @module(exports=[DatabaseModule])
        class Lost:
            pass

        with pytest.raises(InvalidExportError):
            ModuleGraph.build(Lost)

    def test_conflicting_definitions_for_one_token(self):
        first = ModuleDeclaration(name="First", providers=[ValueProvider(1, "PORT")])
        second = ModuleDeclaration(name="Second", providers=[ValueProvider(2, "PORT")])
        root = ModuleDeclaration(name="Root", imports=[first, second])

        with pytest.raises(DuplicateProviderError) as exc_info:
            ModuleGraph.build(root)
        assert exc_info.value.modules == ["First", "Second"]

    def test_same_class_in_two_modules_is_not_a_conflict(self):
        first = ModuleDeclaration(name="First", providers=[AuditLog])
        second = ModuleDeclaration(name="Second", providers=[ClassProvider(AuditLog)])
        root = ModuleDeclaration(name="Root", imports=[first, second])

        graph = ModuleGraph.build(root)
        assert [n.name for n in graph.owners_of(AuditLog)] == ["First", "Second"]
