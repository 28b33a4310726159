"""
Trellis - module-based composition engine for async Python services

Complete integration of:
- Metadata: Decorators stage facts, bootstrap harvests them per application
- Modules: Import graph with export-based visibility
- DI: Module-aware singleton/transient injection with cycle detection
- Routing: Controller-prefixed routes with literal-over-parameter matching
- Pipeline: Guards, pipes, interceptors and exception filters per request
- Faults: Structured errors rendered into a uniform JSON envelope
"""

__version__ = "0.1.0"

# ============================================================================
# Core Framework
# ============================================================================

from .config import AppConfig, ServerConfig, ConfigLoader, ConfigError, load_config
from .request import Request
from .response import Response
from .metadata import MetadataRegistry, MetadataKind, RegistryFrozenError
from .application import Application, TrellisFactory

# ============================================================================
# Declarations
# ============================================================================

from .decorators import (
    injectable,
    controller,
    module,
    route,
    GET,
    POST,
    PUT,
    PATCH,
    DELETE,
    HEAD,
    OPTIONS,
    use_guards,
    use_pipes,
    use_interceptors,
    use_filters,
    catch,
)
from .modules import (
    ModuleDeclaration,
    ModuleGraph,
    BootstrapError,
    ModuleCycleError,
    InvalidModuleError,
    InvalidExportError,
    DuplicateProviderError,
)

# ============================================================================
# Dependency Injection
# ============================================================================

from .di import (
    Container,
    Scope,
    Inject,
    inject,
    ClassProvider,
    FactoryProvider,
    ValueProvider,
    AliasProvider,
    DIError,
    ProviderNotFoundError,
    ProviderVisibilityError,
    DependencyCycleError,
    ScopeError,
)

# ============================================================================
# Pipeline
# ============================================================================

from .pipeline import (
    ExecutionContext,
    CallHandler,
    ArgumentMetadata,
    Param,
    Query,
    Body,
    Header,
    Req,
    Res,
    PipeTransform,
    ValidationPipe,
    ParseIntPipe,
    ParseFloatPipe,
    ParseBoolPipe,
    ParseArrayPipe,
    DefaultValuePipe,
)
from .router import RouteTable, HandlerDescriptor, RouteConflictError, RouteDeclarationError

# ============================================================================
# Faults
# ============================================================================

from .faults import (
    Fault,
    FaultDomain,
    Severity,
    HttpFault,
    BadRequestFault,
    ValidationFault,
    UnauthorizedFault,
    ForbiddenFault,
    NotFoundFault,
    MethodNotAllowedFault,
    ConflictFault,
    UnprocessableEntityFault,
    TooManyRequestsFault,
    InternalServerFault,
    ServiceUnavailableFault,
    ExceptionFilter,
    DefaultExceptionFilter,
)

__all__ = [
    "__version__",
    # Core
    "AppConfig", "ServerConfig", "ConfigLoader", "ConfigError", "load_config",
    "Request", "Response",
    "MetadataRegistry", "MetadataKind", "RegistryFrozenError",
    "Application", "TrellisFactory",
    # Declarations
    "injectable", "controller", "module", "route",
    "GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS",
    "use_guards", "use_pipes", "use_interceptors", "use_filters", "catch",
    "ModuleDeclaration", "ModuleGraph",
    "BootstrapError", "ModuleCycleError", "InvalidModuleError",
    "InvalidExportError", "DuplicateProviderError",
    # DI
    "Container", "Scope", "Inject", "inject",
    "ClassProvider", "FactoryProvider", "ValueProvider", "AliasProvider",
    "DIError", "ProviderNotFoundError", "ProviderVisibilityError",
    "DependencyCycleError", "ScopeError",
    # Pipeline
    "ExecutionContext", "CallHandler", "ArgumentMetadata",
    "Param", "Query", "Body", "Header", "Req", "Res",
    "PipeTransform", "ValidationPipe", "ParseIntPipe", "ParseFloatPipe",
    "ParseBoolPipe", "ParseArrayPipe", "DefaultValuePipe",
    "RouteTable", "HandlerDescriptor", "RouteConflictError", "RouteDeclarationError",
    # Faults
    "Fault", "FaultDomain", "Severity", "HttpFault",
    "BadRequestFault", "ValidationFault", "UnauthorizedFault", "ForbiddenFault",
    "NotFoundFault", "MethodNotAllowedFault", "ConflictFault",
    "UnprocessableEntityFault", "TooManyRequestsFault",
    "InternalServerFault", "ServiceUnavailableFault",
    "ExceptionFilter", "DefaultExceptionFilter",
]
