"""
Application bootstrap and request dispatch.

``TrellisFactory.create`` runs the whole bootstrap synchronously and fails
fast:

1. Harvest declarations into a fresh ``MetadataRegistry``
2. Resolve the module graph (cycles, exports, duplicate providers)
3. Register providers and instantiate every singleton
4. Compile controllers into the route table

The returned ``Application`` accepts global components until it is
initialized (first dispatch, ``startup()`` or ``listen()``); initialization
freezes the registry.
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from .config import AppConfig, ConfigLoader
from .di.core import Container
from .faults import DefaultExceptionFilter, GLOBAL_LEVEL, NotFoundFault, error_body
from .metadata import MetadataRegistry
from .modules.errors import BootstrapError
from .modules.graph import ModuleGraph
from .pipeline.context import ExecutionContext
from .pipeline.engine import PipelineEngine
from .request import Request
from .response import Response
from .router import RouteTable, bind_filter_list, build_route_table

logger = logging.getLogger("trellis.bootstrap")


class Application:
    """
    A bootstrapped application.

    Example:
        app = TrellisFactory.create(AppModule)
        app.use_global_guards(ApiKeyGuard)
        response = await app.dispatch("GET", "/ping")
    """

    def __init__(
        self,
        *,
        root_module: Any,
        registry: MetadataRegistry,
        graph: ModuleGraph,
        container: Container,
        routes: RouteTable,
        config: AppConfig,
    ):
        self.root_module = root_module
        self.registry = registry
        self.graph = graph
        self.container = container
        self.config = config
        self._routes = routes

        self._global_guards: List[Any] = []
        self._global_pipes: List[Any] = []
        self._global_interceptors: List[Any] = []
        self._global_filters: List[Any] = []
        self._shutdown_hooks: List[Callable[[], Any]] = []

        self._engine: Optional[PipelineEngine] = None
        self._asgi: Optional[Any] = None
        self._started = False
        self._stopped = False

    # ========================================================================
    # Global components
    # ========================================================================

    def _add_globals(self, target: List[Any], items: tuple) -> "Application":
        if self._engine is not None:
            raise RuntimeError(
                "Global pipeline components must be registered before the "
                "application handles its first request"
            )
        target.extend(items)
        return self

    def use_global_guards(self, *guards: Any) -> "Application":
        return self._add_globals(self._global_guards, guards)

    def use_global_pipes(self, *pipes: Any) -> "Application":
        return self._add_globals(self._global_pipes, pipes)

    def use_global_interceptors(self, *interceptors: Any) -> "Application":
        return self._add_globals(self._global_interceptors, interceptors)

    def use_global_filters(self, *filters: Any) -> "Application":
        return self._add_globals(self._global_filters, filters)

    # ========================================================================
    # Initialization
    # ========================================================================

    @property
    def initialized(self) -> bool:
        return self._engine is not None

    def init(self) -> "Application":
        """
        Resolve global components and freeze the registry (idempotent).

        Global components referenced by class are resolved in the root
        module.
        """
        if self._engine is not None:
            return self

        root = self.graph.root

        def resolve_all(items: List[Any]) -> List[Any]:
            return [self.container.resolve_enhancer(item, root) for item in items]

        filters = bind_filter_list(self.registry, resolve_all(self._global_filters), GLOBAL_LEVEL)

        self.registry.freeze()
        self._engine = PipelineEngine(
            guards=resolve_all(self._global_guards),
            pipes=resolve_all(self._global_pipes),
            interceptors=resolve_all(self._global_interceptors),
            filters=filters,
            default_filter=DefaultExceptionFilter(expose_internals=self.config.expose_internals),
        )
        logger.info("Trellis application successfully initialized")
        return self

    # ========================================================================
    # Introspection
    # ========================================================================

    def get(self, token: Any) -> Any:
        """Resolve a provider from the container."""
        return self.container.get(token)

    @property
    def route_table(self) -> RouteTable:
        return self._routes

    def routes(self) -> List[Dict[str, str]]:
        """Registered routes, in registration order."""
        return [
            {
                "method": descriptor.http_method,
                "path": descriptor.full_path,
                "handler": descriptor.name,
                "module": descriptor.module.name if descriptor.module else "",
            }
            for descriptor in self._routes.routes()
        ]

    # ========================================================================
    # Dispatch
    # ========================================================================

    async def dispatch(
        self,
        method: str,
        path: str,
        headers: Optional[Union[Mapping[str, str], List[tuple]]] = None,
        body: Union[bytes, str] = b"",
        query: Optional[Mapping[str, Any]] = None,
    ) -> Response:
        """
        Run one request through routing and the pipeline.

        Never raises for request-level failures: errors are turned into
        responses by the exception filters.
        """
        request = Request(method, path, headers=headers, body=body, query=query)
        return await self.handle(request)

    async def handle(self, request: Request) -> Response:
        """Dispatch an already-parsed request."""
        engine = self.init()._engine
        started = time.perf_counter()

        header_name = self.config.request_id_header
        request_id = request.header(header_name) or uuid.uuid4().hex
        request.state["request_id"] = request_id

        match = self._routes.match(request.method, request.path)
        if match is None:
            # Unmatched requests never reach guards, pipes or filters
            context = ExecutionContext(
                request=request,
                response=Response(status=404),
                state=request.state,
            )
            fault = NotFoundFault(f"Cannot {request.method} {request.path}")
            response = Response.json(error_body(fault, context), status=404)
        else:
            context = ExecutionContext(
                request=request,
                response=Response(status=match.descriptor.status_code),
                descriptor=match.descriptor,
                params=match.params,
                state=request.state,
            )
            response = await engine.execute(context)

        if response.aborted:
            return response

        if header_name:
            response.set_header(header_name, request_id)
        if request.method == "HEAD":
            response.content = b""

        logger.debug(
            f"{request.method} {request.path} {response.status} "
            f"({(time.perf_counter() - started) * 1000:.1f}ms)"
        )
        return response

    # ========================================================================
    # ASGI & server
    # ========================================================================

    @property
    def asgi_app(self) -> Any:
        """ASGI callable serving this application."""
        if self._asgi is None:
            from .asgi import ASGIAdapter

            self._asgi = ASGIAdapter(self)
        return self._asgi

    async def __call__(self, scope: dict, receive: Callable, send: Callable) -> None:
        await self.asgi_app(scope, receive, send)

    def listen(self, port: Optional[int] = None, host: Optional[str] = None) -> None:
        """
        Serve over HTTP with uvicorn (blocking).

        Startup and shutdown hooks run through the ASGI lifespan protocol.
        """
        import uvicorn

        self.init()
        host = host or self.config.server.host
        port = port if port is not None else self.config.server.port
        log_level = self.config.log_level.lower()

        logging.basicConfig(
            level=getattr(logging, self.config.log_level.upper(), logging.INFO),
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )
        logger.info(f"Starting uvicorn server on {host}:{port}")

        uvicorn.run(self.asgi_app, host=host, port=port, log_level=log_level)

    # ========================================================================
    # Lifecycle
    # ========================================================================

    def on_shutdown(self, hook: Callable[[], Any]) -> Callable[[], Any]:
        """Register a shutdown hook (sync or async). Usable as decorator."""
        self._shutdown_hooks.append(hook)
        return hook

    async def startup(self) -> None:
        """Initialize and run ``on_startup`` hooks of every instance."""
        if self._started:
            return
        self.init()
        await self.container.startup()
        self._started = True
        logger.info("Application started")

    async def shutdown(self) -> None:
        """
        Run registered shutdown hooks (last registered first), then the
        ``on_shutdown`` hooks of every instance in reverse instantiation
        order.
        """
        if self._stopped:
            return
        self._stopped = True
        for hook in reversed(self._shutdown_hooks):
            try:
                result = hook()
                if hasattr(result, "__await__"):
                    await result
            except Exception:
                logger.error(f"Shutdown hook {getattr(hook, '__name__', hook)} failed", exc_info=True)
        await self.container.shutdown()
        logger.info("Application shut down")

    def __repr__(self) -> str:
        return f"<Application root={self.graph.root.name if self.graph.root else None} routes={len(self._routes)}>"


class TrellisFactory:
    """Entry point for building applications."""

    @staticmethod
    def create(
        root_module: Any,
        config: Optional[Union[AppConfig, Dict[str, Any]]] = None,
        *,
        overrides: Optional[Mapping[Any, Any]] = None,
    ) -> Application:
        """
        Bootstrap an application from its root module.

        Args:
            root_module: Decorated module class or ``ModuleDeclaration``
            config: ``AppConfig``, or a dict of settings merged over defaults
            overrides: Token -> provider or value replacements (testing)

        Raises:
            BootstrapError: Any wiring problem (fatal)
        """
        if config is None:
            config = AppConfig()
        elif isinstance(config, dict):
            config = ConfigLoader.load(overrides=config, use_environ=False).build(AppConfig)

        logger.info("Starting Trellis application...")
        registry = MetadataRegistry()
        try:
            graph = ModuleGraph.build(root_module, registry)
            container = Container.from_graph(graph)
            for token, replacement in (overrides or {}).items():
                container.override(token, replacement)
            container.instantiate_all()
            for node in graph.modules:
                logger.info(f"{node.name} dependencies initialized")
            routes = build_route_table(graph, container, global_prefix=config.global_prefix)
        except BootstrapError as exc:
            logger.error(exc.format_error())
            raise

        return Application(
            root_module=root_module,
            registry=registry,
            graph=graph,
            container=container,
            routes=routes,
            config=config,
        )
