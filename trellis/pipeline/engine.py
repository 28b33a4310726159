"""
Pipeline engine - runs one matched request through its stages.

    guards -> pipes -> handler -> interceptors -> (on error) filters

Every stage may be sync or async. Between stages the engine checks whether
the transport reported a disconnect; once it has, nothing advances and the
outcome is an aborted (499) response that is never sent.
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from ..faults import ForbiddenFault, DefaultExceptionFilter, FilterBinding, select_filter, status_for
from ..response import Response, dumps
from .context import ExecutionContext
from .params import extract_value

logger = logging.getLogger("trellis.pipeline")


# Status recorded for requests whose client went away
CLIENT_CLOSED_REQUEST = 499


class RequestCancelled(Exception):
    """Raised between stages once the client disconnected."""


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def _component_name(component: Any) -> str:
    return type(component).__name__ if not inspect.isfunction(component) else component.__name__


class CallHandler:
    """
    Handle to the rest of the interceptor chain.

    ``await call_next.handle()`` runs the remaining interceptors and the
    handler and returns their result.
    """

    __slots__ = ("_next",)

    def __init__(self, next_fn: Callable[[], Awaitable[Any]]):
        self._next = next_fn

    async def handle(self) -> Any:
        return await self._next()


def aborted_response() -> Response:
    response = Response.empty(CLIENT_CLOSED_REQUEST)
    response.aborted = True
    return response


class PipelineEngine:
    """
    Executes matched requests.

    Global components run before controller-level ones, which run before
    method-level ones (and, for pipes, before parameter-level ones).

    Args:
        guards: Global guard instances
        pipes: Global pipe instances
        interceptors: Global interceptor instances
        filters: Global filter bindings
        default_filter: Final fallback for errors no filter handles
    """

    def __init__(
        self,
        *,
        guards: Sequence[Any] = (),
        pipes: Sequence[Any] = (),
        interceptors: Sequence[Any] = (),
        filters: Sequence[FilterBinding] = (),
        default_filter: Optional[DefaultExceptionFilter] = None,
    ):
        self.guards = list(guards)
        self.pipes = list(pipes)
        self.interceptors = list(interceptors)
        self.filters = list(filters)
        self.default_filter = default_filter or DefaultExceptionFilter()

    # ========================================================================
    # Entry point
    # ========================================================================

    async def execute(self, context: ExecutionContext) -> Response:
        """Run the pipeline; always returns a response (possibly aborted)."""
        descriptor = context.descriptor
        try:
            self._checkpoint(context)
            await self._run_guards(context, self.guards + descriptor.guards)

            self._checkpoint(context)
            arguments = await self._run_pipes(context)

            self._checkpoint(context)
            result = await self._run_interceptors(
                context,
                self.interceptors + descriptor.interceptors,
                lambda: self._invoke_handler(context, arguments),
            )

            self._checkpoint(context)
            return self._render(result, context)

        except RequestCancelled:
            return self._abort(context)
        except Exception as exc:
            if context.cancelled:
                return self._abort(context)
            return await self.handle_error(exc, context)

    # ========================================================================
    # Stages
    # ========================================================================

    def _checkpoint(self, context: ExecutionContext) -> None:
        if context.cancelled:
            raise RequestCancelled()

    def _abort(self, context: ExecutionContext) -> Response:
        logger.debug(f"{context.request.method} {context.request.path}: client disconnected")
        return aborted_response()

    async def _run_guards(self, context: ExecutionContext, guards: List[Any]) -> None:
        """First denial short-circuits; a ``False`` becomes a 403."""
        for guard in guards:
            if hasattr(guard, "can_activate"):
                allowed = await _maybe_await(guard.can_activate(context))
            else:
                allowed = await _maybe_await(guard(context))
            if not allowed:
                logger.debug(
                    f"Guard {_component_name(guard)} denied "
                    f"{context.request.method} {context.request.path}"
                )
                raise ForbiddenFault()
            self._checkpoint(context)

    async def _run_pipes(self, context: ExecutionContext) -> Dict[str, Any]:
        descriptor = context.descriptor
        shared = self.pipes + descriptor.pipes
        arguments: Dict[str, Any] = {}

        for spec in descriptor.params:
            value = extract_value(spec, context)
            if spec.transformable:
                metadata = spec.metadata
                for pipe in shared + descriptor.param_pipes.get(spec.name, []):
                    if hasattr(pipe, "transform"):
                        value = await _maybe_await(pipe.transform(value, metadata))
                    else:
                        value = await _maybe_await(pipe(value, metadata))
            arguments[spec.name] = value

        return arguments

    async def _invoke_handler(self, context: ExecutionContext, arguments: Dict[str, Any]) -> Any:
        self._checkpoint(context)
        return await _maybe_await(context.descriptor.handler(**arguments))

    async def _run_interceptors(
        self,
        context: ExecutionContext,
        interceptors: List[Any],
        invoke: Callable[[], Awaitable[Any]],
    ) -> Any:
        """First interceptor is outermost; the handler is innermost."""

        async def run(index: int) -> Any:
            if index == len(interceptors):
                return await invoke()
            interceptor = interceptors[index]
            call_next = CallHandler(lambda: run(index + 1))
            if hasattr(interceptor, "intercept"):
                return await _maybe_await(interceptor.intercept(context, call_next))
            return await _maybe_await(interceptor(context, call_next))

        return await run(0)

    # ========================================================================
    # Rendering
    # ========================================================================

    def _render(self, result: Any, context: ExecutionContext) -> Response:
        """
        Turn a handler result into a response.

        A ``Response`` passes through; None gives an empty body; bytes are
        sent raw; anything else is JSON. Plain results use the status and
        headers set on the context's response handle.
        """
        if isinstance(result, Response):
            return result

        response = context.response
        if result is None:
            response.content = b""
        elif isinstance(result, (bytes, bytearray)):
            response.content = bytes(result)
        else:
            response.content = dumps(result)
            response.set_header("content-type", "application/json")
        return response

    async def handle_error(self, exc: BaseException, context: ExecutionContext) -> Response:
        """
        Select and run the exception filter for ``exc``.

        A filter that raises is logged and replaced by the default filter.
        """
        bindings = list(self.filters)
        if context.descriptor is not None:
            bindings.extend(context.descriptor.filters)

        binding = select_filter(bindings, exc)
        if binding is not None:
            try:
                outcome = await _maybe_await(binding.filter.catch(exc, context))
                return self._render_filtered(outcome, exc, context)
            except Exception:
                logger.error(
                    f"Exception filter {_component_name(binding.filter)} failed while "
                    f"handling {type(exc).__name__}",
                    exc_info=True,
                )

        return self.default_filter.catch(exc, context)

    def _render_filtered(self, outcome: Any, exc: BaseException, context: ExecutionContext) -> Response:
        if isinstance(outcome, Response):
            return outcome
        status = status_for(exc)
        if outcome is None:
            return Response.empty(status)
        return Response.json(outcome, status=status)
