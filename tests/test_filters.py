"""
Exception filters: selection rules, default filter and error envelope.
"""

import logging
from typing import Annotated

import pytest

from trellis.faults import (
    CLASS_LEVEL,
    GLOBAL_LEVEL,
    METHOD_LEVEL,
    BadRequestFault,
    DefaultExceptionFilter,
    ExceptionFilter,
    Fault,
    FaultDomain,
    FilterBinding,
    InternalServerFault,
    NotFoundFault,
    ValidationFault,
    error_body,
    select_filter,
    status_for,
)
from trellis.pipeline import Param, PipelineEngine, build_param_plan
from trellis.response import Response
from trellis.router import HandlerDescriptor

from tests.conftest import make_context


class Named(ExceptionFilter):
    def __init__(self, name):
        self.name = name

    def catch(self, exception, context):
        return Response.json({"filter": self.name}, status=418)


def bind(name, types=(), level=GLOBAL_LEVEL, order=0):
    return FilterBinding(filter=Named(name), exception_types=tuple(types), level=level, order=order)


# ============================================================================
# Selection
# ============================================================================

class TestSelectFilter:

    def test_most_specific_type_wins(self):
        bindings = [
            bind("base", [BadRequestFault], level=METHOD_LEVEL),
            bind("exact", [ValidationFault], level=GLOBAL_LEVEL),
        ]
        chosen = select_filter(bindings, ValidationFault("bad"))
        assert chosen.filter.name == "exact"

    def test_nearest_binding_breaks_ties(self):
        bindings = [
            bind("global", [ValueError], level=GLOBAL_LEVEL),
            bind("method", [ValueError], level=METHOD_LEVEL),
            bind("class", [ValueError], level=CLASS_LEVEL),
        ]
        assert select_filter(bindings, ValueError()).filter.name == "method"

    def test_declaration_order_breaks_remaining_ties(self):
        bindings = [
            bind("first", [KeyError], level=CLASS_LEVEL, order=0),
            bind("second", [KeyError], level=CLASS_LEVEL, order=1),
        ]
        assert select_filter(bindings, KeyError()).filter.name == "first"

    def test_catch_all_only_when_no_typed_match(self):
        bindings = [
            bind("any", level=METHOD_LEVEL),
            bind("keys", [KeyError], level=GLOBAL_LEVEL),
        ]
        assert select_filter(bindings, KeyError()).filter.name == "keys"
        assert select_filter(bindings, ValueError()).filter.name == "any"

    def test_no_match(self):
        assert select_filter([bind("keys", [KeyError])], ValueError()) is None


# ============================================================================
# Error envelope
# ============================================================================

class TestErrorBody:

    def test_public_fault(self):
        context = make_context("GET", "/things/1")
        context.state["request_id"] = "req-1"
        body = error_body(NotFoundFault("Thing 1 not found"), context)
        assert body == {
            "error": {
                "status": 404,
                "code": "NOT_FOUND",
                "message": "Thing 1 not found",
                "path": "/things/1",
                "request_id": "req-1",
            }
        }

    def test_plain_exception_hides_message(self):
        body = error_body(RuntimeError("db password is hunter2"))["error"]
        assert body["status"] == 500
        assert body["message"] == "Internal server error"
        assert "hunter2" not in str(body)

    def test_non_public_fault_hides_message(self):
        body = error_body(InternalServerFault("disk full"))["error"]
        assert body["message"] == "Internal server error"
        assert body["code"] == "INTERNAL_ERROR"

    def test_internals_exposed_on_request(self):
        body = error_body(RuntimeError("boom"), expose_internals=True)["error"]
        assert body["exception"] == "RuntimeError"
        assert body["detail"] == "boom"
        assert isinstance(body["stack"], list)

    def test_status_for_domain_fault(self):
        fault = Fault("CFG", "bad config", domain=FaultDomain.CONFIG)
        assert status_for(fault) == 500
        assert status_for(Fault("DENIED", "no", domain=FaultDomain.SECURITY)) == 403
        assert status_for(KeyError()) == 500


class TestDefaultFilter:

    def test_unhandled_error_logged(self, caplog):
        context = make_context("GET", "/explode")
        with caplog.at_level(logging.ERROR, logger="trellis.faults"):
            response = DefaultExceptionFilter().catch(ZeroDivisionError("x"), context)
        assert response.status == 500
        assert any("ZeroDivisionError" in r.message for r in caplog.records)


# ============================================================================
# Filters in the pipeline
# ============================================================================

class Controller:
    def fail(self, kind: Annotated[str, Param("kind")]):
        if kind == "key":
            raise KeyError("missing")
        if kind == "value":
            raise ValueError("bad value")
        raise RuntimeError("unexpected")


def failing_descriptor(filters):
    controller = Controller()
    return HandlerDescriptor(
        controller_class=Controller,
        controller=controller,
        method_name="fail",
        handler=controller.fail,
        http_method="GET",
        full_path="/fail/:kind",
        params=build_param_plan(Controller, "fail", Controller.fail),
        filters=filters,
    )


class TestPipelineFilters:

    @pytest.mark.asyncio
    async def test_filter_response_used(self):
        descriptor = failing_descriptor([bind("keys", [KeyError], level=METHOD_LEVEL)])
        context = make_context("GET", "/fail/key", params={"kind": "key"}, descriptor=descriptor)
        response = await PipelineEngine().execute(context)
        assert response.status == 418
        assert response.json_body() == {"filter": "keys"}

    @pytest.mark.asyncio
    async def test_global_filter_applies(self):
        descriptor = failing_descriptor([])
        engine = PipelineEngine(filters=[bind("global-values", [ValueError])])
        context = make_context("GET", "/fail/value", params={"kind": "value"}, descriptor=descriptor)
        response = await engine.execute(context)
        assert response.json_body() == {"filter": "global-values"}

    @pytest.mark.asyncio
    async def test_filter_returning_body_uses_exception_status(self):
        class BodyOnly(ExceptionFilter):
            def catch(self, exception, context):
                return {"oops": str(exception)}

        descriptor = failing_descriptor([FilterBinding(BodyOnly(), (ValueError,), METHOD_LEVEL)])
        context = make_context("GET", "/fail/value", params={"kind": "value"}, descriptor=descriptor)
        response = await PipelineEngine().execute(context)
        assert response.status == 500
        assert response.json_body() == {"oops": "bad value"}

    @pytest.mark.asyncio
    async def test_raising_filter_falls_back_to_default(self):
        class Broken(ExceptionFilter):
            def catch(self, exception, context):
                raise RuntimeError("filter bug")

        descriptor = failing_descriptor([FilterBinding(Broken(), (), METHOD_LEVEL)])
        context = make_context("GET", "/fail/other", params={"kind": "other"}, descriptor=descriptor)
        response = await PipelineEngine().execute(context)
        assert response.status == 500
        assert response.json_body()["error"]["message"] == "Internal server error"

    @pytest.mark.asyncio
    async def test_unfiltered_error_is_generic_500(self):
        descriptor = failing_descriptor([bind("keys", [KeyError])])
        context = make_context("GET", "/fail/other", params={"kind": "other"}, descriptor=descriptor)
        response = await PipelineEngine().execute(context)
        body = response.json_body()["error"]
        assert response.status == 500
        assert body["code"] == "INTERNAL_ERROR"
        assert body["path"] == "/fail/other"
