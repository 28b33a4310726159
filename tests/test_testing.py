"""
Testing utilities: TestClient and testing modules with overrides.
"""

import asyncio
from typing import Annotated

import pytest

from trellis import GET, POST, Body, ClassProvider, Param, controller, injectable, module
from trellis.testing import TestClient, TestingModuleBuilder, create_testing_module


@injectable
class Clock:
    def now(self) -> str:
        return "real-time"


@injectable
class Greeter:
    def __init__(self, clock: Clock):
        self.clock = clock

    def greet(self, name: str) -> dict:
        return {"hello": name, "at": self.clock.now()}


@controller("/greet")
class GreetController:
    def __init__(self, greeter: Greeter):
        self.greeter = greeter

    @GET("/:name")
    def greet(self, name: Annotated[str, Param()]):
        return self.greeter.greet(name)

    @POST("/", status_code=201)
    def create(self, payload: Annotated[dict, Body()]):
        return payload

    @GET("/slow/:name")
    async def slow(self, name: Annotated[str, Param()]):
        await asyncio.sleep(0.05)
        return self.greeter.greet(name)


@module(providers=[Clock, Greeter], controllers=[GreetController])
class GreetModule:
    pass


class FakeClock:
    def now(self) -> str:
        return "frozen"


# ============================================================================
# TestClient
# ============================================================================

class TestTestClient:

    @pytest.mark.asyncio
    async def test_get(self):
        client = TestClient(create_testing_module(GreetModule))
        response = await client.get("/greet/ada")
        assert response.is_success
        assert response.content_type == "application/json"
        assert response.json() == {"hello": "ada", "at": "real-time"}

    @pytest.mark.asyncio
    async def test_post_json(self):
        client = TestClient(create_testing_module(GreetModule))
        response = await client.post("/greet", json={"name": "grace"})
        assert response.status_code == 201
        assert response.json() == {"name": "grace"}

    @pytest.mark.asyncio
    async def test_default_headers_and_request_id(self):
        client = TestClient(create_testing_module(GreetModule), default_headers={"X-Request-Id": "fixed"})
        response = await client.get("/greet/ada")
        assert response.header("X-Request-Id") == "fixed"

    @pytest.mark.asyncio
    async def test_not_found(self):
        client = TestClient(create_testing_module(GreetModule))
        response = await client.delete("/greet/ada")
        assert response.status_code == 404
        assert not response.is_success
        assert response.json()["error"]["message"] == "Cannot DELETE /greet/ada"

    @pytest.mark.asyncio
    async def test_disconnect_returns_none(self):
        client = TestClient(create_testing_module(GreetModule))
        gone = asyncio.Event()
        pending = asyncio.ensure_future(client.get("/greet/slow/ada", disconnect=gone))
        await asyncio.sleep(0.01)
        gone.set()
        assert await pending is None


# ============================================================================
# Testing modules
# ============================================================================

class TestTestingModule:

    @pytest.mark.asyncio
    async def test_override_with_value(self):
        app = create_testing_module(GreetModule, overrides={Clock: FakeClock()})
        response = await TestClient(app).get("/greet/ada")
        assert response.json()["at"] == "frozen"

    def test_override_with_class_provider(self):
        app = create_testing_module(GreetModule, overrides={Clock: ClassProvider(FakeClock, token=Clock)})
        assert isinstance(app.get(Greeter).clock, FakeClock)

    def test_builder_use_value(self):
        fake = FakeClock()
        app = TestingModuleBuilder(GreetModule).override_provider(Clock).use_value(fake).compile()
        assert app.get(Greeter).clock is fake

    def test_builder_use_class(self):
        app = TestingModuleBuilder(GreetModule).override_provider(Clock).use_class(FakeClock).compile()
        assert app.get(Clock).now() == "frozen"
        assert app.get(Greeter).clock is app.get(Clock)

    def test_builder_use_factory(self):
        app = (
            TestingModuleBuilder(GreetModule)
            .override_provider(Greeter)
            .use_factory(lambda clock: {"clock": clock}, inject=[Clock])
            .compile()
        )
        assert isinstance(app.get(Greeter)["clock"], Clock)

    def test_module_reusable_without_overrides(self):
        create_testing_module(GreetModule, overrides={Clock: FakeClock()})
        app = create_testing_module(GreetModule)
        assert app.get(Clock).now() == "real-time"
