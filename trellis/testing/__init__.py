"""
Trellis Testing - in-process clients and testing modules.

Usage:
    from trellis.testing import TestClient, create_testing_module

    app = create_testing_module(AppModule, overrides={"CONFIG": {"debug": True}})
    client = TestClient(app)
    response = await client.get("/ping")
"""

from .client import TestClient, TestResponse
from .module import TestingModuleBuilder, create_testing_module
from .utils import make_test_receive, make_test_scope

__all__ = [
    "TestClient",
    "TestResponse",
    "TestingModuleBuilder",
    "create_testing_module",
    "make_test_receive",
    "make_test_scope",
]
