"""
Shared test fixtures and helpers for the Trellis test suite.
"""

from typing import Any, Dict, Optional

import pytest

from trellis.metadata import MetadataRegistry
from trellis.pipeline.context import ExecutionContext
from trellis.request import Request
from trellis.response import Response


# ============================================================================
# Request Helpers
# ============================================================================


def make_context(
    method: str = "GET",
    path: str = "/",
    *,
    params: Optional[Dict[str, str]] = None,
    headers: Optional[Dict[str, str]] = None,
    body: bytes = b"",
    query: Optional[Dict[str, Any]] = None,
    descriptor: Any = None,
    status: int = 200,
) -> ExecutionContext:
    """Build an execution context around a synthetic request."""
    request = Request(method, path, headers=headers, body=body, query=query)
    return ExecutionContext(
        request=request,
        response=Response(status=status),
        descriptor=descriptor,
        params=params or {},
        state=request.state,
    )


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def registry():
    """Fresh metadata registry."""
    return MetadataRegistry()
