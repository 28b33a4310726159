"""
Injection helpers.
"""

from dataclasses import dataclass
from typing import Any, Optional


@dataclass(frozen=True)
class Inject:
    """
    Injection metadata marker.

    Overrides the token inferred from a constructor type hint.

    Usage:
        def __init__(self, url: Annotated[str, Inject("DATABASE_URL")]):
            ...
    """

    token: Any = None
    optional: bool = False


def inject(token: Any = None, *, optional: bool = False) -> Inject:
    """
    Create injection metadata.

    Args:
        token: Explicit token (inferred from the type hint if None)
        optional: If True, a missing provider leaves the parameter default

    Example:
        def __init__(self, cache: Annotated[Cache, inject(optional=True)] = None):
            ...
    """
    return Inject(token=token, optional=optional)
