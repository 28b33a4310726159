"""
Built-in input pipes.

A pipe is any object with ``transform(value, metadata)`` (sync or async)
returning the transformed value or raising a ``BadRequestFault`` family
error. Pipes may be registered as classes (built through DI) or instances.
"""

import re
from typing import Any, Optional

from ..faults import ValidationFault
from .params import ArgumentMetadata


# Optional sign and ASCII digits, nothing else
_INT_RE = re.compile(r"[+-]?[0-9]+")


class PipeTransform:
    """Base class for pipes."""

    def transform(self, value: Any, metadata: ArgumentMetadata) -> Any:
        raise NotImplementedError


def _label(metadata: Optional[ArgumentMetadata]) -> str:
    if metadata is None:
        return "value"
    return metadata.data or metadata.name or metadata.type


class ValidationPipe(PipeTransform):
    """Rejects missing (None) values."""

    def transform(self, value: Any, metadata: ArgumentMetadata) -> Any:
        if value is None:
            raise ValidationFault(
                f"Validation failed: {_label(metadata)} is required",
                field=_label(metadata),
            )
        return value


class _RangePipe(PipeTransform):
    def __init__(self, min: Optional[float] = None, max: Optional[float] = None):
        self.min = min
        self.max = max

    def _check_range(self, value: Any, metadata: ArgumentMetadata) -> Any:
        if self.min is not None and value < self.min:
            raise ValidationFault(
                f"Value must be at least {self.min}", field=_label(metadata),
            )
        if self.max is not None and value > self.max:
            raise ValidationFault(
                f"Value must be at most {self.max}", field=_label(metadata),
            )
        return value


class ParseIntPipe(_RangePipe):
    """
    Parse a decimal integer string.

    Example:
        def show(self, id: Annotated[int, Param("id", ParseIntPipe)]): ...
    """

    def transform(self, value: Any, metadata: ArgumentMetadata) -> int:
        if isinstance(value, bool):
            value = None
        if isinstance(value, int):
            return self._check_range(value, metadata)
        if not isinstance(value, str) or not _INT_RE.fullmatch(value):
            raise ValidationFault(
                f"Validation failed (numeric string expected) for {_label(metadata)}",
                field=_label(metadata),
            )
        return self._check_range(int(value, 10), metadata)


class ParseFloatPipe(_RangePipe):
    def transform(self, value: Any, metadata: ArgumentMetadata) -> float:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return self._check_range(float(value), metadata)
        try:
            parsed = float(str(value).strip())
        except (TypeError, ValueError):
            raise ValidationFault(
                f"Validation failed (numeric string expected) for {_label(metadata)}",
                field=_label(metadata),
            ) from None
        if parsed != parsed:
            raise ValidationFault(
                f"Validation failed (numeric string expected) for {_label(metadata)}",
                field=_label(metadata),
            )
        return self._check_range(parsed, metadata)


class ParseBoolPipe(PipeTransform):
    TRUE = ("true", "1", "yes")
    FALSE = ("false", "0", "no")

    def transform(self, value: Any, metadata: ArgumentMetadata) -> bool:
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower() if value is not None else ""
        if text in self.TRUE:
            return True
        if text in self.FALSE:
            return False
        raise ValidationFault(
            f"Validation failed (boolean string expected) for {_label(metadata)}",
            field=_label(metadata),
        )


class ParseArrayPipe(PipeTransform):
    """Split a delimited string, optionally parsing each item."""

    def __init__(self, separator: str = ",", items: Optional[str] = None):
        self.separator = separator
        self.items = items

    def transform(self, value: Any, metadata: ArgumentMetadata) -> list:
        if isinstance(value, list):
            parts = value
        elif not value:
            return []
        else:
            parts = [item.strip() for item in str(value).split(self.separator)]

        if self.items == "int":
            inner = ParseIntPipe()
            return [inner.transform(item, metadata) for item in parts]
        if self.items == "float":
            inner = ParseFloatPipe()
            return [inner.transform(item, metadata) for item in parts]
        if self.items == "bool":
            inner = ParseBoolPipe()
            return [inner.transform(item, metadata) for item in parts]
        return parts


class DefaultValuePipe(PipeTransform):
    """Substitute ``default`` for a missing value."""

    def __init__(self, default: Any):
        self.default = default

    def transform(self, value: Any, metadata: ArgumentMetadata) -> Any:
        if value is None or value == "":
            return self.default
        return value
