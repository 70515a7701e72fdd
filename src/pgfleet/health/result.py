"""Health check result types.

A check returns one of two payload shapes: ``TextStatus`` for a plain
status word, or ``RecordStatus`` for a flat record of named scalar fields.
A failing check raises instead; the monitor turns that into an unhealthy
``CheckState``.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Optional, Union

from pgfleet.core.exceptions import HealthCheckError


Scalar = Union[int, float, str, bool]


class CheckStatus(str, Enum):
    PENDING = "pending"
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


@dataclass(frozen=True)
class TextStatus:
    text: str

    def to_json(self) -> str:
        return self.text


@dataclass(frozen=True)
class RecordStatus:
    fields: Mapping[str, Scalar] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for key, value in self.fields.items():
            if not isinstance(value, (int, float, str, bool)):
                raise TypeError(f"Field {key!r} must be a scalar, got {type(value).__name__}")
        object.__setattr__(self, "fields", MappingProxyType(dict(self.fields)))

    def __getitem__(self, key: str) -> Scalar:
        return self.fields[key]

    def to_json(self) -> dict[str, Scalar]:
        return dict(self.fields)


CheckResult = Union[TextStatus, RecordStatus]


class CheckFailed(HealthCheckError):
    """A check failure that still carries the figures it measured."""

    def __init__(
        self,
        message: str,
        *,
        result: Optional[CheckResult] = None,
        hint: Optional[str] = None,
        details: Optional[list[str]] = None,
    ) -> None:
        super().__init__(message, hint=hint, details=details)
        self.result = result


@dataclass(frozen=True)
class CheckState:
    """Last known state of one check."""

    name: str
    fatal: bool = False
    status: CheckStatus = CheckStatus.PENDING
    last_check: Optional[datetime] = None
    result: Optional[CheckResult] = None
    error: Optional[str] = None

    @property
    def is_unhealthy(self) -> bool:
        return self.status == CheckStatus.UNHEALTHY

    def to_json(self) -> dict[str, Any]:
        """The detailed-view entry for this check."""
        data: dict[str, Any] = {
            "status": self.status.value,
            "last_check": self.last_check.isoformat() if self.last_check else None,
        }
        if self.result is not None:
            data["details"] = self.result.to_json()
        if self.error:
            data["error"] = self.error
        return data
