"""JSON envelope for machine-readable CLI output.

Every command run with ``--json`` prints exactly one envelope:

    {
        "success": true|false,
        "command": "scan",
        "data": { ... },
        "errors": [ ... ]   # only when success is false
    }
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from spready.errors import SpreadyError


@dataclass(frozen=True)
class ErrorDetail:
    """One entry of the envelope's ``errors`` array."""

    type: str
    message: str
    code: str | None = None

    @classmethod
    def from_exception(cls, exc: BaseException) -> ErrorDetail:
        if isinstance(exc, SpreadyError):
            return cls(type=type(exc).__name__, message=exc.message, code=exc.code)
        return cls(type=type(exc).__name__, message=str(exc))

    def to_dict(self) -> dict[str, str]:
        d = {"type": self.type, "message": self.message}
        if self.code is not None:
            d["code"] = self.code
        return d


@dataclass
class OutputEnvelope:
    """Wrapper shared by all commands' JSON output."""

    success: bool
    command: str
    data: dict[str, Any]
    errors: list[ErrorDetail] | None = None

    def to_dict(self) -> dict[str, Any]:
        envelope: dict[str, Any] = {
            "success": self.success,
            "command": self.command,
            "data": self.data,
        }
        if self.errors is not None:
            envelope["errors"] = [e.to_dict() for e in self.errors]
        return envelope

    def to_json(self, *, indent: int | None = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)


def success_envelope(command: str, data: dict[str, Any]) -> OutputEnvelope:
    return OutputEnvelope(success=True, command=command, data=data)


def error_envelope(
    command: str,
    errors: list[ErrorDetail],
    *,
    data: dict[str, Any] | None = None,
) -> OutputEnvelope:
    """Envelope for a failed command, optionally carrying partial data."""
    return OutputEnvelope(success=False, command=command, data=data or {}, errors=errors)
