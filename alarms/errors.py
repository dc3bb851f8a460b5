from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class AlarmPiError(Exception):
    """Base class for all errors raised by the alarm daemon."""


class ConfigurationError(AlarmPiError, ValueError):
    pass


class ProtocolError(AlarmPiError):
    pass


class ValidationError(AlarmPiError, ValueError):
    pass


class HardwareError(AlarmPiError):
    pass


class ConcurrencyError(AlarmPiError, RuntimeError):
    """A transaction was opened while another one is still open."""


class PersistenceError(AlarmPiError):
    pass


class ErrorKind(Enum):
    PROTOCOL = "protocol"
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    HARDWARE = "hardware"


@dataclass
class Result:
    ok: bool
    payload: Any = None
    kind: Optional[ErrorKind] = None
    message: str = ""

    @classmethod
    def success(cls, payload: Any = None) -> "Result":
        return cls(ok=True, payload=payload)

    @classmethod
    def failure(cls, kind: ErrorKind, message: str) -> "Result":
        return cls(ok=False, kind=kind, message=message)
