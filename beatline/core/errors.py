"""Error taxonomy and result envelope shared by every backend operation.

Backends never raise across the port boundary for expected failures. They
return a :class:`BackendResult` that is either a success carrying data or a
failure carrying a :class:`BackendError`. Inside an adapter it is often
simpler to raise :class:`BackendFailure` and let the port boundary convert
it into a failed result.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


# =============================================================================
# ERROR CODES
# =============================================================================


class BackendErrorCode(str, Enum):
    """Closed set of error codes a backend may report."""

    NOT_FOUND = "NOT_FOUND"
    ALREADY_EXISTS = "ALREADY_EXISTS"
    INVALID_INPUT = "INVALID_INPUT"
    LOCKED = "LOCKED"
    TIMEOUT = "TIMEOUT"
    UNAVAILABLE = "UNAVAILABLE"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    INTERNAL = "INTERNAL"
    CONFLICT = "CONFLICT"
    RATE_LIMITED = "RATE_LIMITED"


RETRYABLE_CODES: frozenset[BackendErrorCode] = frozenset(
    {
        BackendErrorCode.LOCKED,
        BackendErrorCode.TIMEOUT,
        BackendErrorCode.UNAVAILABLE,
        BackendErrorCode.RATE_LIMITED,
    }
)


# =============================================================================
# ERROR MODEL
# =============================================================================


class BackendError(BaseModel):
    """Structured error returned by a backend operation.

    Example:
        >>> err = BackendError.create(BackendErrorCode.LOCKED, "db is locked")
        >>> err.retryable
        True
    """

    model_config = ConfigDict(frozen=True)

    code: BackendErrorCode = Field(..., description="Error code")
    message: str = Field(..., description="Human readable message")
    retryable: bool = Field(
        default=False,
        description="Advisory hint that the caller may retry",
    )

    @classmethod
    def create(
        cls,
        code: BackendErrorCode,
        message: str,
        retryable: bool | None = None,
    ) -> "BackendError":
        """Build an error, defaulting ``retryable`` from the code."""
        if retryable is None:
            retryable = code in RETRYABLE_CODES
        return cls(code=code, message=message, retryable=retryable)


def not_found(entity: str, entity_id: str) -> BackendError:
    return BackendError.create(
        BackendErrorCode.NOT_FOUND, f"{entity} {entity_id} not found"
    )


def already_exists(entity: str, entity_id: str) -> BackendError:
    return BackendError.create(
        BackendErrorCode.ALREADY_EXISTS, f"{entity} {entity_id} already exists"
    )


def invalid_input(message: str) -> BackendError:
    return BackendError.create(BackendErrorCode.INVALID_INPUT, message)


def locked(message: str = "Resource is locked") -> BackendError:
    return BackendError.create(BackendErrorCode.LOCKED, message)


def timeout(message: str = "Operation timed out") -> BackendError:
    return BackendError.create(BackendErrorCode.TIMEOUT, message)


def unavailable(message: str) -> BackendError:
    return BackendError.create(BackendErrorCode.UNAVAILABLE, message)


def permission_denied(message: str) -> BackendError:
    return BackendError.create(BackendErrorCode.PERMISSION_DENIED, message)


def internal(message: str) -> BackendError:
    return BackendError.create(BackendErrorCode.INTERNAL, message)


# Checked in order; the first matching pattern decides the code.
_CLASSIFICATION_RULES: list[tuple[re.Pattern[str], BackendErrorCode]] = [
    (
        re.compile(r"not found|no such|does not exist", re.IGNORECASE),
        BackendErrorCode.NOT_FOUND,
    ),
    (re.compile(r"already exists|duplicate", re.IGNORECASE), BackendErrorCode.ALREADY_EXISTS),
    (re.compile(r"\block(ed)?\b|database is locked", re.IGNORECASE), BackendErrorCode.LOCKED),
    (re.compile(r"timed out|timeout", re.IGNORECASE), BackendErrorCode.TIMEOUT),
    (
        re.compile(r"permission denied|unauthorized|eacces", re.IGNORECASE),
        BackendErrorCode.PERMISSION_DENIED,
    ),
    (
        re.compile(r"busy|unavailable|unable to open", re.IGNORECASE),
        BackendErrorCode.UNAVAILABLE,
    ),
]


def classify_error_message(raw: str) -> BackendErrorCode:
    """Map raw CLI or file-system error text to an error code.

    Args:
        raw: Error text, typically stderr of a failed command.

    Returns:
        The first matching code, or INTERNAL when nothing matches.

    Example:
        >>> classify_error_message("Error: issue bd-42 not found")
        <BackendErrorCode.NOT_FOUND: 'NOT_FOUND'>
    """
    for pattern, code in _CLASSIFICATION_RULES:
        if pattern.search(raw):
            return code
    return BackendErrorCode.INTERNAL


def error_from_message(raw: str) -> BackendError:
    """Build a classified error whose message is the trimmed raw text."""
    message = raw.strip() or "Unknown backend error"
    return BackendError.create(classify_error_message(message), message)


def is_suppressible(error: BackendError) -> bool:
    """Whether an error is transient enough for a caller to hide it."""
    return error.code in RETRYABLE_CODES


# =============================================================================
# EXCEPTIONS
# =============================================================================


class BeatlineError(Exception):
    """Base exception for Beatline errors."""

    pass


class BackendFailure(BeatlineError):
    """Raised inside adapters; converted into a failed result at the port."""

    def __init__(self, error: BackendError) -> None:
        super().__init__(f"{error.code.value}: {error.message}")
        self.error = error


class InvalidRecordError(BeatlineError):
    """A tracker record parsed as JSON but cannot become a beat."""

    def __init__(self, record_id: object, reason: str) -> None:
        super().__init__(f"Invalid record {record_id!r}: {reason}")
        self.record_id = record_id
        self.reason = reason


# =============================================================================
# RESULT ENVELOPE
# =============================================================================


@dataclass(frozen=True)
class BackendResult(Generic[T]):
    """Tagged success or failure returned by every port operation."""

    ok: bool
    data: T | None = None
    error: BackendError | None = None

    @classmethod
    def success(cls, data: T) -> "BackendResult[T]":
        return cls(ok=True, data=data)

    @classmethod
    def failure(cls, error: BackendError) -> "BackendResult[T]":
        return cls(ok=False, error=error)

    def unwrap(self) -> T:
        """Return the data or raise :class:`BackendFailure`."""
        if not self.ok:
            assert self.error is not None
            raise BackendFailure(self.error)
        return self.data  # type: ignore[return-value]

    def to_dict(self) -> dict[str, Any]:
        if self.ok:
            data = self.data
            if isinstance(data, BaseModel):
                data = data.model_dump(mode="json")
            elif isinstance(data, list):
                data = [
                    item.model_dump(mode="json") if isinstance(item, BaseModel) else item
                    for item in data
                ]
            return {"ok": True, "data": data}
        assert self.error is not None
        return {"ok": False, "error": self.error.model_dump(mode="json")}
