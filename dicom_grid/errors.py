"""Result shapes and the error taxonomy shared by every dicom_grid boundary.

Failures inside the core are returned as data rather than raised: each public
operation hands back either :class:`Ok` or :class:`Err`.  Only
:class:`InitError` is fatal, and it is still delivered as a value.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, Tuple, TypeVar, Union

__all__ = [
    "ErrorKind",
    "Ok",
    "Err",
    "Result",
    "LoadError",
    "LoadErrors",
    "RenderError",
    "InitError",
]

T = TypeVar("T")
E = TypeVar("E")


class ErrorKind(Enum):
    PARSE_FAILURE = "ParseFailure"
    EMPTY_RESULT = "EmptyResult"
    RENDER_ERROR = "RenderError"
    INIT_ERROR = "InitError"


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err(Generic[E]):
    error: E

    @property
    def ok(self) -> bool:
        return False


Result = Union[Ok[T], Err[E]]


# --------------------------------------------------------------------------------------
# Error payloads
# --------------------------------------------------------------------------------------


@dataclass(frozen=True)
class LoadError:
    """A single file that could not be turned into an image record."""

    source: Any
    reason: str
    kind: ErrorKind = ErrorKind.PARSE_FAILURE

    @property
    def name(self) -> str:
        return str(getattr(self.source, "name", self.source))

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.name}: {self.reason}"


@dataclass(frozen=True)
class LoadErrors:
    """Batch-level aggregate returned when a load attempt yields nothing usable."""

    errors: Tuple[LoadError, ...] = field(default_factory=tuple)
    generation: int = 0
    kind: ErrorKind = ErrorKind.EMPTY_RESULT

    def __str__(self) -> str:
        if not self.errors:
            return f"{self.kind.value}: no files were supplied"
        return f"{self.kind.value}: none of {len(self.errors)} file(s) could be parsed"


@dataclass(frozen=True)
class RenderError:
    """The rendering engine failed to bind a series to one viewport slot."""

    slot_id: int
    reason: str
    kind: ErrorKind = ErrorKind.RENDER_ERROR

    def __str__(self) -> str:
        return f"{self.kind.value}: slot {self.slot_id}: {self.reason}"


@dataclass(frozen=True)
class InitError:
    """The rendering engine never reached the ready state."""

    reason: str
    kind: ErrorKind = ErrorKind.INIT_ERROR

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.reason}"
