"""Typed error taxonomy and append results for the progress engine.

Errors subclass ``ValueError`` and stringify to a short machine code
(``str(exc) == "not_found"``) so controllers can map them to responses the
same way they map plain ``ValueError("code")`` raised by CRUD services.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Union


class DomainError(ValueError):
    """Base class; ``code`` is the machine-readable reason."""

    def __init__(self, code: str, detail: Optional[str] = None) -> None:
        super().__init__(code)
        self.code = code
        self.detail = detail


class ValidationError(DomainError):
    """Malformed input or an unknown habit/challenge/user."""


class InvariantViolation(DomainError):
    """The operation would break a ledger invariant; nothing was applied."""


class StaleSnapshot(DomainError):
    """A read observed the ledger moving underneath it."""


@dataclass(frozen=True)
class Accepted:
    """An event made it into the ledger."""

    event: Any
    accepted: bool = True


@dataclass(frozen=True)
class Rejected:
    """An append was refused; ``error`` carries the typed reason."""

    error: DomainError
    accepted: bool = False

    @property
    def reason(self) -> str:
        return self.error.code


AppendResult = Union[Accepted, Rejected]


__all__ = [
    "Accepted",
    "AppendResult",
    "DomainError",
    "InvariantViolation",
    "Rejected",
    "StaleSnapshot",
    "ValidationError",
]
