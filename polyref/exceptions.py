"""
polyref/exceptions.py

Error types raised by polyref.

Configuration and resolution errors are raised and abort the current
declaration or flush. Validation failures are not errors: they are collected
on the record (see polyref.validation) and only surface as ``RecordInvalid``
when a flush is attempted.
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional


class PolyrefError(Exception):
    """Base class for all polyref errors."""


class ConfigurationError(PolyrefError):
    """A declaration is invalid (raised at entity-type configuration time)."""


@dataclass(eq=False)
class PolymorphicJoinError(PolyrefError):
    """
    A polymorphic join was requested against a target that cannot be joined.

    Attributes:
        source: Declaring entity name (e.g. "Comment")
        slot: Polymorphic slot name (e.g. "commentable")
        target: Requested target name
        reason: Human readable cause
        missing_declaration: The declaration the target must add, if any
    """
    source: str
    slot: str
    target: str
    reason: str = ""
    missing_declaration: Optional[str] = None

    def __str__(self) -> str:
        if self.missing_declaration:
            return (
                f"Polymorphic join requires {self.target} to declare: "
                f"{self.missing_declaration}"
            )
        return self.reason or f"Cannot join {self.source}.{self.slot} to {self.target}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_type": "PolymorphicJoinError",
            "source": self.source,
            "slot": self.slot,
            "target": self.target,
            "reason": self.reason,
            "missing_declaration": self.missing_declaration,
        }


class OwnerResolutionError(PolyrefError):
    """An owner rule could not be turned into a (type, id) pair."""


class OwnerNotPersistedError(OwnerResolutionError):
    """The owner rule produced a record without an identifier."""


class OwnerRequiredError(OwnerResolutionError):
    """The owner rule produced no record and ``allow_nil`` is False."""


class InvalidOwnerTypeError(OwnerResolutionError):
    """The owner rule produced something that is not a mapped record."""

    def __init__(self, value: Any):
        self.value = value
        super().__init__(
            f"owner must resolve to a mapped entity instance, got {type(value).__name__}"
        )


class ReferenceNotPersistedError(PolyrefError):
    """An unsaved record was assigned to a polymorphic reference."""


class RecordInvalid(PolyrefError):
    """
    A flush was aborted because a record failed validation.

    Attributes:
        record: The invalid record
        errors: polyref.validation.Errors collected for it
    """

    def __init__(self, record: Any, errors: Any):
        self.record = record
        self.errors = errors
        messages = ", ".join(errors.full_messages)
        super().__init__(f"Validation failed for {type(record).__name__}: {messages}")
