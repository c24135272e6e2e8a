"""
polyref/validation.py

Validation-failure channel. Soft failures (immutability, discriminator
format / length / presence) are collected per record in an ``Errors``
object rather than raised, so several can be reported together.
"""
from typing import Any, Dict, Iterator, List, Tuple

# attribute name used for record-level (not field-level) messages
BASE = "base"

_ERRORS_ATTR = "_polyref_errors"


class Errors:
    """
    Validation messages of one record, keyed by attribute.

    Example:
        >>> errors = Errors()
        >>> errors.add("taggable_role", "is invalid")
        >>> errors["taggable_role"]
        ['is invalid']
    """

    def __init__(self) -> None:
        self._messages: Dict[str, List[str]] = {}

    def add(self, attribute: str, message: str) -> None:
        messages = self._messages.setdefault(attribute, [])
        if message not in messages:
            messages.append(message)

    def __getitem__(self, attribute: str) -> List[str]:
        return list(self._messages.get(attribute, []))

    def __contains__(self, attribute: str) -> bool:
        return bool(self._messages.get(attribute))

    def __iter__(self) -> Iterator[Tuple[str, str]]:
        for attribute, messages in self._messages.items():
            for message in messages:
                yield attribute, message

    def __len__(self) -> int:
        return sum(len(messages) for messages in self._messages.values())

    def __repr__(self) -> str:
        return f"Errors({self._messages!r})"

    def clear(self) -> None:
        self._messages.clear()

    @property
    def full_messages(self) -> List[str]:
        """Messages with their attribute prefixed (base messages stand alone)."""
        return [
            message if attribute == BASE else f"{attribute} {message}"
            for attribute, message in self
        ]

    def to_dict(self) -> Dict[str, List[str]]:
        return {attribute: list(messages) for attribute, messages in self._messages.items() if messages}


def errors_for(record: Any) -> Errors:
    """Errors object attached to record (created on first access)."""
    errors = record.__dict__.get(_ERRORS_ATTR)
    if errors is None:
        errors = Errors()
        record.__dict__[_ERRORS_ATTR] = errors
    return errors


__all__ = ["BASE", "Errors", "errors_for"]
