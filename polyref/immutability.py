"""
polyref/immutability.py

Immutability guard - rejects updates that change an already-set owner pair
or discriminator column. Violations are recorded as validation errors,
never raised.
"""
import logging
from typing import Any, Iterable

from polyref.introspection import is_persisted, pending_change
from polyref.validation import BASE, Errors

logger = logging.getLogger(__name__)

OWNER_IMMUTABLE_MESSAGE = "owner cannot be changed once set"
FIELD_IMMUTABLE_MESSAGE = "cannot be changed once set"


def check_immutable(
    record: Any,
    columns: Iterable[str],
    errors: Errors,
    attribute: str = BASE,
    message: str = OWNER_IMMUTABLE_MESSAGE,
) -> bool:
    """
    Record a validation error if any column changes a previously set value.

    Only applies to persisted records; inserts always pass. A column whose
    persisted value is NULL may still be filled in.

    Args:
        record: Record about to be updated
        columns: Column attribute keys guarded together
        errors: Errors collection of record
        attribute: Attribute the message is filed under
        message: Message recorded on violation

    Returns:
        True when no guarded column changes
    """
    if not is_persisted(record):
        return True

    for column in columns:
        changed, previous, current = pending_change(record, column)
        if changed and previous is not None:
            logger.debug(
                f"{type(record).__name__}.{column}: rejected change {previous!r} -> {current!r}"
            )
            errors.add(attribute, message)
            return False
    return True


__all__ = ["OWNER_IMMUTABLE_MESSAGE", "FIELD_IMMUTABLE_MESSAGE", "check_immutable"]
