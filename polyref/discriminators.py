"""
polyref/discriminators.py

Role / label discriminators stored next to a polymorphic slot
(``<slot>_role``, ``<slot>_label``).

Values are normalized (strip, lowercase, empty -> None) before validation
and must match ``[a-z0-9_]+`` within the declared maximum length.
"""
import logging
import re
from typing import Any, List, Optional, Type, Union

from sqlalchemy.sql.elements import ColumnElement

from polyref.exceptions import ConfigurationError
from polyref.metadata import DiscriminatorDeclaration, DiscriminatorKind
from polyref.registry import PolymorphicRegistry, registry as default_registry
from polyref.validation import Errors

logger = logging.getLogger(__name__)

DISCRIMINATOR_PATTERN = re.compile(r"[a-z0-9_]+")

BLANK_MESSAGE = "can't be blank"
INVALID_MESSAGE = "is invalid"


def normalize(value: Any) -> Optional[str]:
    """
    Example:
        >>> normalize("  My_Label  ")
        'my_label'
        >>> normalize("   ") is None
        True
    """
    if value is None:
        return None
    normalized = str(value).strip().lower()
    return normalized or None


def validation_messages(value: Optional[str], max_length: int) -> List[str]:
    """Messages for a normalized value; empty list when valid."""
    if not value:
        return [BLANK_MESSAGE]
    messages = []
    if not DISCRIMINATOR_PATTERN.fullmatch(value):
        messages.append(INVALID_MESSAGE)
    if len(value) > max_length:
        messages.append(f"is too long (maximum is {max_length} characters)")
    return messages


def apply_discriminator(record: Any, declaration: DiscriminatorDeclaration, errors: Errors) -> bool:
    """
    Normalize the discriminator column of record in place and validate it.

    Returns:
        True when the value is valid
    """
    raw = getattr(record, declaration.column)
    value = normalize(raw)
    if value != raw:
        setattr(record, declaration.column, value)

    messages = validation_messages(value, declaration.max_length)
    for message in messages:
        errors.add(declaration.column, message)
    return not messages


def _find_declaration(
    entity: Type,
    slot: str,
    kind: DiscriminatorKind,
    registry: PolymorphicRegistry,
) -> DiscriminatorDeclaration:
    for klass in entity.__mro__:
        for declaration in registry.get_discriminators(klass.__name__):
            if declaration.slot == slot and declaration.kind == kind:
                return declaration
    raise ConfigurationError(f"{entity.__name__} declares no {kind.value} for {slot!r}")


def for_discriminator(
    entity: Type,
    slot: str,
    kind: Union[DiscriminatorKind, str],
    value: Any,
    registry: PolymorphicRegistry = default_registry,
) -> ColumnElement:
    """
    Filter ``<column> = normalize(value)`` for a declared discriminator.

    Example:
        >>> session.scalars(select(Tagging).where(for_role(Tagging, "taggable", "Primary"))).all()
    """
    declaration = _find_declaration(entity, slot, DiscriminatorKind(kind), registry)
    return getattr(entity, declaration.column) == normalize(value)


def for_role(entity: Type, slot: str, value: Any, registry: PolymorphicRegistry = default_registry) -> ColumnElement:
    return for_discriminator(entity, slot, DiscriminatorKind.ROLE, value, registry=registry)


def for_label(entity: Type, slot: str, value: Any, registry: PolymorphicRegistry = default_registry) -> ColumnElement:
    return for_discriminator(entity, slot, DiscriminatorKind.LABEL, value, registry=registry)


__all__ = [
    "DISCRIMINATOR_PATTERN",
    "normalize",
    "validation_messages",
    "apply_discriminator",
    "for_discriminator",
    "for_role",
    "for_label",
]
