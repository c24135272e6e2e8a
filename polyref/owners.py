"""
polyref/owners.py

Owner resolver - evaluates an owner rule against a record and mirrors the
resulting record into an owner (type, id) column pair.

Rules come in three shapes:
- Constant(record): always the same record
- FieldAccess(name): an attribute, relationship or zero-argument method
- Computed(fn): fn(record)
"""
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional, Tuple, Union

from polyref.exceptions import (
    ConfigurationError,
    InvalidOwnerTypeError,
    OwnerNotPersistedError,
    OwnerRequiredError,
    OwnerResolutionError,
)
from polyref.introspection import (
    canonical_name,
    coerce_for_column,
    identity_of,
    is_mapped_instance,
    is_persisted,
    mapped_column_of,
)
from polyref.metadata import OwnerDeclaration

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Constant:
    """A fixed owner record."""
    value: Any


@dataclass(frozen=True)
class FieldAccess:
    """Owner read from an attribute (or zero-argument method) of the record."""
    name: str


@dataclass(frozen=True)
class Computed:
    """Owner computed by a function of the record."""
    fn: Callable[[Any], Any]


OwnerRule = Union[Constant, FieldAccess, Computed]


def coerce_rule(value: Any) -> OwnerRule:
    """
    Turn a shorthand into an OwnerRule.

    - OwnerRule instance: returned as is
    - str: FieldAccess
    - callable: Computed
    - anything else: Constant

    Raises:
        ConfigurationError: value is None
    """
    if value is None:
        raise ConfigurationError("owner is required")
    if isinstance(value, (Constant, FieldAccess, Computed)):
        return value
    if isinstance(value, str):
        return FieldAccess(value)
    if callable(value) and not is_mapped_instance(value):
        return Computed(value)
    return Constant(value)


def evaluate_rule(record: Any, rule: OwnerRule) -> Any:
    """Evaluate a rule in the context of record (no further indirection)."""
    if isinstance(rule, Constant):
        return rule.value
    if isinstance(rule, FieldAccess):
        try:
            value = getattr(record, rule.name)
        except AttributeError as exc:
            raise OwnerResolutionError(
                f"{type(record).__name__} has no attribute {rule.name!r}"
            ) from exc
        if callable(value) and not is_mapped_instance(value):
            value = value()
        return value
    if isinstance(rule, Computed):
        return rule.fn(record)
    raise ConfigurationError(f"Unknown owner rule: {rule!r}")


def _is_absent(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (str, bytes, list, tuple, set, frozenset, dict)):
        return len(value) == 0
    return False


def resolve_owner(record: Any, rule: OwnerRule, allow_nil: bool = True) -> Optional[Tuple[str, Any]]:
    """
    Resolve an owner rule to a (type name, id) pair.

    Args:
        record: Record being persisted
        rule: Owner rule
        allow_nil: Whether an absent owner is acceptable

    Returns:
        (canonical base type name, identifier), or None when the owner is
        absent and allow_nil is True

    Raises:
        OwnerRequiredError: owner absent and allow_nil is False
        InvalidOwnerTypeError: rule produced a non-record value
        OwnerNotPersistedError: rule produced an unsaved record
    """
    value = evaluate_rule(record, rule)

    if _is_absent(value):
        if not allow_nil:
            raise OwnerRequiredError(f"owner of {type(record).__name__} resolved to None")
        return None

    if not is_mapped_instance(value):
        raise InvalidOwnerTypeError(value)

    if not is_persisted(value):
        raise OwnerNotPersistedError(
            f"owner must be persisted, got unsaved {type(value).__name__}"
        )

    return canonical_name(value), identity_of(value)


def _assign(record: Any, column: str, value: Any) -> None:
    # leave history untouched when nothing changes
    if getattr(record, column) != value:
        setattr(record, column, value)


def apply_owner(record: Any, declaration: OwnerDeclaration) -> Optional[Tuple[str, Any]]:
    """
    Resolve the declared owner rule and write it into the owner columns.

    Returns:
        The resolved (type, id) pair, or None when the columns were cleared
    """
    resolved = resolve_owner(record, declaration.rule, allow_nil=declaration.allow_nil)
    type_name, owner_id = resolved if resolved is not None else (None, None)
    # match the id column type ("1" for String columns)
    owner_id = coerce_for_column(mapped_column_of(type(record), declaration.id_column), owner_id)
    _assign(record, declaration.type_column, type_name)
    _assign(record, declaration.id_column, owner_id)
    logger.debug(
        f"{type(record).__name__}.{declaration.type_column}/{declaration.id_column} "
        f"<- {type_name}/{owner_id}"
    )
    return resolved


__all__ = [
    "Constant",
    "FieldAccess",
    "Computed",
    "OwnerRule",
    "coerce_rule",
    "evaluate_rule",
    "resolve_owner",
    "apply_owner",
]
