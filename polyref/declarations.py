"""
polyref/declarations.py

Declaration API used by entity-type authors at configuration time.

Example:
    >>> declare_polymorphic_slot(Comment, "commentable")
    >>> declare_owner_rule(Coin, "resource", Computed(lambda coin: coin.ledger and coin.ledger.account))
    >>> declare_role(Tagging, "taggable")
    >>> setup_models(Post, User, Comment, Tagging, Coin)
"""
import logging
from typing import Any, Callable, Dict, Optional, Type

from pydantic import ValidationError
from sqlalchemy import inspect

from polyref.exceptions import ConfigurationError
from polyref.introspection import collect_relations, column_keys, is_mapped_class
from polyref.joins import make_join_function
from polyref.metadata import (
    DiscriminatorDeclaration,
    DiscriminatorKind,
    DiscriminatorOptions,
    OwnerDeclaration,
    OwnerOptions,
    PolymorphicSlot,
)
from polyref.owners import coerce_rule
from polyref.references import PolymorphicReference
from polyref.registry import PolymorphicRegistry, registry as default_registry

logger = logging.getLogger(__name__)


def _require_mapped(entity: Any) -> None:
    if not is_mapped_class(entity):
        raise ConfigurationError(f"{entity!r} is not a mapped entity class")


def _require_reference(entity: Type, slot: str) -> PolymorphicReference:
    reference = getattr(entity, slot, None)
    if not isinstance(reference, PolymorphicReference):
        raise ConfigurationError(
            f"{entity.__name__} must declare {slot} = PolymorphicReference() "
            f"(polymorphic belongs-relation)"
        )
    return reference


def _require_columns(entity: Type, *columns: str) -> None:
    keys = column_keys(entity)
    missing = [column for column in columns if column not in keys]
    if missing:
        raise ConfigurationError(
            f"{entity.__name__} is missing column(s): {', '.join(missing)}"
        )


def _build_options(model: Type, **values: Any):
    try:
        return model(**{k: v for k, v in values.items() if v is not None})
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid {model.__name__}: {exc}") from exc


def declare_polymorphic_slot(
    entity: Type,
    slot: str,
    registry: PolymorphicRegistry = default_registry,
) -> Callable:
    """
    Register a polymorphic slot and publish its join function.

    Declaring the same slot again returns the already published function.

    Args:
        entity: Mapped class carrying ``slot = PolymorphicReference()``
        slot: Slot name

    Returns:
        The slot's join function, ``fn(target) -> PolymorphicJoin``

    Raises:
        ConfigurationError: slot is not a polymorphic reference, its columns
            are missing, or it was declared before with another shape
    """
    _require_mapped(entity)
    reference = _require_reference(entity, slot)
    _require_columns(entity, reference.type_column, reference.id_column)

    columns = inspect(entity).columns
    slot_meta = PolymorphicSlot(
        entity=entity.__name__,
        name=slot,
        type_column=reference.type_column,
        id_column=reference.id_column,
        nullable=bool(columns[reference.type_column].nullable and columns[reference.id_column].nullable),
    )
    registry.register_slot(slot_meta)
    return registry.bind_join(entity.__name__, slot, make_join_function(entity, slot, registry))


def declare_polymorphic_slots(
    entity: Type,
    registry: PolymorphicRegistry = default_registry,
) -> Dict[str, Callable]:
    """Declare every PolymorphicReference found on entity (including inherited ones)."""
    join_functions: Dict[str, Callable] = {}
    for klass in reversed(entity.__mro__):
        for name, value in vars(klass).items():
            if isinstance(value, PolymorphicReference):
                join_functions[name] = declare_polymorphic_slot(entity, name, registry=registry)
    return join_functions


def declare_owner_rule(
    entity: Type,
    slot: str,
    rule: Any,
    allow_nil: bool = True,
    immutable: bool = False,
    type_column: Optional[str] = None,
    id_column: Optional[str] = None,
    registry: PolymorphicRegistry = default_registry,
) -> OwnerDeclaration:
    """
    Declare how the owner columns of entity are derived.

    Args:
        entity: Mapped class
        slot: Polymorphic slot the owner rule belongs to
        rule: Constant / FieldAccess / Computed, or a shorthand accepted by
            polyref.owners.coerce_rule
        allow_nil: Clear the owner columns when the rule yields nothing
        immutable: Reject updates that change an already-set owner
        type_column: Owner type column (settings.OWNER_TYPE_COLUMN)
        id_column: Owner id column (settings.OWNER_ID_COLUMN)

    Raises:
        ConfigurationError: missing rule, slot or columns, or invalid options
    """
    owner_rule = coerce_rule(rule)
    _require_mapped(entity)
    _require_reference(entity, slot)
    declare_polymorphic_slot(entity, slot, registry=registry)

    options = _build_options(
        OwnerOptions,
        type_column=type_column,
        id_column=id_column,
        allow_nil=allow_nil,
        immutable=immutable,
    )
    _require_columns(entity, options.type_column, options.id_column)

    declaration = OwnerDeclaration(
        entity=entity.__name__,
        slot=slot,
        rule=owner_rule,
        type_column=options.type_column,
        id_column=options.id_column,
        allow_nil=options.allow_nil,
        immutable=options.immutable,
    )
    registry.register_owner(declaration)
    return declaration


def declare_discriminator(
    entity: Type,
    slot: str,
    kind: Any = DiscriminatorKind.ROLE,
    max_length: Optional[int] = None,
    immutable: bool = False,
    registry: PolymorphicRegistry = default_registry,
) -> DiscriminatorDeclaration:
    """
    Declare a ``<slot>_<kind>`` discriminator column.

    Args:
        entity: Mapped class
        slot: Polymorphic slot the discriminator qualifies
        kind: "role" or "label"
        max_length: Maximum length (settings.DISCRIMINATOR_MAX_LENGTH)
        immutable: Reject updates that change an already-set value

    Raises:
        ConfigurationError: missing slot or column, or invalid options
    """
    _require_mapped(entity)
    _require_reference(entity, slot)
    options = _build_options(DiscriminatorOptions, kind=kind, max_length=max_length, immutable=immutable)

    column = f"{slot}_{options.kind.value}"
    _require_columns(entity, column)

    declaration = DiscriminatorDeclaration(
        entity=entity.__name__,
        slot=slot,
        kind=options.kind,
        column=column,
        max_length=options.max_length,
        immutable=options.immutable,
    )
    registry.register_discriminator(declaration)
    return declaration


def declare_role(entity: Type, slot: str, **kwargs: Any) -> DiscriminatorDeclaration:
    """``<slot>_role`` discriminator, see declare_discriminator."""
    return declare_discriminator(entity, slot, kind=DiscriminatorKind.ROLE, **kwargs)


def declare_label(entity: Type, slot: str, **kwargs: Any) -> DiscriminatorDeclaration:
    """``<slot>_label`` discriminator, see declare_discriminator."""
    return declare_discriminator(entity, slot, kind=DiscriminatorKind.LABEL, **kwargs)


def setup_models(*entities: Type, registry: PolymorphicRegistry = default_registry) -> PolymorphicRegistry:
    """
    Register the relations of every given mapped class.

    Call once at startup, after all classes are defined, so mappers can be
    configured.
    """
    for entity in entities:
        _require_mapped(entity)
        registry.register(entity.__name__, collect_relations(entity))
    logger.info(f"polyref setup complete: {len(entities)} entities")
    return registry


__all__ = [
    "declare_polymorphic_slot",
    "declare_polymorphic_slots",
    "declare_owner_rule",
    "declare_discriminator",
    "declare_role",
    "declare_label",
    "setup_models",
]
