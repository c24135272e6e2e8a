"""
polyref/joins.py

Polymorphic join builder - turns (source, slot, target) into

    source.<slot>_id = target.id AND source.<slot>_type = '<Target>'

after checking that the target declares the matching inverse relation.
Built clauses are composable with further ``.where()`` filters.
"""
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Type

import inflect
from sqlalchemy import and_, select
from sqlalchemy.sql import Select

from polyref.exceptions import PolymorphicJoinError
from polyref.introspection import (
    base_class,
    canonical_name,
    collect_relations,
    comparable_key,
    is_mapped_class,
    mapped_column_of,
    primary_key_column,
)
from polyref.registry import PolymorphicRegistry, registry as default_registry

logger = logging.getLogger(__name__)

_inflect = inflect.engine()


@dataclass(frozen=True, eq=False)
class PolymorphicJoin:
    """
    A validated polymorphic join.

    Attributes:
        source: Class declaring the slot
        slot: Slot name
        target: Base class of the requested target (the joined table)
        onclause: ON clause of the join
    """
    source: Type
    slot: str
    target: Type
    onclause: Any

    def apply(self, stmt: Select, isouter: bool = False) -> Select:
        """Add this join to a select() statement."""
        return stmt.join(self.target, self.onclause, isouter=isouter)

    def select(self, *entities: Any) -> Select:
        """select(source) (or the given entities) joined to the target."""
        return self.apply(select(*(entities or (self.source,))))


def collection_name(entity_name: str) -> str:
    """
    Conventional collection attribute name for an entity.

    Example:
        >>> collection_name("BlogComment")
        'blog_comments'
        >>> collection_name("Category")
        'categories'
    """
    snake = re.sub(r"(?<!^)(?=[A-Z])", "_", entity_name).lower()
    return _inflect.plural(snake)


def build_join(
    source: Type,
    slot: str,
    target: Any,
    registry: PolymorphicRegistry = default_registry,
) -> PolymorphicJoin:
    """
    Build the join from source's polymorphic slot to target.

    Args:
        source: Mapped class declaring the slot
        slot: Slot name (must have been declared on source)
        target: Mapped class to join against
        registry: Registry to consult

    Returns:
        PolymorphicJoin

    Raises:
        PolymorphicJoinError: target is not a mapped class, the slot is not
            declared, or target does not declare the inverse relation
    """
    key = (source, slot, target)
    cached = registry.get_built_join(key)
    if cached is not None:
        return cached

    source_name = source.__name__
    target_name = getattr(target, "__name__", repr(target))

    if not is_mapped_class(target):
        raise PolymorphicJoinError(
            source=source_name, slot=slot, target=target_name,
            reason=f"Expected a mapped entity class, got {target_name}",
        )

    slot_meta = registry.get_slot(source_name, slot)
    if slot_meta is None:
        raise PolymorphicJoinError(
            source=source_name, slot=slot, target=target_name,
            reason=f"{source_name} does not declare polymorphic slot {slot!r}",
        )

    if not registry.is_registered(target_name):
        registry.register(target_name, collect_relations(target))

    base = base_class(target)
    if not registry.has_inverse(target_name, slot, source_name):
        declaration = f"{collection_name(source_name)} = polymorphic_inverse({source_name!r}, as_={slot!r})"
        logger.warning(f"Rejected join {source_name}.{slot} -> {base.__name__}: missing {declaration}")
        raise PolymorphicJoinError(
            source=source_name, slot=slot, target=base.__name__,
            reason="missing inverse relation",
            missing_declaration=declaration,
        )

    id_column = mapped_column_of(source, slot_meta.id_column)
    onclause = and_(
        getattr(source, slot_meta.id_column) == comparable_key(primary_key_column(base), id_column),
        getattr(source, slot_meta.type_column) == canonical_name(base),
    )
    join = PolymorphicJoin(source=source, slot=slot, target=base, onclause=onclause)
    join = registry.store_built_join(key, join)
    logger.debug(f"Built join {source_name}.{slot} -> {base.__name__}")
    return join


def make_join_function(source: Type, slot: str, registry: PolymorphicRegistry = default_registry) -> Callable:
    """
    Join function bound to one slot, e.g. ``joins_commentable(Post)``.
    """
    def join_fn(target: Any) -> PolymorphicJoin:
        return build_join(source, slot, target, registry=registry)

    join_fn.__name__ = f"joins_{slot}"
    join_fn.__qualname__ = f"{source.__name__}.joins_{slot}"
    return join_fn


def get_join_function(source: Type, slot: str, registry: PolymorphicRegistry = default_registry) -> Callable:
    """
    Look up the join function declared for source's slot.

    Raises:
        PolymorphicJoinError: the slot was never declared
    """
    join_fn = registry.get_join(source.__name__, slot)
    if join_fn is None:
        raise PolymorphicJoinError(
            source=source.__name__, slot=slot, target="",
            reason=f"{source.__name__} does not declare polymorphic slot {slot!r}",
        )
    return join_fn


def joins(source: Type, slot: str, target: Any, registry: PolymorphicRegistry = default_registry) -> PolymorphicJoin:
    """Shorthand for ``get_join_function(source, slot)(target)``."""
    return get_join_function(source, slot, registry=registry)(target)


def select_joined(source: Type, slot: str, target: Any, registry: PolymorphicRegistry = default_registry) -> Select:
    """
    ``select(source)`` joined to target through slot.

    Example:
        >>> stmt = select_joined(Comment, "commentable", Post).where(Post.id == post.id)
        >>> session.scalars(stmt).all()
    """
    return joins(source, slot, target, registry=registry).select()


def clear_join_cache(registry: PolymorphicRegistry = default_registry) -> None:
    """Forget every built join (for tests)."""
    registry.clear_built_joins()


__all__ = [
    "PolymorphicJoin",
    "build_join",
    "make_join_function",
    "get_join_function",
    "joins",
    "select_joined",
    "collection_name",
    "clear_join_cache",
]
