"""
polyref/references.py

The two halves of a polymorphic association:

- PolymorphicReference: the belongs-side descriptor backed by a
  ``<slot>_type`` / ``<slot>_id`` column pair
- polymorphic_inverse(): the has-many / has-one side, a view-only
  relationship tagged with the slot it answers to
"""
import logging
from typing import Any, Optional, Type, Union

from sqlalchemy import and_
from sqlalchemy.orm import foreign, object_session, relationship

from polyref.exceptions import ConfigurationError, ReferenceNotPersistedError
from polyref.introspection import (
    POLYMORPHIC_AS_KEY,
    canonical_name,
    coerce_for_column,
    comparable_key,
    find_mapped_class,
    identity_of,
    is_mapped_instance,
    is_persisted,
    mapped_column_of,
    primary_key_column,
)

logger = logging.getLogger(__name__)


class PolymorphicReference:
    """
    Polymorphic belongs-relation.

    Reading loads the referenced record through the owning session and
    returns None when either column is NULL or the row no longer exists.
    Writing stores the canonical base type name and identifier of a
    persisted record.

    Example:
        >>> class Comment(Base):
        ...     commentable_type = Column(String(255))
        ...     commentable_id = Column(Integer)
        ...     commentable = PolymorphicReference()
    """

    def __init__(self, type_column: Optional[str] = None, id_column: Optional[str] = None):
        self.name: Optional[str] = None
        self.type_column = type_column
        self.id_column = id_column

    def __set_name__(self, owner: Type, name: str) -> None:
        self.name = name
        self.type_column = self.type_column or f"{name}_type"
        self.id_column = self.id_column or f"{name}_id"

    def __get__(self, instance: Any, owner: Type) -> Any:
        if instance is None:
            return self
        type_name = getattr(instance, self.type_column)
        target_id = getattr(instance, self.id_column)
        if type_name is None or target_id is None:
            return None

        target_cls = find_mapped_class(type(instance), type_name)
        if target_cls is None:
            logger.warning(f"{type(instance).__name__}.{self.name}: unknown type {type_name!r}")
            return None

        session = object_session(instance)
        if session is None:
            return None
        return session.get(target_cls, coerce_for_column(primary_key_column(target_cls), target_id))

    def __set__(self, instance: Any, value: Any) -> None:
        if value is None:
            setattr(instance, self.type_column, None)
            setattr(instance, self.id_column, None)
            return
        if not is_mapped_instance(value):
            raise TypeError(
                f"{self.name} expects a mapped entity instance, got {type(value).__name__}"
            )
        if not is_persisted(value):
            raise ReferenceNotPersistedError(
                f"Cannot assign unsaved {type(value).__name__} to {type(instance).__name__}.{self.name}; "
                f"flush it first"
            )
        setattr(instance, self.type_column, canonical_name(value))
        id_column = mapped_column_of(type(instance), self.id_column)
        setattr(instance, self.id_column, coerce_for_column(id_column, identity_of(value)))

    def __repr__(self) -> str:
        return f"PolymorphicReference({self.name!r})"


def polymorphic_inverse(source: Union[str, Type], as_: str, uselist: bool = True, **kwargs):
    """
    Inverse side of a polymorphic slot.

    Builds a view-only relationship from the declaring class to ``source``
    rows whose ``<as_>_type`` names the declaring class's base type and whose
    ``<as_>_id`` equals its primary key. The slot name is kept in the
    relationship's ``info`` so the registry can find it.

    Args:
        source: Class (or class name) declaring the polymorphic slot
        as_: Slot name on source
        uselist: True for has-many, False for has-one
        **kwargs: Passed through to relationship()

    Example:
        >>> class Post(Base):
        ...     comments = polymorphic_inverse("Comment", as_="commentable")
    """
    info = dict(kwargs.pop("info", None) or {})
    info[POLYMORPHIC_AS_KEY] = as_
    kwargs.setdefault("viewonly", True)

    prop = None

    def _primaryjoin():
        owner = prop.parent.class_
        source_cls = source if isinstance(source, type) else find_mapped_class(owner, source)
        if source_cls is None:
            raise ConfigurationError(f"{owner.__name__}: unknown polymorphic source {source!r}")
        id_column = mapped_column_of(source_cls, f"{as_}_id")
        return and_(
            comparable_key(primary_key_column(owner), id_column) == foreign(getattr(source_cls, f"{as_}_id")),
            getattr(source_cls, f"{as_}_type") == canonical_name(owner),
        )

    prop = relationship(source, primaryjoin=_primaryjoin, uselist=uselist, info=info, **kwargs)
    return prop


__all__ = ["PolymorphicReference", "polymorphic_inverse"]
