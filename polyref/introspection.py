"""
polyref/introspection.py

SQLAlchemy mapper introspection: relations, canonical type names, identity
and column history. Everything polyref knows about a mapped class or
instance comes through here.
"""
import logging
from typing import Any, Optional, Set, Tuple, Type

from sqlalchemy import cast, inspect, select
from sqlalchemy.orm import Mapper, object_session
from sqlalchemy.orm.state import InstanceState

from polyref.metadata import Cardinality, InverseRelation

logger = logging.getLogger(__name__)

# info key used to tag an inverse relationship with its polymorphic slot
POLYMORPHIC_AS_KEY = "polymorphic_as"


def is_mapped_class(obj: Any) -> bool:
    """True if obj is a mapped class (not an instance)."""
    if not isinstance(obj, type):
        return False
    return isinstance(inspect(obj, raiseerr=False), Mapper)


def is_mapped_instance(obj: Any) -> bool:
    """True if obj is an instance of a mapped class."""
    if obj is None or isinstance(obj, type):
        return False
    return isinstance(inspect(obj, raiseerr=False), InstanceState)


def base_class(cls: Type) -> Type:
    """
    Top-most mapped class of an inheritance hierarchy.

    Example:
        >>> base_class(SpecialPost)
        <class 'Post'>
    """
    return inspect(cls).base_mapper.class_


def canonical_name(obj: Any) -> str:
    """Canonical (base) type name of a mapped class or instance."""
    cls = obj if isinstance(obj, type) else type(obj)
    return base_class(cls).__name__


def is_persisted(instance: Any) -> bool:
    """True once the instance has been flushed and owns an identity key."""
    return inspect(instance).has_identity


def identity_of(instance: Any) -> Any:
    """
    Identifier of a persisted instance.

    Single-column primary keys return the scalar value; composite keys
    return the identity tuple.
    """
    identity = inspect(instance).identity
    if identity is None:
        return None
    if len(identity) == 1:
        return identity[0]
    return identity


def primary_key_column(cls: Type):
    """Primary key column of the base table of cls."""
    mapper = inspect(base_class(cls))
    return mapper.primary_key[0]


def mapped_column_of(cls: Type, key: str):
    """Column mapped to attribute key of cls."""
    return inspect(cls).columns[key]


def python_type_of(column) -> Optional[type]:
    try:
        return column.type.python_type
    except NotImplementedError:
        return None


def coerce_for_column(column, value: Any) -> Any:
    """
    Convert value to the Python type of column.

    An integer identifier written into a String id column becomes "1".
    Composite identities, untyped columns and unconvertible values pass
    through unchanged.

    Example:
        >>> coerce_for_column(Badge.__table__.c.owner_id, 1)
        '1'
    """
    if value is None or isinstance(value, tuple):
        return value
    target = python_type_of(column)
    if target is None or isinstance(value, target):
        return value
    try:
        return target(value)
    except (TypeError, ValueError):
        return value


def comparable_key(pk_column, id_column):
    """pk_column, cast to the type of id_column when their Python types differ."""
    if python_type_of(pk_column) != python_type_of(id_column):
        return cast(pk_column, id_column.type)
    return pk_column


def column_keys(cls: Type) -> Set[str]:
    """Attribute keys of every mapped column on cls."""
    return set(inspect(cls).columns.keys())


def collect_relations(cls: Type) -> Tuple[InverseRelation, ...]:
    """
    Read the declared relations of a mapped class.

    Args:
        cls: SQLAlchemy mapped class

    Returns:
        InverseRelation tuple, ordered by attribute name. Relations built with
        polyref.references.polymorphic_inverse carry their slot tag in ``as_``.
    """
    mapper = inspect(cls)
    relations = []
    for rel_name, relationship in mapper.relationships.items():
        target_class = relationship.mapper.class_
        relations.append(InverseRelation(
            name=rel_name,
            target_entity=target_class.__name__,
            cardinality=Cardinality.MANY if relationship.uselist else Cardinality.ONE,
            as_=relationship.info.get(POLYMORPHIC_AS_KEY),
        ))
    relations.sort(key=lambda r: r.name)
    return tuple(relations)


def find_mapped_class(anchor: Type, name: str) -> Optional[Type]:
    """
    Look up a mapped class by name in the declarative registry of anchor.

    Base classes win over subclasses sharing a name.
    """
    found = None
    for mapper in inspect(anchor).registry.mappers:
        if mapper.class_.__name__ != name:
            continue
        if mapper.base_mapper is mapper:
            return mapper.class_
        found = found or mapper.class_
    return found


def pending_change(record: Any, key: str) -> Tuple[bool, Any, Any]:
    """
    Compare the pending value of a column attribute with its persisted value.

    Returns:
        (changed, persisted_value, pending_value)
    """
    history = inspect(record).attrs[key].history
    current = getattr(record, key)
    if not history.has_changes():
        return False, current, current

    if history.deleted:
        previous = history.deleted[0]
    else:
        # old value was never loaded (expired); read it from the database
        previous = _load_persisted_value(record, key)
    return previous != current, previous, current


def _load_persisted_value(record: Any, key: str) -> Any:
    session = object_session(record)
    state = inspect(record)
    if session is None or state.identity is None:
        return None
    cls = type(record)
    mapper = state.mapper
    pk_clauses = [
        getattr(cls, mapper.get_property_by_column(col).key) == value
        for col, value in zip(mapper.primary_key, state.identity)
    ]
    stmt = select(getattr(cls, key)).where(*pk_clauses)
    logger.debug(f"Loading persisted {cls.__name__}.{key} for {state.identity}")
    return session.execute(stmt).scalar_one_or_none()


__all__ = [
    "POLYMORPHIC_AS_KEY",
    "is_mapped_class",
    "is_mapped_instance",
    "base_class",
    "canonical_name",
    "is_persisted",
    "identity_of",
    "primary_key_column",
    "mapped_column_of",
    "coerce_for_column",
    "comparable_key",
    "column_keys",
    "collect_relations",
    "find_mapped_class",
    "pending_change",
]
