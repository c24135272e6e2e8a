"""
polyref/registry.py

Association metadata registry - process-wide store of everything declared
about polymorphic slots: the relations each entity exposes, the slots it
declares, their owner rules, discriminators and bound join functions.

Populated at startup, read-only afterwards. Late registration is allowed:
writers take a lock and swap in a fresh copy of the affected table, readers
never lock.
"""
import logging
import threading
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Type

from polyref.exceptions import ConfigurationError
from polyref.metadata import (
    DiscriminatorDeclaration,
    InverseRelation,
    OwnerDeclaration,
    PolymorphicSlot,
)

logger = logging.getLogger(__name__)


class PolymorphicRegistry:
    """
    Polymorphic metadata registry - singleton

    Holds, per entity name:
    - declared relations (for inverse lookups)
    - polymorphic slots
    - owner declarations
    - discriminator declarations
    - bound join functions (one per slot)

    Example:
        >>> registry = PolymorphicRegistry()
        >>> registry.register("Post", collect_relations(Post))
        >>> registry.has_inverse("Post", "commentable", "Comment")
        True
    """

    _instance: Optional["PolymorphicRegistry"] = None

    def __new__(cls) -> "PolymorphicRegistry":
        """Singleton - one registry per process"""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._lock = threading.Lock()
            cls._instance._init_tables()
        return cls._instance

    def _init_tables(self) -> None:
        self._relations: Dict[str, Tuple[InverseRelation, ...]] = {}
        self._slots: Dict[str, Dict[str, PolymorphicSlot]] = {}
        self._owners: Dict[str, Tuple[OwnerDeclaration, ...]] = {}
        self._discriminators: Dict[str, Tuple[DiscriminatorDeclaration, ...]] = {}
        self._joins: Dict[Tuple[str, str], Callable] = {}
        # (source class, slot, target class) -> PolymorphicJoin
        self._built_joins: Dict[Tuple[Type, str, Any], Any] = {}

    def _swap(self, table: str, key: Any, value: Any) -> None:
        """Copy-on-write update of one table; caller holds the lock."""
        updated = dict(getattr(self, table))
        updated[key] = value
        setattr(self, table, updated)

    # Registration

    def register(self, entity: str, relations: Iterable[InverseRelation]) -> "PolymorphicRegistry":
        """
        Register the relations declared by an entity.

        Args:
            entity: Entity name
            relations: Relations read from the entity's mapper

        Returns:
            self (for fluent API)

        Raises:
            ConfigurationError: entity already registered with different relations
        """
        relations = tuple(relations)
        with self._lock:
            existing = self._relations.get(entity)
            if existing is not None:
                if set(existing) != set(relations):
                    raise ConfigurationError(
                        f"{entity} is already registered with different relations"
                    )
                return self
            self._swap("_relations", entity, relations)
        logger.info(f"Registered {entity} ({len(relations)} relations)")
        return self

    def register_slot(self, slot: PolymorphicSlot) -> "PolymorphicRegistry":
        """
        Register a polymorphic slot. Re-registering an identical slot is a no-op.

        Raises:
            ConfigurationError: slot already registered with a different shape
        """
        with self._lock:
            slots = self._slots.get(slot.entity, {})
            existing = slots.get(slot.name)
            if existing is not None:
                if existing != slot:
                    raise ConfigurationError(
                        f"{slot.entity}.{slot.name} is already declared with a different configuration"
                    )
                return self
            updated = dict(slots)
            updated[slot.name] = slot
            self._swap("_slots", slot.entity, updated)
        logger.info(f"Registered polymorphic slot {slot.entity}.{slot.name}")
        return self

    def register_owner(self, declaration: OwnerDeclaration) -> "PolymorphicRegistry":
        """Register an owner rule; identical re-declaration is a no-op."""
        with self._lock:
            owners = self._owners.get(declaration.entity, ())
            for existing in owners:
                if existing == declaration:
                    return self
                if existing.columns == declaration.columns:
                    raise ConfigurationError(
                        f"{declaration.entity} already declares an owner rule writing "
                        f"{declaration.type_column}/{declaration.id_column}"
                    )
            self._swap("_owners", declaration.entity, owners + (declaration,))
        logger.info(
            f"Registered owner rule {declaration.entity}.{declaration.slot} -> "
            f"{declaration.type_column}/{declaration.id_column}"
        )
        return self

    def register_discriminator(self, declaration: DiscriminatorDeclaration) -> "PolymorphicRegistry":
        """Register a role / label declaration; identical re-declaration is a no-op."""
        with self._lock:
            declarations = self._discriminators.get(declaration.entity, ())
            for existing in declarations:
                if existing == declaration:
                    return self
                if existing.column == declaration.column:
                    raise ConfigurationError(
                        f"{declaration.entity}.{declaration.column} is already declared "
                        f"with a different configuration"
                    )
            self._swap("_discriminators", declaration.entity, declarations + (declaration,))
        logger.info(f"Registered {declaration.kind.value} column {declaration.entity}.{declaration.column}")
        return self

    def bind_join(self, entity: str, slot: str, join_fn: Callable) -> Callable:
        """
        Store the join function of a slot, once.

        Returns:
            The stored function (the first one bound wins)
        """
        with self._lock:
            existing = self._joins.get((entity, slot))
            if existing is not None:
                return existing
            self._swap("_joins", (entity, slot), join_fn)
        return join_fn

    def store_built_join(self, key: Tuple[Type, str, Any], join: Any) -> Any:
        """
        Cache a built join under (source, slot, target).

        Returns:
            The cached join (the first one stored wins)
        """
        with self._lock:
            existing = self._built_joins.get(key)
            if existing is not None:
                return existing
            self._swap("_built_joins", key, join)
        return join

    def clear_built_joins(self) -> None:
        with self._lock:
            self._built_joins = {}

    # Getters

    def is_registered(self, entity: str) -> bool:
        return entity in self._relations

    def get_relations(self, entity: str) -> List[InverseRelation]:
        return list(self._relations.get(entity, ()))

    def has_inverse(self, target: str, slot: str, source: str) -> bool:
        """
        True iff target declares a relation tagged ``as_=slot`` pointing at source.

        Args:
            target: Candidate target entity name
            slot: Polymorphic slot name
            source: Entity declaring the slot
        """
        for relation in self._relations.get(target, ()):
            if relation.as_ != slot:
                continue
            if relation.target_entity == source:
                return True
        return False

    def get_slot(self, entity: str, slot: str) -> Optional[PolymorphicSlot]:
        return self._slots.get(entity, {}).get(slot)

    def get_slots(self, entity: str) -> List[PolymorphicSlot]:
        return list(self._slots.get(entity, {}).values())

    def get_owners(self, entity: str) -> List[OwnerDeclaration]:
        return list(self._owners.get(entity, ()))

    def get_discriminators(self, entity: str) -> List[DiscriminatorDeclaration]:
        return list(self._discriminators.get(entity, ()))

    def get_join(self, entity: str, slot: str) -> Optional[Callable]:
        return self._joins.get((entity, slot))

    def get_built_join(self, key: Tuple[Type, str, Any]) -> Any:
        return self._built_joins.get(key)

    def declarations_for(self, cls: Type) -> Tuple[List[OwnerDeclaration], List[DiscriminatorDeclaration]]:
        """
        Owner and discriminator declarations that apply to instances of cls.

        Declarations made on a superclass apply to its subclasses.
        """
        owners: List[OwnerDeclaration] = []
        discriminators: List[DiscriminatorDeclaration] = []
        for klass in cls.__mro__:
            owners.extend(self._owners.get(klass.__name__, ()))
            discriminators.extend(self._discriminators.get(klass.__name__, ()))
        return owners, discriminators

    def export_schema(self) -> Dict[str, Any]:
        """
        Export registered metadata as a JSON-serializable dict.

        Returns:
            {entity: {"relations": [...], "slots": [...], "owners": [...], "discriminators": [...]}}
        """
        entities = set(self._relations) | set(self._slots) | set(self._owners) | set(self._discriminators)
        schema: Dict[str, Any] = {}
        for entity in sorted(entities):
            schema[entity] = {
                "relations": [
                    {
                        "name": rel.name,
                        "target_entity": rel.target_entity,
                        "cardinality": rel.cardinality.value,
                        "as": rel.as_,
                    }
                    for rel in self._relations.get(entity, ())
                ],
                "slots": [
                    {
                        "name": slot.name,
                        "type_column": slot.type_column,
                        "id_column": slot.id_column,
                        "nullable": slot.nullable,
                    }
                    for slot in self._slots.get(entity, {}).values()
                ],
                "owners": [
                    {
                        "slot": owner.slot,
                        "type_column": owner.type_column,
                        "id_column": owner.id_column,
                        "allow_nil": owner.allow_nil,
                        "immutable": owner.immutable,
                    }
                    for owner in self._owners.get(entity, ())
                ],
                "discriminators": [
                    {
                        "slot": d.slot,
                        "kind": d.kind.value,
                        "column": d.column,
                        "max_length": d.max_length,
                        "immutable": d.immutable,
                    }
                    for d in self._discriminators.get(entity, ())
                ],
            }
        return schema

    def clear(self) -> None:
        """
        Drop every registration and built join (for tests).

        Warning:
            Only meant for test environments.
        """
        with self._lock:
            self._init_tables()


# Global registry instance
registry = PolymorphicRegistry()


__all__ = ["PolymorphicRegistry", "registry"]
