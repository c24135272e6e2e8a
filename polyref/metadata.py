"""
polyref/metadata.py

Metadata definitions for polymorphic slots, their inverse relations and the
owner / discriminator declarations attached to them.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from polyref.config import settings


class Cardinality(str, Enum):
    """Cardinality of an inverse relation"""
    ONE = "one"      # has_one
    MANY = "many"    # has_many


class DiscriminatorKind(str, Enum):
    """Discriminator column flavours: <slot>_role / <slot>_label"""
    ROLE = "role"
    LABEL = "label"


@dataclass(frozen=True)
class InverseRelation:
    """
    A relation declared on a candidate target, tagged with a slot name.

    Attributes:
        name: Attribute name on the declaring class (e.g. "comments")
        target_entity: Entity the relation points at (e.g. "Comment")
        cardinality: ONE or MANY
        as_: Polymorphic slot tag, None for ordinary relations
    """
    name: str
    target_entity: str
    cardinality: Cardinality
    as_: Optional[str] = None

    @property
    def is_polymorphic_inverse(self) -> bool:
        return self.as_ is not None


@dataclass(frozen=True)
class PolymorphicSlot:
    """
    A polymorphic belongs-relation stored as a (type, id) column pair.

    Attributes:
        entity: Declaring entity name
        name: Slot name (e.g. "commentable")
        type_column: Column holding the canonical type name
        id_column: Column holding the target identifier
        nullable: Whether both columns accept NULL
    """
    entity: str
    name: str
    type_column: str
    id_column: str
    nullable: bool = True

    @property
    def columns(self) -> Tuple[str, str]:
        return (self.type_column, self.id_column)


@dataclass(frozen=True)
class OwnerDeclaration:
    """An owner rule bound to a polymorphic slot."""
    entity: str
    slot: str
    rule: Any  # polyref.owners.OwnerRule
    type_column: str
    id_column: str
    allow_nil: bool = True
    immutable: bool = False

    @property
    def columns(self) -> Tuple[str, str]:
        return (self.type_column, self.id_column)


@dataclass(frozen=True)
class DiscriminatorDeclaration:
    """A role / label column attached to a polymorphic slot."""
    entity: str
    slot: str
    kind: DiscriminatorKind
    column: str
    max_length: int
    immutable: bool = False


# ============== Declaration options ==============

class OwnerOptions(BaseModel):
    """Options accepted by declare_owner_rule"""
    model_config = ConfigDict(frozen=True)

    type_column: str = Field(default_factory=lambda: settings.OWNER_TYPE_COLUMN, min_length=1)
    id_column: str = Field(default_factory=lambda: settings.OWNER_ID_COLUMN, min_length=1)
    allow_nil: bool = True
    immutable: bool = False


class DiscriminatorOptions(BaseModel):
    """Options accepted by declare_discriminator"""
    model_config = ConfigDict(frozen=True)

    kind: DiscriminatorKind = DiscriminatorKind.ROLE
    max_length: int = Field(default_factory=lambda: settings.DISCRIMINATOR_MAX_LENGTH, ge=1)
    immutable: bool = False


__all__ = [
    "Cardinality",
    "DiscriminatorKind",
    "InverseRelation",
    "PolymorphicSlot",
    "OwnerDeclaration",
    "DiscriminatorDeclaration",
    "OwnerOptions",
    "DiscriminatorOptions",
]
