"""
polyref - polymorphic references for SQLAlchemy

A record points at a record of any entity type through a stored
(type, id) column pair. polyref adds:
- validated joins against the referenced type
- role / label discriminators
- derived, optionally immutable owner columns
- schema helpers for the columns and indexes above
"""
from polyref.declarations import (
    declare_discriminator,
    declare_label,
    declare_owner_rule,
    declare_polymorphic_slot,
    declare_polymorphic_slots,
    declare_role,
    setup_models,
)
from polyref.discriminators import for_discriminator, for_label, for_role, normalize
from polyref.exceptions import (
    ConfigurationError,
    InvalidOwnerTypeError,
    OwnerNotPersistedError,
    OwnerRequiredError,
    OwnerResolutionError,
    PolymorphicJoinError,
    PolyrefError,
    RecordInvalid,
    ReferenceNotPersistedError,
)
from polyref.joins import PolymorphicJoin, build_join, get_join_function, joins, select_joined
from polyref.lifecycle import install, validate
from polyref.owners import Computed, Constant, FieldAccess
from polyref.references import PolymorphicReference, polymorphic_inverse
from polyref.registry import PolymorphicRegistry, registry
from polyref.validation import Errors, errors_for

__version__ = "0.1.0"

__all__ = [
    # declarations
    "declare_polymorphic_slot",
    "declare_polymorphic_slots",
    "declare_owner_rule",
    "declare_discriminator",
    "declare_role",
    "declare_label",
    "setup_models",
    # references
    "PolymorphicReference",
    "polymorphic_inverse",
    # joins
    "PolymorphicJoin",
    "build_join",
    "get_join_function",
    "joins",
    "select_joined",
    # owners
    "Constant",
    "FieldAccess",
    "Computed",
    # discriminators
    "normalize",
    "for_discriminator",
    "for_role",
    "for_label",
    # lifecycle / validation
    "install",
    "validate",
    "Errors",
    "errors_for",
    # registry
    "PolymorphicRegistry",
    "registry",
    # errors
    "PolyrefError",
    "ConfigurationError",
    "PolymorphicJoinError",
    "OwnerResolutionError",
    "OwnerNotPersistedError",
    "OwnerRequiredError",
    "InvalidOwnerTypeError",
    "ReferenceNotPersistedError",
    "RecordInvalid",
]
