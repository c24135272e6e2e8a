"""
polyref/lifecycle.py

Before-persistence pipeline, hooked into SQLAlchemy's ``before_flush``
session event.

For every new or dirty record with declarations:
1. owner rules are resolved into their owner columns
2. discriminators are normalized and validated
3. on update only, immutable owners / discriminators are guarded

Resolution errors propagate and abort the flush. Validation failures are
collected on the record and abort the flush with RecordInvalid.
"""
import logging
import weakref
from typing import Any

from sqlalchemy import event
from sqlalchemy.orm import Session

from polyref.discriminators import apply_discriminator
from polyref.exceptions import RecordInvalid
from polyref.immutability import FIELD_IMMUTABLE_MESSAGE, check_immutable
from polyref.introspection import is_persisted
from polyref.owners import apply_owner
from polyref.registry import PolymorphicRegistry, registry as default_registry
from polyref.validation import Errors, errors_for

logger = logging.getLogger(__name__)

# Session classes, sessionmakers and sessions the listener is attached to
_installed = weakref.WeakSet()


def run_callbacks(record: Any, registry: PolymorphicRegistry = default_registry) -> Errors:
    """
    Run the before-persistence pipeline for one record.

    Returns:
        The record's Errors (empty when valid)

    Raises:
        OwnerResolutionError: an owner rule could not be resolved
    """
    owners, discriminators = registry.declarations_for(type(record))
    errors = errors_for(record)
    errors.clear()

    for owner in owners:
        apply_owner(record, owner)

    for discriminator in discriminators:
        apply_discriminator(record, discriminator, errors)

    if is_persisted(record):
        for owner in owners:
            if owner.immutable:
                check_immutable(record, owner.columns, errors)
        for discriminator in discriminators:
            if discriminator.immutable:
                check_immutable(
                    record,
                    [discriminator.column],
                    errors,
                    attribute=discriminator.column,
                    message=FIELD_IMMUTABLE_MESSAGE,
                )
    return errors


def validate(record: Any, registry: PolymorphicRegistry = default_registry) -> bool:
    """
    Run the pipeline without flushing.

    Returns:
        True when the record is valid; see errors_for(record) otherwise
    """
    return not run_callbacks(record, registry=registry)


def before_flush(session: Session, flush_context: Any, instances: Any) -> None:
    """``before_flush`` listener: validate every new and dirty record."""
    for record in list(session.new) + list(session.dirty):
        owners, discriminators = default_registry.declarations_for(type(record))
        if not owners and not discriminators:
            continue
        errors = run_callbacks(record)
        if errors:
            logger.debug(f"Flush aborted, invalid {type(record).__name__}: {errors.full_messages}")
            raise RecordInvalid(record, errors)


def install(target: Any = Session) -> None:
    """
    Attach the pipeline to a Session class, sessionmaker or session.

    Installing twice on the same target is a no-op.
    """
    if target in _installed:
        return
    event.listen(target, "before_flush", before_flush)
    _installed.add(target)
    logger.info(f"polyref lifecycle installed on {target!r}")


def uninstall(target: Any = Session) -> None:
    if target not in _installed:
        return
    event.remove(target, "before_flush", before_flush)
    _installed.discard(target)


__all__ = ["run_callbacks", "validate", "before_flush", "install", "uninstall"]
