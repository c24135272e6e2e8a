"""
tests/test_immutability.py

Immutability guard for owner columns and discriminators.
"""
import pytest
from sqlalchemy import inspect

from polyref import (
    Computed,
    RecordInvalid,
    declare_owner_rule,
    declare_polymorphic_slots,
    declare_role,
    errors_for,
    validate,
)
from polyref.immutability import FIELD_IMMUTABLE_MESSAGE, OWNER_IMMUTABLE_MESSAGE, check_immutable
from polyref.validation import BASE, Errors

from tests.models import Badge, Tagging, Voucher, ledger_account


@pytest.fixture
def immutable_owner():
    return declare_owner_rule(Voucher, "resource", Computed(ledger_account), immutable=True)


@pytest.fixture
def immutable_role(clean_registry):
    clean_registry.clear()
    declare_polymorphic_slots(Tagging)
    return declare_role(Tagging, "taggable", immutable=True)


class TestImmutableOwner:

    def test_insert_allowed(self, immutable_owner, make):
        voucher = make.voucher()
        assert voucher.owner_type == "Account"

    def test_owner_change_rejected(self, immutable_owner, db_session, make):
        voucher = make.voucher()
        voucher.ledger = make.ledger()

        with pytest.raises(RecordInvalid) as exc:
            db_session.flush()

        assert exc.value.record is voucher
        assert errors_for(voucher)[BASE] == [OWNER_IMMUTABLE_MESSAGE]
        assert str(exc.value) == f"Validation failed for Voucher: {OWNER_IMMUTABLE_MESSAGE}"

    def test_validate_reports_change(self, immutable_owner, make):
        voucher = make.voucher()
        voucher.ledger = make.ledger()

        assert not validate(voucher)
        assert errors_for(voucher).full_messages == [OWNER_IMMUTABLE_MESSAGE]

    def test_change_after_commit_rejected(self, immutable_owner, db_session, make):
        voucher = make.voucher()
        other = make.ledger()
        db_session.commit()

        voucher.ledger = other

        with pytest.raises(RecordInvalid):
            db_session.flush()

    def test_same_owner_allowed(self, immutable_owner, db_session, make):
        voucher = make.voucher()
        # new ledger, same account
        voucher.ledger = make.ledger(account=voucher.ledger.account)
        db_session.flush()
        assert errors_for(voucher).to_dict() == {}

    def test_unrelated_update_allowed(self, immutable_owner, db_session, make):
        voucher = make.voucher()
        voucher.note = "updated"
        db_session.flush()
        assert voucher.note == "updated"

    def test_nil_owner_may_be_set(self, immutable_owner, db_session, make):
        voucher = make.voucher(ledger=make.ledger(account=None))
        assert voucher.owner_id is None

        voucher.ledger = make.ledger()
        db_session.flush()

        assert voucher.owner_type == "Account"

    def test_mutable_owner_follows_rule(self, db_session, make):
        declare_owner_rule(Voucher, "resource", Computed(ledger_account))
        voucher = make.voucher()
        other = make.ledger()

        voucher.ledger = other
        db_session.flush()

        assert voucher.owner_id == other.account.id


@pytest.fixture
def immutable_badge_owner():
    return declare_owner_rule(Badge, "holder", Computed(ledger_account), immutable=True)


class TestStringIdColumns:
    """Owner pair stored in String columns while the owner key is an Integer."""

    def test_owner_id_stored_as_string(self, immutable_badge_owner, make):
        badge = make.badge()
        assert badge.owner_id == str(badge.ledger.account.id)
        assert badge.holder_id == str(badge.holder.id)

    def test_reloaded_owner_is_unchanged(self, immutable_badge_owner, db_session, make):
        badge = make.badge()
        db_session.commit()

        assert validate(badge)
        assert not inspect(badge).attrs.owner_id.history.has_changes()

    def test_unrelated_update_after_reload(self, immutable_badge_owner, db_session, make):
        badge = make.badge()
        db_session.commit()

        badge.note = "unrelated"
        db_session.flush()

        assert len(errors_for(badge)) == 0
        assert badge.note == "unrelated"

    def test_owner_change_rejected(self, immutable_badge_owner, db_session, make):
        badge = make.badge()
        db_session.commit()

        badge.ledger = make.ledger()

        with pytest.raises(RecordInvalid):
            db_session.flush()
        assert errors_for(badge)[BASE] == [OWNER_IMMUTABLE_MESSAGE]

class TestImmutableDiscriminator:

    def test_change_rejected(self, immutable_role, db_session, make):
        tagging = make.tagging(role="primary")
        tagging.taggable_role = "secondary"

        with pytest.raises(RecordInvalid):
            db_session.flush()

        errors = errors_for(tagging)
        assert errors["taggable_role"] == [FIELD_IMMUTABLE_MESSAGE]
        assert BASE not in errors

    def test_normalized_same_value_allowed(self, immutable_role, db_session, make):
        tagging = make.tagging(role="primary")
        tagging.taggable_role = "  PRIMARY "
        db_session.flush()
        assert tagging.taggable_role == "primary"


class TestCheckImmutable:

    def test_new_record_passes(self, make):
        voucher = make.voucher(save=False)
        voucher.owner_type = "Account"
        errors = Errors()
        assert check_immutable(voucher, ["owner_type"], errors)
        assert len(errors) == 0

    def test_unchanged_passes(self, make):
        voucher = make.voucher(note="a")
        errors = Errors()
        assert check_immutable(voucher, ["note"], errors)

    def test_changed_fails(self, make):
        voucher = make.voucher(note="a")
        voucher.note = "b"
        errors = Errors()
        assert not check_immutable(voucher, ["note"], errors, attribute="note", message="frozen")
        assert errors["note"] == ["frozen"]

    def test_null_may_be_filled(self, make):
        voucher = make.voucher()
        voucher.note = "first"
        errors = Errors()
        assert check_immutable(voucher, ["note"], errors)
