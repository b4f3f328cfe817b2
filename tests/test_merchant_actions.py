"""Tests for merchant linking, hiding and partner pipeline actions."""

from datetime import date

import pytest

from exceptions import IneligiblePartnerError, PartnerNotFoundError, ValidationError
from merchant_actions import (
    append_partner_alias,
    assign_merchant_to_partner,
    create_partner_from_merchant,
    hide_merchant,
    unlink_merchant,
    update_partner_status,
)
from models import Partner, PartnerStatus, Transaction
from store import SQLiteRecordStore
from utils import to_calendar_date


@pytest.fixture
def store(tmp_path):
    db = SQLiteRecordStore(str(tmp_path / "test.db"))
    yield db
    db.close()


def add_partner(store, name="Blacklane", status=PartnerStatus.SIGNED, signed_at="2024-03-05", aliases=None):
    return store.create_partner(Partner(
        id="", name=name, status=status, signed_at=signed_at, commission="10%", aliases=aliases or [],
    ))


def add_tx(store, day, merchant="Blacklane", upload_id="u1", partner_id=None, hidden=False):
    return store.create_transaction(Transaction(
        id=None,
        upload_id=upload_id,
        date=date(2024, 3, day),
        merchant_raw=merchant.upper(),
        merchant_normalised=merchant,
        amount=1000,
        partner_id=partner_id,
        is_hidden=hidden,
    ))


# ============================================================================
# Aliases
# ============================================================================

def test_append_alias(store):
    """Test appending a new alias."""
    partner = add_partner(store, aliases=["BLACKLANE"])
    updated = append_partner_alias(store, partner.id, "BLACKLANEGMBH")
    assert updated.aliases == ["BLACKLANE", "BLACKLANEGMBH"]


def test_append_alias_is_case_insensitive(store):
    """Test that an alias differing only in case is not added twice."""
    partner = add_partner(store, aliases=["BLACKLANE"])
    updated = append_partner_alias(store, partner.id, "blacklane")
    assert updated.aliases == ["BLACKLANE"]


def test_append_empty_alias_rejected(store):
    """Test that a blank alias is rejected."""
    partner = add_partner(store)
    with pytest.raises(ValidationError):
        append_partner_alias(store, partner.id, "  ")


# ============================================================================
# Assign / unlink / hide
# ============================================================================

def test_assign_links_eligible_transactions_across_uploads(store):
    """Test assigning a merchant across uploads, eligible rows only."""
    partner = add_partner(store, signed_at="2024-03-05")
    add_tx(store, 1, upload_id="u1")
    add_tx(store, 5, upload_id="u1", hidden=True)
    add_tx(store, 9, upload_id="u2")
    add_tx(store, 9, merchant="Corner Cafe")

    result = assign_merchant_to_partner(store, "Blacklane", partner.id)

    assert result.updated_transactions == 2
    assert "BLACKLANE" in result.partner.aliases

    by_day = {tx.date.day: tx for tx in store.list_transactions(merchant="Blacklane")}
    assert by_day[1].partner_id is None
    assert by_day[5].partner_id == partner.id
    assert by_day[5].is_hidden is False
    assert by_day[9].partner_id == partner.id
    assert store.list_transactions(merchant="Corner Cafe")[0].partner_id is None


def test_assign_releases_pre_signing_transactions_of_same_partner(store):
    """Test that pre-signing rows of this partner are released."""
    partner = add_partner(store, signed_at="2024-03-05")
    add_tx(store, 1, partner_id=partner.id)
    add_tx(store, 2, partner_id="someone-else")

    assign_merchant_to_partner(store, "Blacklane", partner.id)

    by_day = {tx.date.day: tx for tx in store.list_transactions(merchant="Blacklane")}
    assert by_day[1].partner_id is None
    assert by_day[2].partner_id == "someone-else"


def test_assign_uses_suggested_alias(store):
    """Test assigning with a suggested alias."""
    partner = add_partner(store)
    result = assign_merchant_to_partner(store, "Blacklane", partner.id, suggested_alias="BLACKLANEUK")
    assert result.partner.aliases == ["BLACKLANEUK"]


def test_assign_refuses_unsigned_partner(store):
    """Test that assignment to an unsigned partner changes nothing."""
    partner = add_partner(store, status=PartnerStatus.NEGOTIATION, signed_at=None)
    add_tx(store, 9)

    with pytest.raises(IneligiblePartnerError):
        assign_merchant_to_partner(store, "Blacklane", partner.id)

    assert store.get_partner(partner.id).aliases == []
    assert store.list_transactions()[0].partner_id is None


def test_assign_signed_partner_without_signed_at_links_nothing(store, caplog):
    """Test that a partner with no signed_at gets no transactions."""
    partner = add_partner(store, signed_at=None)
    add_tx(store, 9)

    result = assign_merchant_to_partner(store, "Blacklane", partner.id)

    assert result.updated_transactions == 0
    assert store.list_transactions()[0].partner_id is None
    assert any("no signed_at" in r.getMessage() for r in caplog.records)


def test_unlink_merchant(store):
    """Test unlinking a merchant from its partner."""
    add_tx(store, 1, partner_id="p1")
    add_tx(store, 2, partner_id="p1")
    add_tx(store, 3)

    assert unlink_merchant(store, "Blacklane") == 2
    assert all(tx.partner_id is None for tx in store.list_transactions())


def test_hide_merchant_only_in_one_upload(store):
    """Test hiding a merchant within one upload."""
    add_tx(store, 1, upload_id="u1")
    add_tx(store, 2, upload_id="u1")
    add_tx(store, 3, upload_id="u2")

    assert hide_merchant(store, "u1", "Blacklane") == 2
    assert [tx.is_hidden for tx in store.list_transactions(upload_id="u1")] == [True, True]
    assert store.list_transactions(upload_id="u2")[0].is_hidden is False
    assert hide_merchant(store, "u1", "Blacklane") == 0


# ============================================================================
# Pipeline
# ============================================================================

def test_create_partner_from_merchant(store):
    """Test creating a contacted partner from a discovery merchant."""
    partner = create_partner_from_merchant(store, "Corner Cafe", "Food")

    assert partner.status == PartnerStatus.CONTACTED
    assert partner.aliases == ["Corner Cafe"]
    assert partner.category == "Food"
    assert partner.signed_at is None


def test_create_partner_defaults_category(store):
    """Test the default category for a new partner."""
    assert create_partner_from_merchant(store, "Corner Cafe").category == "Misc"


def test_signing_stamps_signed_at(store):
    """Test that signing stamps signed_at."""
    partner = add_partner(store, status=PartnerStatus.NEGOTIATION, signed_at=None)
    updated = update_partner_status(store, partner.id, PartnerStatus.SIGNED)

    assert updated.status == PartnerStatus.SIGNED
    assert to_calendar_date(updated.signed_at) is not None


def test_resaving_signed_keeps_signed_at(store):
    """Test that re-saving a signed partner keeps its signed_at."""
    partner = add_partner(store, signed_at="2024-03-05")
    updated = update_partner_status(store, partner.id, "signed")
    assert updated.signed_at == "2024-03-05"


def test_contacted_to_lead_stamps_lead_date(store):
    """Test that contacted to lead stamps lead_date."""
    partner = add_partner(store, status=PartnerStatus.CONTACTED, signed_at=None)
    updated = update_partner_status(store, partner.id, "lead")

    assert updated.status == PartnerStatus.LEAD
    assert updated.lead_date is not None
    assert updated.signed_at is None


def test_other_moves_stamp_nothing(store):
    """Test that other status moves stamp nothing."""
    partner = add_partner(store, status=PartnerStatus.POTENTIAL, signed_at=None)
    updated = update_partner_status(store, partner.id, "lead")
    assert updated.lead_date is None


def test_unknown_status_rejected(store):
    """Test that an unknown status is rejected."""
    partner = add_partner(store)
    with pytest.raises(ValidationError):
        update_partner_status(store, partner.id, "married")


def test_status_change_for_missing_partner(store):
    """Test changing the status of an unknown partner."""
    with pytest.raises(PartnerNotFoundError):
        update_partner_status(store, "nope", "signed")
