"""Tests for the attribution eligibility window."""

import logging
from datetime import date, datetime, timedelta, timezone

import pytest

from eligibility import EligibilityResolver, is_transaction_eligible
from models import Partner, PartnerStatus


def make_partner(status=PartnerStatus.SIGNED, signed_at="2024-03-01T15:30:00Z", partner_id="p1"):
    return Partner(id=partner_id, name="Addison Lee", status=status, signed_at=signed_at, commission="10%")


@pytest.mark.parametrize("status", [s for s in PartnerStatus if s != PartnerStatus.SIGNED])
def test_unsigned_partners_never_eligible(status):
    """Test that only signed partners can be attributed spend."""
    partner = make_partner(status=status)
    assert not is_transaction_eligible("2030-01-01", partner)


def test_same_day_counts():
    """Test that spend on the signing day is eligible."""
    partner = make_partner()
    assert is_transaction_eligible("2024-03-01", partner)
    assert is_transaction_eligible(date(2024, 3, 1), partner)


def test_day_before_signing_not_eligible():
    """Test that spend the day before signing is not eligible."""
    assert not is_transaction_eligible("2024-02-29", make_partner())


def test_eligibility_is_a_step_function_of_date():
    """Test that eligibility flips once, on the signing date."""
    partner = make_partner(signed_at="2024-03-10")
    start = date(2024, 2, 20)
    results = [is_transaction_eligible(start + timedelta(days=n), partner) for n in range(40)]

    first_true = results.index(True)
    assert start + timedelta(days=first_true) == date(2024, 3, 10)
    assert not any(results[:first_true])
    assert all(results[first_true:])


def test_timestamps_compared_as_utc_calendar_days():
    """Test that times of day are ignored when comparing dates."""
    partner = make_partner(signed_at="2024-03-01 23:59:59.000Z")
    tx_time = datetime(2024, 3, 1, 0, 1, tzinfo=timezone.utc)
    assert is_transaction_eligible(tx_time, partner)


def test_missing_signed_at_warns_once_per_partner(caplog):
    """Test a single warning for a signed partner with no signed_at."""
    resolver = EligibilityResolver()
    partner = make_partner(signed_at=None)

    with caplog.at_level(logging.WARNING, logger="eligibility"):
        for _ in range(5):
            assert not resolver.is_eligible("2024-03-05", partner)

    warnings = [r for r in caplog.records if "has no signed_at" in r.getMessage()]
    assert len(warnings) == 1
    assert resolver.warned_partner_ids == {"p1"}


def test_warning_set_is_owned_by_caller(caplog):
    """Test that a caller-supplied set de-duplicates warnings."""
    warned = {"p1"}
    partner = make_partner(signed_at=None)

    with caplog.at_level(logging.WARNING, logger="eligibility"):
        assert not is_transaction_eligible("2024-03-05", partner, warned)
        assert not is_transaction_eligible("2024-03-05", make_partner(signed_at=None, partner_id="p2"), warned)

    warnings = [r for r in caplog.records if "has no signed_at" in r.getMessage()]
    assert len(warnings) == 1
    assert warned == {"p1", "p2"}


def test_unreadable_signed_at_not_eligible(caplog):
    """Test that an unreadable signed_at blocks attribution and warns once."""
    resolver = EligibilityResolver()
    partner = make_partner(signed_at="sometime last spring")

    with caplog.at_level(logging.WARNING, logger="eligibility"):
        assert not resolver.is_eligible("2024-03-05", partner)
        assert not resolver.is_eligible("2024-03-06", partner)

    warnings = [r for r in caplog.records if "unreadable signed_at" in r.getMessage()]
    assert len(warnings) == 1


def test_unreadable_transaction_date_not_eligible(caplog):
    """Test that unreadable transaction dates are ineligible and logged each time."""
    with caplog.at_level(logging.WARNING, logger="eligibility"):
        assert not is_transaction_eligible("not a date", make_partner())
        assert not is_transaction_eligible(None, make_partner())

    assert len([r for r in caplog.records if "Unreadable transaction date" in r.getMessage()]) == 2
