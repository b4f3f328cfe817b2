"""
Eligibility Resolver
====================

A transaction may be attributed to a partner only when the partner is signed,
has a signed_at timestamp, and the transaction falls on or after the signing
day. Dates are compared as calendar days, so a same-day transaction counts.

Data-quality problems with a partner are logged once per partner id. The set
of partners already warned about belongs to the caller, which lets one
upload or dashboard read share it.
"""

import logging
from datetime import date, datetime
from typing import Optional, Set, Union

from models import Partner, PartnerStatus
from utils import to_calendar_date

logger = logging.getLogger(__name__)

DateLike = Union[str, date, datetime, None]


class EligibilityResolver:
    """Decides whether a transaction date can be attributed to a partner."""

    def __init__(self, warned_partner_ids: Optional[Set[str]] = None):
        self.warned_partner_ids = set() if warned_partner_ids is None else warned_partner_ids

    def is_eligible(self, transaction_date: DateLike, partner: Partner) -> bool:
        if partner.status != PartnerStatus.SIGNED:
            return False

        if not partner.signed_at:
            self._warn_once(
                partner,
                f"Signed partner {partner.name!r} ({partner.id}) has no signed_at. Skipping attribution.",
            )
            return False

        signed_day = to_calendar_date(partner.signed_at)
        if signed_day is None:
            self._warn_once(
                partner,
                f"Signed partner {partner.name!r} ({partner.id}) has an unreadable "
                f"signed_at {partner.signed_at!r}. Skipping attribution.",
            )
            return False

        transaction_day = to_calendar_date(transaction_date)
        if transaction_day is None:
            logger.warning(
                f"Unreadable transaction date {transaction_date!r} for partner "
                f"{partner.name!r} ({partner.id}); not attributed"
            )
            return False

        return transaction_day >= signed_day

    def _warn_once(self, partner: Partner, message: str) -> None:
        if partner.id in self.warned_partner_ids:
            return
        self.warned_partner_ids.add(partner.id)
        logger.warning(message)


def is_transaction_eligible(
    transaction_date: DateLike,
    partner: Partner,
    warned_partner_ids: Optional[Set[str]] = None,
) -> bool:
    """Functional form of EligibilityResolver.is_eligible."""
    return EligibilityResolver(warned_partner_ids).is_eligible(transaction_date, partner)
