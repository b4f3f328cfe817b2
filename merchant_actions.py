"""
Merchant and partner actions taken from the revenue dashboards.

Linking a merchant to a partner, unlinking it, hiding it from discovery,
promoting a discovery merchant into the pipeline, and moving a partner
through pipeline stages.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Union

from eligibility import EligibilityResolver
from exceptions import IneligiblePartnerError, ValidationError
from matching import normalise_for_fuzzy_matching
from models import Partner, PartnerStatus, parse_status

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY = "Misc"


@dataclass
class AssignmentResult:
    """Outcome of linking a merchant to a partner."""
    updated_transactions: int
    partner: Partner


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def append_partner_alias(store, partner_id: str, alias: str) -> Partner:
    """
    Add an alias to a partner unless it is already present (case-insensitive).

    Returns the partner as stored after the change.
    """
    alias = (alias or "").strip()
    if not alias:
        raise ValidationError("Alias cannot be empty", field="alias", value=alias)

    partner = store.get_partner(partner_id)
    if any(existing.upper() == alias.upper() for existing in partner.aliases):
        logger.debug(f"Partner {partner.name!r} already has alias {alias!r}")
        return partner

    updated = store.update_partner(partner_id, {"stripe_aliases": partner.aliases + [alias]})
    logger.info(f"Added alias {alias!r} to partner {partner.name!r}")
    return updated


def assign_merchant_to_partner(
    store,
    merchant_name: str,
    partner_id: str,
    suggested_alias: Optional[str] = None,
    resolver: Optional[EligibilityResolver] = None,
) -> AssignmentResult:
    """
    Link every transaction of a canonical merchant, across all uploads, to a partner.

    The partner gains the suggested alias (the merchant's compact form by
    default) so future uploads match it directly. Transactions on or after
    the signing day are attributed and unhidden; earlier ones are released
    if they pointed at this partner.

    Raises:
        IneligiblePartnerError: if the partner is not signed
    """
    partner = store.get_partner(partner_id)
    if not partner.is_signed:
        raise IneligiblePartnerError(partner_id, f"status is {partner.status.value}")

    alias = suggested_alias or normalise_for_fuzzy_matching(merchant_name)
    partner = append_partner_alias(store, partner_id, alias)

    if not partner.signed_at:
        logger.warning(
            f"Signed partner {partner.name!r} ({partner.id}) has no signed_at. No transactions linked."
        )
        return AssignmentResult(updated_transactions=0, partner=partner)

    resolver = resolver or EligibilityResolver()
    attributed = 0
    for tx in store.list_transactions(merchant=merchant_name):
        eligible = resolver.is_eligible(tx.date, partner)
        changes = {}
        if eligible:
            if tx.partner_id != partner.id:
                changes["partner_id"] = partner.id
                attributed += 1
            if tx.is_hidden:
                changes["is_hidden"] = False
        elif tx.partner_id == partner.id:
            changes["partner_id"] = None

        if changes:
            store.update_transaction(tx.id, changes)

    logger.info(f"Linked {merchant_name!r} to {partner.name!r}: {attributed} transactions attributed")
    return AssignmentResult(updated_transactions=attributed, partner=partner)


def unlink_merchant(store, merchant_name: str) -> int:
    """Clear the partner on every transaction of a merchant; returns how many changed."""
    linked = [tx for tx in store.list_transactions(merchant=merchant_name) if tx.partner_id]
    for tx in linked:
        store.update_transaction(tx.id, {"partner_id": None})
    logger.info(f"Unlinked {len(linked)} transactions for {merchant_name!r}")
    return len(linked)


def hide_merchant(store, upload_id: str, merchant_name: str) -> int:
    """Hide a merchant's transactions within one upload from the discovery list."""
    visible = [
        tx for tx in store.list_transactions(upload_id=upload_id, merchant=merchant_name)
        if not tx.is_hidden
    ]
    for tx in visible:
        store.update_transaction(tx.id, {"is_hidden": True})
    logger.info(f"Hid {len(visible)} transactions for {merchant_name!r} in upload {upload_id}")
    return len(visible)


def create_partner_from_merchant(store, merchant_name: str, category: str = "") -> Partner:
    """Add a discovery merchant to the pipeline as a contacted partner."""
    name = (merchant_name or "").strip()
    if not name:
        raise ValidationError("Merchant name cannot be empty", field="merchant_name", value=merchant_name)

    partner = store.create_partner(Partner(
        id="",
        name=name,
        status=PartnerStatus.CONTACTED,
        aliases=[name],
        category=category or DEFAULT_CATEGORY,
    ))
    logger.info(f"Created partner {partner.name!r} ({partner.id}) from discovery")
    return partner


def update_partner_status(store, partner_id: str, new_status: Union[PartnerStatus, str]) -> Partner:
    """
    Move a partner to a new pipeline stage.

    Becoming signed stamps signed_at; contacted -> lead stamps lead_date.
    Re-saving a partner that is already signed keeps its signed_at.
    """
    status = parse_status(new_status.value if isinstance(new_status, PartnerStatus) else new_status)
    partner = store.get_partner(partner_id)

    fields = {"status": status.value}
    if partner.status == PartnerStatus.CONTACTED and status == PartnerStatus.LEAD:
        fields["lead_date"] = _utc_now()
    if status == PartnerStatus.SIGNED and (partner.status != PartnerStatus.SIGNED or not partner.signed_at):
        fields["signed_at"] = _utc_now()

    updated = store.update_partner(partner_id, fields)
    logger.info(f"Partner {partner.name!r} moved {partner.status.value} -> {status.value}")
    return updated
