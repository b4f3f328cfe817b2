"""
Aggregation Engine
==================

Folds persisted transactions into the figures the dashboards read:

- Per-partner revenue, commission and RAG health
- Discovery list of merchants with spend but no attributed partner
- Weekly revenue/commission series (weeks start on Sunday)
- Revenue by partner category

Every non-hidden transaction lands in exactly one group: attributed when it
carries a partner id AND passes the eligibility check, discovery otherwise.
Hidden transactions are left out of both.
"""

import logging
import math
from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Union

from eligibility import EligibilityResolver
from exceptions import ValidationError
from models import (
    ALL_TIME,
    AMBER_MAX_DAYS,
    AMBER_MIN_TRANSACTIONS,
    GREEN_MAX_DAYS,
    GREEN_MIN_TRANSACTIONS,
    CategoryRevenue,
    DiscoverySort,
    HealthStatus,
    MerchantStats,
    Partner,
    PartnerRevenueStats,
    RevenueSummary,
    Transaction,
    Upload,
    WeeklyRevenue,
)
from utils import parse_commission, round_half_up

logger = logging.getLogger(__name__)

NO_ACTIVITY_DAYS = 999
SECONDS_PER_DAY = 86400
DEFAULT_CATEGORY = "Misc"

Roster = Union[Mapping[str, Partner], Sequence[Partner]]


# ============================================================================
# Small calculations
# ============================================================================

def get_health_status(transaction_count: int, days_since_last: int) -> HealthStatus:
    """RAG status from booking volume and recency."""
    if transaction_count >= GREEN_MIN_TRANSACTIONS and days_since_last <= GREEN_MAX_DAYS:
        return HealthStatus.GREEN
    if transaction_count >= AMBER_MIN_TRANSACTIONS and days_since_last <= AMBER_MAX_DAYS:
        return HealthStatus.AMBER
    return HealthStatus.RED


def calculate_commission(amount_pence: int, commission_rate: float) -> int:
    """Commission in pence for an amount at a percentage rate."""
    return round_half_up(amount_pence * (commission_rate / 100))


def days_since(last: Optional[date], now: datetime) -> int:
    """Whole days from midnight of `last` to `now`, counting any part day as a full one."""
    if last is None:
        return NO_ACTIVITY_DAYS
    elapsed = abs(now - datetime.combine(last, time.min))
    return math.ceil(elapsed.total_seconds() / SECONDS_PER_DAY)


def week_start(day: date) -> date:
    """Sunday on or before the given day."""
    return day - timedelta(days=(day.weekday() + 1) % 7)


def _as_roster(partners: Roster) -> Dict[str, Partner]:
    if isinstance(partners, Mapping):
        return dict(partners)
    return {p.id: p for p in partners}


def _reference_time(now: Optional[datetime]) -> datetime:
    now = now or datetime.now()
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc).replace(tzinfo=None)
    return now


def attributed_partner(
    tx: Transaction,
    roster: Mapping[str, Partner],
    resolver: EligibilityResolver,
) -> Optional[Partner]:
    """The partner a transaction counts towards, or None when it belongs to discovery."""
    if not tx.partner_id:
        return None
    partner = roster.get(tx.partner_id)
    if partner is None:
        logger.debug(f"Transaction {tx.id} references unknown partner {tx.partner_id}")
        return None
    if not resolver.is_eligible(tx.date, partner):
        return None
    return partner


# ============================================================================
# Scope
# ============================================================================

def transactions_in_scope(
    transactions: Iterable[Transaction],
    uploads: Iterable[Upload],
    month: str = ALL_TIME,
) -> List[Transaction]:
    """Transactions owned by the upload for `month`, or all of them for ALL_TIME."""
    if month == ALL_TIME:
        return list(transactions)
    upload_ids = {u.id for u in uploads if u.month == month}
    return [tx for tx in transactions if tx.upload_id in upload_ids]


# ============================================================================
# Partner revenue & discovery
# ============================================================================

def process_partner_revenue(
    transactions: Iterable[Transaction],
    partners: Roster,
    resolver: Optional[EligibilityResolver] = None,
    now: Optional[datetime] = None,
) -> RevenueSummary:
    """
    Fold transactions into partner stats and the discovery list.

    Args:
        transactions: transactions for the scope being viewed
        partners: current roster (mapping by id or a list)
        resolver: eligibility resolver; share one to de-duplicate warnings
        now: reference time for days-since-last-transaction

    Returns:
        RevenueSummary with partner_stats keyed by partner id and discovery
        keyed by canonical merchant name
    """
    roster = _as_roster(partners)
    resolver = resolver or EligibilityResolver()
    summary = RevenueSummary()

    for tx in transactions:
        if tx.is_hidden:
            summary.hidden_count += 1
            continue

        partner = attributed_partner(tx, roster, resolver)
        if partner is not None:
            commission = calculate_commission(tx.amount, parse_commission(partner.commission))
            summary.total_revenue += tx.amount
            summary.total_commission += commission

            stats = summary.partner_stats.get(partner.id)
            if stats is None:
                stats = PartnerRevenueStats(partner=partner)
                summary.partner_stats[partner.id] = stats
            stats.transaction_count += 1
            stats.total_revenue += tx.amount
            stats.commission_earned += commission
            if stats.last_transaction is None or tx.date > stats.last_transaction:
                stats.last_transaction = tx.date
        else:
            merchant = summary.discovery.get(tx.merchant_normalised)
            if merchant is None:
                merchant = MerchantStats(name=tx.merchant_normalised, category=tx.category or "")
                summary.discovery[tx.merchant_normalised] = merchant
            merchant.count += 1
            merchant.total_revenue += tx.amount
            if tx.date is not None and (merchant.last_used is None or tx.date > merchant.last_used):
                merchant.last_used = tx.date
            if not merchant.category and tx.category:
                merchant.category = tx.category

    reference = _reference_time(now)
    for stats in summary.partner_stats.values():
        stats.days_since_last_transaction = days_since(stats.last_transaction, reference)
        stats.health_status = get_health_status(stats.transaction_count, stats.days_since_last_transaction)
        stats.avg_deal_size = stats.total_revenue / stats.transaction_count

    logger.debug(
        f"Revenue summary: {summary.active_partners} partners, "
        f"{len(summary.discovery)} discovery merchants, {summary.hidden_count} hidden"
    )
    return summary


def top_partners(summary: RevenueSummary, limit: int = 10) -> List[PartnerRevenueStats]:
    """Partners by attributed revenue, highest first."""
    ranked = sorted(summary.partner_stats.values(), key=lambda s: s.total_revenue, reverse=True)
    return ranked[:limit]


def sort_discovery(
    merchants: Iterable[MerchantStats],
    sort_by: Union[DiscoverySort, str] = DiscoverySort.FREQUENCY,
    category: Optional[str] = None,
) -> List[MerchantStats]:
    """
    Discovery merchants filtered by category and ordered by the chosen key.

    Frequency and revenue sort descending; recency puts the most recently
    used first. Ties keep their incoming order.
    """
    try:
        sort_key = DiscoverySort(sort_by)
    except ValueError:
        raise ValidationError(f"Unknown discovery sort: {sort_by}", field="sort_by", value=sort_by)

    items = list(merchants)
    if category is not None and category != ALL_TIME:
        items = [m for m in items if m.category == category]

    if sort_key == DiscoverySort.FREQUENCY:
        return sorted(items, key=lambda m: m.count, reverse=True)
    if sort_key == DiscoverySort.REVENUE:
        return sorted(items, key=lambda m: m.total_revenue, reverse=True)
    return sorted(items, key=lambda m: m.last_used or date.min, reverse=True)


# ============================================================================
# Time series & distribution
# ============================================================================

def get_weekly_data(
    transactions: Iterable[Transaction],
    partners: Roster,
    resolver: Optional[EligibilityResolver] = None,
) -> List[WeeklyRevenue]:
    """Attributed revenue and commission per Sunday-starting week, oldest first."""
    roster = _as_roster(partners)
    resolver = resolver or EligibilityResolver()
    weeks: Dict[date, WeeklyRevenue] = {}

    for tx in transactions:
        if tx.is_hidden:
            continue
        partner = attributed_partner(tx, roster, resolver)
        if partner is None:
            continue

        key = week_start(tx.date)
        bucket = weeks.setdefault(key, WeeklyRevenue(week=key))
        bucket.revenue += tx.amount
        bucket.commission += calculate_commission(tx.amount, parse_commission(partner.commission))

    return [weeks[k] for k in sorted(weeks)]


def get_category_distribution(summary: RevenueSummary) -> List[CategoryRevenue]:
    """Attributed revenue per partner category, largest first."""
    totals: Dict[str, int] = {}
    for stats in summary.partner_stats.values():
        name = stats.partner.category or DEFAULT_CATEGORY
        totals[name] = totals.get(name, 0) + stats.total_revenue

    return sorted(
        (CategoryRevenue(name=name, value=value) for name, value in totals.items()),
        key=lambda c: c.value,
        reverse=True,
    )


# ============================================================================
# Store-backed read
# ============================================================================

def load_revenue_summary(
    store,
    month: str = ALL_TIME,
    resolver: Optional[EligibilityResolver] = None,
    now: Optional[datetime] = None,
) -> RevenueSummary:
    """Read partners, uploads and transactions from a store and aggregate one scope."""
    partners = store.list_partners()
    transactions = transactions_in_scope(store.list_transactions(), store.list_uploads(), month)
    return process_partner_revenue(transactions, partners, resolver=resolver, now=now)
