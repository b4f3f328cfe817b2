"""Data models and constants for partner revenue reconciliation."""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional

from exceptions import ValidationError
from utils import safe_json_loads, to_calendar_date


# ============================================================================
# Enums and Constants
# ============================================================================

class PartnerStatus(str, Enum):
    """Pipeline stage of a partner organisation"""
    POTENTIAL = "potential"
    CONTACTED = "contacted"
    LEAD = "lead"
    NEGOTIATION = "negotiation"
    SIGNED = "signed"
    CLOSED = "closed"


class HealthStatus(str, Enum):
    """RAG classification of recent partner activity"""
    GREEN = "green"
    AMBER = "amber"
    RED = "red"


class MatchState(str, Enum):
    """Review state of a proposed fuzzy match"""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    DISMISSED = "dismissed"


class DiscoverySort(str, Enum):
    """Orderings offered for the discovery merchant list"""
    FREQUENCY = "frequency"
    REVENUE = "revenue"
    RECENCY = "recency"


# Fuzzy matching tiers (empirical, kept for behaviour parity)
FUZZY_MIN_SCORE = 70
FUZZY_EXACT_SCORE = 100
FUZZY_MERCHANT_CONTAINS_CEILING = 90
FUZZY_PARTNER_CONTAINS_CEILING = 80
FUZZY_OVERLAP_CEILING = 60
FUZZY_MIN_OVERLAP = 6

# Health thresholds
GREEN_MIN_TRANSACTIONS = 3
GREEN_MAX_DAYS = 14
AMBER_MIN_TRANSACTIONS = 1
AMBER_MAX_DAYS = 21

ALL_TIME = "all"


def parse_aliases(aliases: Any) -> List[str]:
    """
    Read an alias list in whatever shape the store returned it.

    Lists pass through, JSON-encoded strings are decoded, any other non-empty
    string is treated as a single alias.
    """
    if not aliases:
        return []
    if isinstance(aliases, (list, tuple)):
        return [str(a) for a in aliases if a is not None and str(a).strip()]
    if isinstance(aliases, str):
        decoded = safe_json_loads(aliases)
        if isinstance(decoded, list):
            return [str(a) for a in decoded if a is not None and str(a).strip()]
        return [aliases]
    return []


def parse_status(value: Any) -> PartnerStatus:
    """Parse a status string into a PartnerStatus."""
    try:
        return PartnerStatus(str(value).strip().lower())
    except ValueError:
        raise ValidationError(f"Unknown partner status: {value}", field="status", value=value)


# ============================================================================
# Data Classes
# ============================================================================

@dataclass
class Partner:
    """
    A partner organisation in the pipeline.

    Only signed partners with a signed_at timestamp can receive attribution.
    Aliases are matched against merchant descriptors on upload.
    """
    id: str
    name: str
    status: PartnerStatus
    signed_at: Optional[str] = None
    commission: str = ""
    aliases: List[str] = field(default_factory=list)
    category: str = ""
    lead_date: Optional[str] = None

    @property
    def is_signed(self) -> bool:
        return self.status == PartnerStatus.SIGNED

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Partner":
        """Build a Partner from a store record (hosted or local field names)."""
        return cls(
            id=str(record["id"]),
            name=record.get("partner_name") or record.get("name") or "",
            status=parse_status(record.get("status", PartnerStatus.POTENTIAL.value)),
            signed_at=record.get("signed_at") or None,
            commission=record.get("commission") or "",
            aliases=parse_aliases(record.get("stripe_aliases", record.get("aliases"))),
            category=record.get("lifestyle_category") or record.get("category") or "",
            lead_date=record.get("lead_date") or None,
        )

    def to_record(self) -> Dict[str, Any]:
        return {
            "partner_name": self.name,
            "status": self.status.value,
            "signed_at": self.signed_at,
            "commission": self.commission,
            "stripe_aliases": list(self.aliases),
            "lifestyle_category": self.category,
            "lead_date": self.lead_date,
        }


@dataclass
class Upload:
    """One monthly payment export; owns its transactions."""
    id: Optional[str]
    month: str
    filename: str
    uploaded_by: str = ""
    total_transactions: int = 0
    total_spend: int = 0
    matched_count: int = 0
    unmatched_count: int = 0
    created: Optional[str] = None

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Upload":
        return cls(
            id=str(record["id"]),
            month=record["month"],
            filename=record.get("filename", ""),
            uploaded_by=record.get("uploaded_by") or "",
            total_transactions=int(record.get("total_transactions") or 0),
            total_spend=int(record.get("total_spend") or 0),
            matched_count=int(record.get("matched_count") or 0),
            unmatched_count=int(record.get("unmatched_count") or 0),
            created=record.get("created"),
        )

    def to_record(self) -> Dict[str, Any]:
        return {
            "month": self.month,
            "filename": self.filename,
            "uploaded_by": self.uploaded_by,
            "total_transactions": self.total_transactions,
            "total_spend": self.total_spend,
            "matched_count": self.matched_count,
            "unmatched_count": self.unmatched_count,
        }


@dataclass
class Transaction:
    """A single payment line; amount is in pence."""
    id: Optional[str]
    upload_id: Optional[str]
    date: Optional[date]
    merchant_raw: str
    merchant_normalised: str
    amount: int
    partner_id: Optional[str] = None
    category: str = ""
    is_hidden: bool = False

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Transaction":
        return cls(
            id=str(record["id"]) if record.get("id") is not None else None,
            upload_id=record.get("upload_id"),
            date=to_calendar_date(record.get("date")),
            merchant_raw=record.get("merchant_raw", ""),
            merchant_normalised=record.get("merchant_normalised", ""),
            amount=int(record.get("amount") or 0),
            partner_id=record.get("partner_id") or None,
            category=record.get("category") or "",
            is_hidden=bool(record.get("is_hidden")),
        )

    def to_record(self) -> Dict[str, Any]:
        return {
            "upload_id": self.upload_id,
            "date": self.date.isoformat() if self.date else None,
            "merchant_raw": self.merchant_raw,
            "merchant_normalised": self.merchant_normalised,
            "amount": self.amount,
            "partner_id": self.partner_id,
            "category": self.category or None,
            "is_hidden": self.is_hidden,
        }


@dataclass
class CSVRow:
    """Raw (date, merchant, amount) strings read from one CSV line."""
    date: str
    merchant_name: str
    amount: str


@dataclass
class PartnerRevenueStats:
    """Attributed revenue rollup for one partner."""
    partner: Partner
    transaction_count: int = 0
    total_revenue: int = 0
    commission_earned: int = 0
    last_transaction: Optional[date] = None
    days_since_last_transaction: int = 999
    health_status: HealthStatus = HealthStatus.RED
    avg_deal_size: float = 0.0


@dataclass
class MerchantStats:
    """Spend at a merchant with no attributed partner (discovery)."""
    name: str
    count: int = 0
    total_revenue: int = 0
    last_used: Optional[date] = None
    category: str = ""


@dataclass
class RevenueSummary:
    """Result of folding a transaction set into partner and discovery groups."""
    total_revenue: int = 0
    total_commission: int = 0
    partner_stats: Dict[str, PartnerRevenueStats] = field(default_factory=dict)
    discovery: Dict[str, MerchantStats] = field(default_factory=dict)
    hidden_count: int = 0

    @property
    def active_partners(self) -> int:
        return len(self.partner_stats)


@dataclass
class WeeklyRevenue:
    """Attributed revenue and commission for the week starting `week` (a Sunday)."""
    week: date
    revenue: int = 0
    commission: int = 0


@dataclass
class CategoryRevenue:
    """Partner revenue summed for one lifestyle category."""
    name: str
    value: int
