"""
Export functionality for the revenue dashboards.
Builds pandas DataFrames from aggregation results and serialises them to CSV.
"""

import io
import logging
from typing import Iterable, List

import pandas as pd

from models import MerchantStats, PartnerRevenueStats, RevenueSummary, WeeklyRevenue
from revenue import top_partners

logger = logging.getLogger(__name__)

PARTNER_COLUMNS = [
    "Partner", "Category", "Transactions", "Revenue (£)", "Commission (£)",
    "Avg Deal (£)", "Last Transaction", "Days Since", "Health",
]
DISCOVERY_COLUMNS = ["Merchant", "Category", "Transactions", "Revenue (£)", "Last Used"]
WEEKLY_COLUMNS = ["Week Starting", "Revenue (£)", "Commission (£)"]


def _pounds(pence) -> float:
    return round(pence / 100, 2)


def partner_stats_dataframe(stats: Iterable[PartnerRevenueStats]) -> pd.DataFrame:
    """One row per partner with attributed revenue."""
    rows = [
        {
            "Partner": s.partner.name,
            "Category": s.partner.category,
            "Transactions": s.transaction_count,
            "Revenue (£)": _pounds(s.total_revenue),
            "Commission (£)": _pounds(s.commission_earned),
            "Avg Deal (£)": _pounds(s.avg_deal_size),
            "Last Transaction": s.last_transaction.isoformat() if s.last_transaction else "",
            "Days Since": s.days_since_last_transaction,
            "Health": s.health_status.value,
        }
        for s in stats
    ]
    return pd.DataFrame(rows, columns=PARTNER_COLUMNS)


def discovery_dataframe(merchants: Iterable[MerchantStats]) -> pd.DataFrame:
    """Discovery merchants in the order given."""
    rows = [
        {
            "Merchant": m.name,
            "Category": m.category,
            "Transactions": m.count,
            "Revenue (£)": _pounds(m.total_revenue),
            "Last Used": m.last_used.isoformat() if m.last_used else "",
        }
        for m in merchants
    ]
    return pd.DataFrame(rows, columns=DISCOVERY_COLUMNS)


def weekly_dataframe(weeks: List[WeeklyRevenue]) -> pd.DataFrame:
    rows = [
        {
            "Week Starting": w.week.isoformat(),
            "Revenue (£)": _pounds(w.revenue),
            "Commission (£)": _pounds(w.commission),
        }
        for w in weeks
    ]
    return pd.DataFrame(rows, columns=WEEKLY_COLUMNS)


def summary_dataframe(summary: RevenueSummary) -> pd.DataFrame:
    """Partners ranked by revenue for the summary table."""
    return partner_stats_dataframe(top_partners(summary, limit=len(summary.partner_stats)))


def export_to_csv(df: pd.DataFrame, filename: str = "export.csv") -> bytes:
    """
    Export DataFrame to CSV bytes.

    Args:
        df: DataFrame to export
        filename: Filename for the export (used for logging)

    Returns:
        CSV content as bytes; empty when the DataFrame has no rows
    """
    if df.empty:
        logger.warning(f"Empty DataFrame for export: {filename}")
        return b""

    buffer = io.StringIO()
    df.to_csv(buffer, index=False)
    logger.info(f"Exported {len(df)} rows to {filename}")
    return buffer.getvalue().encode("utf-8")
