"""Utility functions: logging setup, money formatting and date coercion."""

import json
import logging
import math
from datetime import date, datetime, timezone
from typing import Any, Optional, Union

logger = logging.getLogger(__name__)


def safe_json_loads(payload: str) -> Optional[Any]:
    """Safely load JSON, returning None on error."""
    try:
        return json.loads(payload)
    except (TypeError, ValueError) as e:
        logger.debug(f"Failed to parse JSON: {e}")
        return None


def round_half_up(value: float) -> int:
    """Round to the nearest integer, with .5 always going towards +infinity."""
    return int(math.floor(value + 0.5))


def to_calendar_date(value: Union[str, date, datetime, None]) -> Optional[date]:
    """
    Coerce a stored timestamp to its calendar date.

    Accepts date/datetime objects and ISO-8601 strings, including the
    "2024-02-01 10:00:00.000Z" form the hosted store returns. Timezone-aware
    values are converted to UTC first. Returns None when the value cannot be
    read as a date.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        try:
            return date.fromisoformat(text[:10])
        except ValueError:
            return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc)
    return parsed.date()


def parse_commission(commission: Optional[str]) -> float:
    """Parse a commission rate such as "10%" or "7.5" to a number; 0 when blank or unreadable."""
    if not commission:
        return 0.0
    clean = str(commission).replace("%", "").strip()
    try:
        value = float(clean)
    except ValueError:
        return 0.0
    if not math.isfinite(value):
        return 0.0
    return value


def format_amount(pence: int) -> str:
    """Format pence as £X,XXX.XX."""
    sign = "-" if pence < 0 else ""
    return f"{sign}£{abs(pence) / 100:,.2f}"


def format_compact_amount(pence: int) -> str:
    """Format pence as £X.Xk / £X.XM for dashboard tiles."""
    pounds = pence / 100
    if pounds >= 1_000_000:
        return f"£{pounds / 1_000_000:.1f}M"
    if pounds >= 1000:
        return f"£{pounds / 1000:.1f}k"
    return f"£{pounds:.2f}"


def setup_logging(log_level: str = "INFO", log_file: Optional[str] = None):
    """
    Configure logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional log file path
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # File handler (optional)
    if log_file:
        try:
            file_handler = logging.FileHandler(log_file)
            file_handler.setLevel(numeric_level)
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)
            logger.info(f"Logging to file: {log_file}")
        except OSError as e:
            logger.error(f"Failed to setup file logging: {e}")

    logger.info(f"Logging configured at level {log_level}")
