"""
CSV Row Parser
==============

Turns the text of a monthly payment export into (date, merchant, amount)
rows. Exports arrive with quoted fields, an optional header and the three
columns in no fixed order, so the date column is located per row.

Row-level defects (too few fields, no date column, impossible date) drop the
row. Only a file with no usable rows at all is rejected.
"""

import logging
import re
from datetime import date
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import List, Optional

from exceptions import MalformedInputError
from models import CSVRow

logger = logging.getLogger(__name__)

DATE_PATTERN = re.compile(r"^\d{1,2}/\d{1,2}/\d{4}$")
MIN_FIELDS = 3


def decode_upload(content: bytes) -> str:
    """Decode uploaded file bytes, tolerating a UTF-8 BOM and legacy Windows exports."""
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError:
        logger.warning("Upload is not valid UTF-8, decoding as cp1252")
        return content.decode("cp1252", errors="replace")


def is_header_line(line: str) -> bool:
    lowered = line.lower()
    return "date" in lowered and "merchant" in lowered


def split_csv_line(line: str) -> List[str]:
    """
    Split one line on commas, honouring double quotes.

    A quote toggles quoted mode, "" inside quotes is a literal quote and
    commas inside quotes are kept. Fields are trimmed and any surrounding
    quotes left over are stripped.
    """
    parts = []
    current = []
    in_quotes = False
    i = 0
    while i < len(line):
        char = line[i]
        if char == '"':
            if in_quotes and i + 1 < len(line) and line[i + 1] == '"':
                current.append('"')
                i += 1
            else:
                in_quotes = not in_quotes
        elif char == "," and not in_quotes:
            parts.append("".join(current).strip())
            current = []
        else:
            current.append(char)
        i += 1
    parts.append("".join(current).strip())

    return [_strip_quotes(p) for p in parts]


def _strip_quotes(value: str) -> str:
    if value.startswith('"'):
        value = value[1:]
    if value.endswith('"'):
        value = value[:-1]
    return value


def _row_from_fields(fields: List[str]) -> Optional[CSVRow]:
    """Locate the date among the first three fields and assign the other two."""
    first, second, third = fields[0], fields[1], fields[2]

    if DATE_PATTERN.match(first):
        date_field, merchant_field, amount_field = first, second, third
    elif DATE_PATTERN.match(second):
        # Merchant, Date, Amount
        merchant_field, date_field, amount_field = first, second, third
    elif DATE_PATTERN.match(third):
        # Merchant, Amount, Date
        merchant_field, amount_field, date_field = first, second, third
    else:
        return None

    try:
        parse_date(date_field)
    except MalformedInputError:
        return None

    return CSVRow(date=date_field, merchant_name=merchant_field, amount=amount_field)


def parse_csv(content: str) -> List[CSVRow]:
    """
    Parse export text into rows.

    Raises:
        MalformedInputError: if no line yields a valid row
    """
    rows = []
    skipped = 0

    for line_number, raw_line in enumerate(content.splitlines(), start=1):
        line = raw_line.strip()
        if not line or is_header_line(line):
            continue

        fields = split_csv_line(line)
        if len(fields) < MIN_FIELDS:
            skipped += 1
            logger.debug(f"Skipping line {line_number}: {len(fields)} fields")
            continue

        row = _row_from_fields(fields)
        if row is None:
            skipped += 1
            logger.debug(f"Skipping line {line_number}: no valid date column")
            continue

        rows.append(row)

    if not rows:
        raise MalformedInputError("No valid transactions found in file")

    if skipped:
        logger.info(f"Parsed {len(rows)} rows, skipped {skipped} malformed lines")
    return rows


def parse_amount(amount_str: str) -> int:
    """
    Parse an export amount such as "£1,234.56" to pence.

    Raises:
        MalformedInputError: if the value is not a number
    """
    if not amount_str or not isinstance(amount_str, str):
        raise MalformedInputError(f"Invalid amount input: {amount_str!r}", column="amount")

    clean = amount_str.replace("£", "").replace(",", "").strip()
    try:
        amount = Decimal(clean)
    except InvalidOperation:
        raise MalformedInputError(
            f'Invalid amount value: "{amount_str}" (cleaned: "{clean}")', column="amount"
        )
    if not amount.is_finite():
        raise MalformedInputError(f"Invalid amount value: {amount_str!r}", column="amount")

    try:
        pence = (amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise MalformedInputError(f"Amount out of range: {amount_str!r}", column="amount")
    return int(pence)


def parse_date(date_str: str) -> date:
    """
    Parse a D/M/YYYY or DD/MM/YYYY export date.

    Raises:
        MalformedInputError: if the string is not a real calendar date
    """
    if not date_str or not isinstance(date_str, str) or not DATE_PATTERN.match(date_str.strip()):
        raise MalformedInputError(f"Invalid date string: {date_str!r}", column="date")

    day, month, year = (int(part) for part in date_str.strip().split("/"))
    try:
        return date(year, month, day)
    except ValueError:
        raise MalformedInputError(
            f"Invalid date components: day={day}, month={month}, year={year}", column="date"
        )


def extract_month(date_str: str) -> str:
    """Month key (YYYY-MM) for an export date."""
    return parse_date(date_str).strftime("%Y-%m")
