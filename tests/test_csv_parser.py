"""Tests for CSV row parsing, amounts and dates."""

from datetime import date

import pytest

from csv_parser import (
    decode_upload,
    extract_month,
    is_header_line,
    parse_amount,
    parse_csv,
    parse_date,
    split_csv_line,
)
from exceptions import MalformedInputError


# ============================================================================
# Line splitting
# ============================================================================

def test_split_plain_line():
    """Test splitting an unquoted line into its three fields."""
    assert split_csv_line("01/03/2024,TESCO STORES,£12.50") == ["01/03/2024", "TESCO STORES", "£12.50"]


def test_split_keeps_commas_inside_quotes():
    """Test that commas inside quoted fields are kept."""
    fields = split_csv_line('"01/03/2024","ACME, INC","£1,234.56"')
    assert fields == ["01/03/2024", "ACME, INC", "£1,234.56"]


def test_split_doubled_quote_is_literal():
    """Test that a doubled quote inside quotes becomes a literal quote."""
    fields = split_csv_line('01/03/2024,"THE ""BEST"" CAFE",£3.00')
    assert fields[1] == 'THE "BEST" CAFE'


def test_split_trims_fields():
    """Test that surrounding whitespace is trimmed from each field."""
    assert split_csv_line(" 01/03/2024 ,  UBER  , £9.99 ") == ["01/03/2024", "UBER", "£9.99"]


def test_header_detection_is_case_insensitive():
    """Test header detection regardless of case and quoting."""
    assert is_header_line("Date,Merchant,Amount")
    assert is_header_line('"DATE","MERCHANT NAME","AMOUNT"')
    assert not is_header_line("01/03/2024,MERCHANT,£1.00")


# ============================================================================
# Whole-file parsing
# ============================================================================

def test_parse_csv_skips_header_and_blank_lines():
    """Test that header and blank lines produce no rows."""
    content = "Date,Merchant,Amount\n\n01/03/2024,ADDISONLEE*1234,£45.00\n\n02/03/2024,UNKNOWN MERCHANT,£10.00\n"
    rows = parse_csv(content)

    assert len(rows) == 2
    assert rows[0].date == "01/03/2024"
    assert rows[0].merchant_name == "ADDISONLEE*1234"
    assert rows[0].amount == "£45.00"


def test_parse_csv_handles_windows_line_endings():
    """Test parsing of CRLF-terminated exports."""
    rows = parse_csv("01/03/2024,UBER,£9.99\r\n02/03/2024,UBER,£5.00\r\n")
    assert [r.amount for r in rows] == ["£9.99", "£5.00"]


@pytest.mark.parametrize("line", [
    "01/03/2024,MERCHANT,£1.00",
    "MERCHANT,01/03/2024,£1.00",
    "MERCHANT,£1.00,01/03/2024",
])
def test_date_column_detected_in_any_position(line):
    """Test that the date column is found in any of the three positions."""
    row = parse_csv(line)[0]
    assert row.date == "01/03/2024"
    assert row.merchant_name == "MERCHANT"
    assert row.amount == "£1.00"
    assert extract_month(row.date) == "2024-03"


def test_malformed_rows_are_dropped():
    """Test that short, undated and invalid-date lines are skipped."""
    content = "\n".join([
        "01/03/2024,GOOD ONE,£1.00",
        "only,two",
        "no date,here,£2.00",
        "31/02/2024,IMPOSSIBLE DATE,£3.00",
        "2024-03-04,ISO DATE,£4.00",
        "05/03/2024,GOOD TWO,£5.00",
    ])
    rows = parse_csv(content)
    assert [r.merchant_name for r in rows] == ["GOOD ONE", "GOOD TWO"]


def test_file_without_valid_rows_fails():
    """Test that a file with no valid rows is rejected."""
    with pytest.raises(MalformedInputError):
        parse_csv("Date,Merchant,Amount\nnot,a,row\n")


def test_empty_file_fails():
    """Test that an empty file is rejected."""
    with pytest.raises(MalformedInputError):
        parse_csv("")


def test_decode_upload_strips_bom():
    """Test that a UTF-8 byte order mark is removed."""
    assert decode_upload("\ufeffDate,Merchant,Amount".encode("utf-8")) == "Date,Merchant,Amount"


def test_decode_upload_falls_back_to_cp1252():
    """Test decoding of a cp1252 pound sign."""
    assert decode_upload(b"01/03/2024,CAFE,\xa31.00") == "01/03/2024,CAFE,£1.00"


# ============================================================================
# Amounts
# ============================================================================

@pytest.mark.parametrize("text,expected", [
    ("£1,234.56", 123456),
    ("£45.00", 4500),
    ("£0.01", 1),
    ("£1,000,000", 100000000),
    ("12.5", 1250),
    ("-£5.00", -500),
])
def test_parse_amount_is_exact_to_the_penny(text, expected):
    """Test amount parsing to whole pence."""
    assert parse_amount(text) == expected


def test_parse_amount_rounds_half_up():
    """Test that fractional pence round half up."""
    assert parse_amount("0.005") == 1
    assert parse_amount("1.115") == 112


@pytest.mark.parametrize("text", ["", "abc", "£", "£1.2.3"])
def test_parse_amount_rejects_non_numbers(text):
    """Test that non-numeric amounts are rejected."""
    with pytest.raises(MalformedInputError):
        parse_amount(text)


@pytest.mark.parametrize("text", ["£12,345,678,901,234,567,890,123,456,789.00", "1e400"])
def test_parse_amount_rejects_out_of_range_values(text):
    """Amounts too large to express in pence are malformed, not a crash."""
    with pytest.raises(MalformedInputError):
        parse_amount(text)


# ============================================================================
# Dates
# ============================================================================

def test_parse_date_single_and_double_digits():
    """Test DD/MM/YYYY dates with one or two digit parts."""
    assert parse_date("1/3/2024") == date(2024, 3, 1)
    assert parse_date("01/03/2024") == date(2024, 3, 1)
    assert parse_date("31/12/2023") == date(2023, 12, 31)


@pytest.mark.parametrize("text", ["31/02/2024", "2024-03-01", "1/13/2024", "", "01/03/24"])
def test_parse_date_rejects_invalid(text):
    """Test rejection of impossible and wrongly formatted dates."""
    with pytest.raises(MalformedInputError):
        parse_date(text)


def test_extract_month():
    """Test deriving the YYYY-MM month key."""
    assert extract_month("01/03/2024") == "2024-03"
    assert extract_month("9/11/2023") == "2023-11"
