"""Tests for the PocketBase record store (HTTP mocked)."""

from datetime import date
from unittest.mock import MagicMock, Mock

import pytest
import requests

from exceptions import PartnerNotFoundError, StoreError, UploadNotFoundError
from models import PartnerStatus, Transaction, Upload
from pocketbase_store import PocketBaseStore, quote_filter_value

BASE = "https://pb.example.com"


def response(status_code=200, data=None):
    resp = Mock()
    resp.status_code = status_code
    resp.ok = 200 <= status_code < 300
    resp.content = b"{}" if data is not None else b""
    resp.json.return_value = data
    resp.text = "error body"
    return resp


@pytest.fixture
def session():
    mock_session = MagicMock()
    mock_session.headers = {}
    return mock_session


@pytest.fixture
def store(session):
    return PocketBaseStore(BASE + "/", token="secret-token", timeout=5, session=session)


def partner_record(record_id="p1", **overrides):
    record = {
        "id": record_id,
        "partner_name": "Addison Lee",
        "status": "signed",
        "signed_at": "2024-02-01 10:00:00.000Z",
        "commission": "10%",
        "stripe_aliases": ["ADDISONLEE"],
        "lifestyle_category": "Travel",
    }
    record.update(overrides)
    return record


def test_auth_header_and_base_url(store, session):
    """Test the auth header and base URL handling."""
    assert store.base_url == BASE
    assert session.headers["Authorization"] == "secret-token"


def test_quote_filter_value_escapes_quotes():
    """Test quoting of filter values."""
    assert quote_filter_value('say "hi"') == '"say \\"hi\\""'


def test_list_partners_follows_pagination(store, session):
    """Test that listing partners reads every page."""
    session.request.side_effect = [
        response(data={"items": [partner_record("p1")], "totalPages": 2}),
        response(data={"items": [partner_record("p2", stripe_aliases='["BLACKLANE"]')], "totalPages": 2}),
    ]

    partners = store.list_partners()

    assert [p.id for p in partners] == ["p1", "p2"]
    assert partners[1].aliases == ["BLACKLANE"]
    assert partners[0].status == PartnerStatus.SIGNED
    first_call, second_call = session.request.call_args_list
    assert first_call.args == ("GET", f"{BASE}/api/collections/partnership_portal/records")
    assert first_call.kwargs["params"]["page"] == 1
    assert second_call.kwargs["params"]["page"] == 2
    assert first_call.kwargs["timeout"] == 5


def test_get_partner_not_found(store, session):
    """Test that a 404 raises PartnerNotFoundError."""
    session.request.return_value = response(404)
    with pytest.raises(PartnerNotFoundError):
        store.get_partner("missing")


def test_update_partner_patches_fields(store, session):
    """Test that partner updates are sent as PATCH."""
    session.request.return_value = response(data=partner_record(stripe_aliases=["ADDISONLEE", "AL"]))

    partner = store.update_partner("p1", {"stripe_aliases": ["ADDISONLEE", "AL"]})

    assert partner.aliases == ["ADDISONLEE", "AL"]
    call = session.request.call_args
    assert call.args == ("PATCH", f"{BASE}/api/collections/partnership_portal/records/p1")
    assert call.kwargs["json"] == {"stripe_aliases": ["ADDISONLEE", "AL"]}


def test_get_upload_for_month_filters_by_month(store, session):
    """Test the month filter for upload lookup."""
    session.request.return_value = response(data={"items": [{"id": "u1", "month": "2024-03", "filename": "m.csv"}]})

    upload = store.get_upload_for_month("2024-03")

    assert upload.id == "u1"
    params = session.request.call_args.kwargs["params"]
    assert params["filter"] == 'month="2024-03"'
    assert params["perPage"] == 1


def test_get_upload_for_month_none(store, session):
    """Test upload lookup with no match."""
    session.request.return_value = response(data={"items": []})
    assert store.get_upload_for_month("2024-03") is None


def test_create_upload_posts_record(store, session):
    """Test creating an upload."""
    session.request.return_value = response(data={"id": "u9", "month": "2024-03", "filename": "m.csv",
                                                  "total_transactions": 2})
    upload = store.create_upload(Upload(id=None, month="2024-03", filename="m.csv", total_transactions=2))

    assert upload.id == "u9"
    body = session.request.call_args.kwargs["json"]
    assert body["month"] == "2024-03"
    assert body["total_transactions"] == 2


def test_delete_upload_missing(store, session):
    """Test that deleting a missing upload raises UploadNotFoundError."""
    session.request.return_value = response(404)
    with pytest.raises(UploadNotFoundError):
        store.delete_upload("u1")


def test_list_transactions_combines_filters(store, session):
    """Test combined upload and merchant filters."""
    session.request.return_value = response(data={"items": [{
        "id": "t1", "upload_id": "u1", "date": "2024-03-01 00:00:00.000Z", "merchant_raw": "ADDISONLEE*1",
        "merchant_normalised": "Addison Lee", "amount": 4500, "partner_id": "", "is_hidden": False,
    }], "totalPages": 1})

    [tx] = store.list_transactions(upload_id="u1", merchant="Addison Lee")

    assert tx.date == date(2024, 3, 1)
    assert tx.partner_id is None
    params = session.request.call_args.kwargs["params"]
    assert params["filter"] == 'upload_id="u1" && merchant_normalised="Addison Lee"'


def test_create_transaction_body(store, session):
    """Test the body sent when creating a transaction."""
    session.request.return_value = response(data={"id": "t1", "upload_id": "u1", "date": "2024-03-01",
                                                  "merchant_raw": "X", "merchant_normalised": "X", "amount": 1})
    store.create_transaction(Transaction(id=None, upload_id="u1", date=date(2024, 3, 1), merchant_raw="X",
                                         merchant_normalised="X", amount=1))

    body = session.request.call_args.kwargs["json"]
    assert body["date"] == "2024-03-01"
    assert body["partner_id"] is None
    assert body["is_hidden"] is False


def test_error_status_raises_store_error(store, session):
    """Test that an error status raises StoreError."""
    session.request.return_value = response(500)
    with pytest.raises(StoreError) as exc_info:
        store.update_transaction("t1", {"is_hidden": True})
    assert exc_info.value.status_code == 500
    assert exc_info.value.operation == "update_transaction"


def test_network_failure_raises_store_error(store, session):
    """Test that a network failure raises StoreError."""
    session.request.side_effect = requests.ConnectionError("boom")
    with pytest.raises(StoreError):
        store.list_uploads()


def test_delete_with_empty_body(store, session):
    """Test a delete answered with no content."""
    session.request.return_value = response(204)
    store.delete_transaction("t1")
    assert session.request.call_args.args == ("DELETE", f"{BASE}/api/collections/stripe_transactions/records/t1")
