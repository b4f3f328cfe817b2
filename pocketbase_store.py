"""
PocketBase Record Store
=======================

RecordStore over a hosted PocketBase instance. Each collection is reached
through its REST endpoint (/api/collections/<name>/records); lists are read
page by page until totalPages is exhausted.

Collections:
    partnership_portal   partners
    stripe_uploads       one record per monthly upload
    stripe_transactions  one record per payment line
"""

import logging
from typing import Any, Dict, List, Optional

import requests

import config
from exceptions import PartnerNotFoundError, StoreError, UploadNotFoundError
from models import Partner, Transaction, Upload
from store import RecordStore

logger = logging.getLogger(__name__)

PARTNERS_COLLECTION = "partnership_portal"
UPLOADS_COLLECTION = "stripe_uploads"
TRANSACTIONS_COLLECTION = "stripe_transactions"

PAGE_SIZE = 500


def quote_filter_value(value: str) -> str:
    """Quote a string for a PocketBase filter expression."""
    escaped = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


class PocketBaseStore(RecordStore):
    """RecordStore backed by the PocketBase REST API."""

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = None,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout if timeout is not None else config.REQUEST_TIMEOUT
        self.session = session or requests.Session()
        self.session.headers.update({"Content-Type": "application/json"})
        if token:
            self.session.headers.update({"Authorization": token})

    def close(self) -> None:
        self.session.close()

    # ========================================================================
    # HTTP plumbing
    # ========================================================================

    def _records_url(self, collection: str, record_id: Optional[str] = None) -> str:
        url = f"{self.base_url}/api/collections/{collection}/records"
        return f"{url}/{record_id}" if record_id else url

    def _request(
        self,
        method: str,
        url: str,
        operation: str,
        params: Optional[Dict[str, Any]] = None,
        body: Optional[Dict[str, Any]] = None,
        not_found: Optional[Exception] = None,
    ) -> Optional[Dict[str, Any]]:
        try:
            response = self.session.request(method, url, params=params, json=body, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"PocketBase {operation} failed: {e}")
            raise StoreError(f"PocketBase {operation} failed: {e}", operation=operation) from e

        if response.status_code == 404 and not_found is not None:
            raise not_found

        if not response.ok:
            logger.error(f"PocketBase {operation} returned {response.status_code}: {response.text[:200]}")
            raise StoreError(
                f"PocketBase {operation} failed with status {response.status_code}",
                operation=operation,
                status_code=response.status_code,
            )

        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    def _list_records(
        self,
        collection: str,
        operation: str,
        filter_expr: Optional[str] = None,
        sort: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Every record matching a filter, following pagination."""
        records = []
        page = 1
        while True:
            params = {"page": page, "perPage": PAGE_SIZE}
            if filter_expr:
                params["filter"] = filter_expr
            if sort:
                params["sort"] = sort

            data = self._request("GET", self._records_url(collection), operation, params=params) or {}
            records.extend(data.get("items", []))

            total_pages = int(data.get("totalPages") or 1)
            if page >= total_pages:
                break
            page += 1

        logger.debug(f"PocketBase {operation}: {len(records)} records")
        return records

    # ========================================================================
    # Partners
    # ========================================================================

    def list_partners(self) -> List[Partner]:
        records = self._list_records(PARTNERS_COLLECTION, "list_partners", sort="created")
        return [Partner.from_record(r) for r in records]

    def get_partner(self, partner_id: str) -> Partner:
        record = self._request(
            "GET",
            self._records_url(PARTNERS_COLLECTION, partner_id),
            "get_partner",
            not_found=PartnerNotFoundError(partner_id),
        )
        return Partner.from_record(record)

    def create_partner(self, partner: Partner) -> Partner:
        record = self._request(
            "POST", self._records_url(PARTNERS_COLLECTION), "create_partner", body=partner.to_record()
        )
        return Partner.from_record(record)

    def update_partner(self, partner_id: str, fields: Dict[str, Any]) -> Partner:
        record = self._request(
            "PATCH",
            self._records_url(PARTNERS_COLLECTION, partner_id),
            "update_partner",
            body=fields,
            not_found=PartnerNotFoundError(partner_id),
        )
        return Partner.from_record(record)

    # ========================================================================
    # Uploads
    # ========================================================================

    def list_uploads(self) -> List[Upload]:
        records = self._list_records(UPLOADS_COLLECTION, "list_uploads", sort="-month")
        return [Upload.from_record(r) for r in records]

    def get_upload_for_month(self, month: str) -> Optional[Upload]:
        data = self._request(
            "GET",
            self._records_url(UPLOADS_COLLECTION),
            "get_upload_for_month",
            params={"filter": f"month={quote_filter_value(month)}", "perPage": 1, "sort": "created"},
        ) or {}
        items = data.get("items", [])
        return Upload.from_record(items[0]) if items else None

    def create_upload(self, upload: Upload) -> Upload:
        record = self._request(
            "POST", self._records_url(UPLOADS_COLLECTION), "create_upload", body=upload.to_record()
        )
        return Upload.from_record(record)

    def delete_upload(self, upload_id: str) -> None:
        self._request(
            "DELETE",
            self._records_url(UPLOADS_COLLECTION, upload_id),
            "delete_upload",
            not_found=UploadNotFoundError(upload_id),
        )

    # ========================================================================
    # Transactions
    # ========================================================================

    def list_transactions(
        self,
        upload_id: Optional[str] = None,
        merchant: Optional[str] = None,
    ) -> List[Transaction]:
        clauses = []
        if upload_id is not None:
            clauses.append(f"upload_id={quote_filter_value(upload_id)}")
        if merchant is not None:
            clauses.append(f"merchant_normalised={quote_filter_value(merchant)}")

        records = self._list_records(
            TRANSACTIONS_COLLECTION,
            "list_transactions",
            filter_expr=" && ".join(clauses) or None,
            sort="date",
        )
        return [Transaction.from_record(r) for r in records]

    def create_transaction(self, transaction: Transaction) -> Transaction:
        record = self._request(
            "POST",
            self._records_url(TRANSACTIONS_COLLECTION),
            "create_transaction",
            body=transaction.to_record(),
        )
        return Transaction.from_record(record)

    def update_transaction(self, transaction_id: str, fields: Dict[str, Any]) -> None:
        self._request(
            "PATCH",
            self._records_url(TRANSACTIONS_COLLECTION, transaction_id),
            "update_transaction",
            body=fields,
        )

    def delete_transaction(self, transaction_id: str) -> None:
        self._request(
            "DELETE",
            self._records_url(TRANSACTIONS_COLLECTION, transaction_id),
            "delete_transaction",
        )
