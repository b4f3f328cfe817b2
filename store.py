"""
Record Store Layer
==================

Persistence for the three collections the reconciliation engine works with:
partners, uploads and transactions.

RecordStore is the interface the engine talks to. SQLiteRecordStore backs
local development and tests; the hosted PocketBase store lives in
pocketbase_store.py. get_store() picks one from configuration.
"""

import json
import logging
import sqlite3
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import config
from exceptions import PartnerNotFoundError, StoreError, UploadNotFoundError
from models import Partner, Transaction, Upload

logger = logging.getLogger(__name__)


class RecordStore(ABC):
    """Interface over the partner, upload and transaction collections."""

    # ------------------------------------------------------------------
    # Partners
    # ------------------------------------------------------------------

    @abstractmethod
    def list_partners(self) -> List[Partner]:
        """All partners in roster order."""

    @abstractmethod
    def get_partner(self, partner_id: str) -> Partner:
        """Raises PartnerNotFoundError if the id is unknown."""

    @abstractmethod
    def create_partner(self, partner: Partner) -> Partner:
        """Persist a new partner and return it with its id."""

    @abstractmethod
    def update_partner(self, partner_id: str, fields: Dict[str, Any]) -> Partner:
        """Apply record-level field changes (hosted field names) and return the partner."""

    # ------------------------------------------------------------------
    # Uploads
    # ------------------------------------------------------------------

    @abstractmethod
    def list_uploads(self) -> List[Upload]:
        """All uploads, newest month first."""

    @abstractmethod
    def get_upload_for_month(self, month: str) -> Optional[Upload]:
        """The upload for a YYYY-MM month key, if one exists."""

    @abstractmethod
    def create_upload(self, upload: Upload) -> Upload:
        """Persist a new upload and return it with its id."""

    @abstractmethod
    def delete_upload(self, upload_id: str) -> None:
        """Delete the upload record only; its transactions are not touched."""

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @abstractmethod
    def list_transactions(
        self,
        upload_id: Optional[str] = None,
        merchant: Optional[str] = None,
    ) -> List[Transaction]:
        """Transactions, optionally narrowed to one upload and/or canonical merchant."""

    @abstractmethod
    def create_transaction(self, transaction: Transaction) -> Transaction:
        """Persist a new transaction and return it with its id."""

    @abstractmethod
    def update_transaction(self, transaction_id: str, fields: Dict[str, Any]) -> None:
        """Apply field changes (partner_id, is_hidden) to one transaction."""

    @abstractmethod
    def delete_transaction(self, transaction_id: str) -> None:
        """Delete one transaction."""

    def close(self) -> None:
        """Release any connection the store holds."""

    def delete_transactions_for_upload(self, upload_id: str) -> int:
        """Delete every transaction owned by an upload; returns how many were removed."""
        transactions = self.list_transactions(upload_id=upload_id)
        for tx in transactions:
            self.delete_transaction(tx.id)
        logger.info(f"Deleted {len(transactions)} transactions for upload {upload_id}")
        return len(transactions)


class SQLiteRecordStore(RecordStore):
    """RecordStore over a local SQLite file."""

    def __init__(self, db_path: str = None):
        self.db_path = db_path or config.DB_PATH
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.init_db()

    def close(self):
        """Close database connection."""
        self.conn.close()

    def init_db(self) -> None:
        """Create tables if they do not exist."""
        cursor = self.conn.cursor()
        cursor.executescript("""
            CREATE TABLE IF NOT EXISTS partners (
                id TEXT PRIMARY KEY,
                partner_name TEXT NOT NULL,
                status TEXT NOT NULL,
                signed_at TEXT,
                commission TEXT,
                stripe_aliases TEXT,
                lifestyle_category TEXT,
                lead_date TEXT,
                created TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS uploads (
                id TEXT PRIMARY KEY,
                month TEXT NOT NULL,
                filename TEXT,
                uploaded_by TEXT,
                total_transactions INTEGER DEFAULT 0,
                total_spend INTEGER DEFAULT 0,
                matched_count INTEGER DEFAULT 0,
                unmatched_count INTEGER DEFAULT 0,
                created TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS transactions (
                id TEXT PRIMARY KEY,
                upload_id TEXT NOT NULL,
                date TEXT,
                merchant_raw TEXT,
                merchant_normalised TEXT,
                amount INTEGER NOT NULL,
                partner_id TEXT,
                category TEXT,
                is_hidden INTEGER DEFAULT 0,
                created TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_uploads_month ON uploads(month);
            CREATE INDEX IF NOT EXISTS idx_transactions_upload ON transactions(upload_id);
            CREATE INDEX IF NOT EXISTS idx_transactions_merchant ON transactions(merchant_normalised);
        """)
        self.conn.commit()

    @staticmethod
    def _new_id() -> str:
        return uuid.uuid4().hex[:15]

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).isoformat()

    def _execute(self, operation: str, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        try:
            cursor = self.conn.execute(sql, params)
            self.conn.commit()
            return cursor
        except sqlite3.Error as e:
            logger.error(f"Error during {operation}: {e}")
            raise StoreError(f"SQLite {operation} failed: {e}", operation=operation) from e

    # ========================================================================
    # Partners
    # ========================================================================

    @staticmethod
    def _partner_from_row(row: sqlite3.Row) -> Partner:
        record = dict(row)
        record["stripe_aliases"] = json.loads(row["stripe_aliases"]) if row["stripe_aliases"] else []
        return Partner.from_record(record)

    def list_partners(self) -> List[Partner]:
        rows = self._execute("list_partners", "SELECT * FROM partners ORDER BY created, rowid").fetchall()
        return [self._partner_from_row(row) for row in rows]

    def get_partner(self, partner_id: str) -> Partner:
        row = self._execute("get_partner", "SELECT * FROM partners WHERE id = ?", (partner_id,)).fetchone()
        if not row:
            raise PartnerNotFoundError(partner_id)
        return self._partner_from_row(row)

    def create_partner(self, partner: Partner) -> Partner:
        partner_id = partner.id or self._new_id()
        record = partner.to_record()
        self._execute("create_partner", """
            INSERT INTO partners (id, partner_name, status, signed_at, commission,
                                  stripe_aliases, lifestyle_category, lead_date, created)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            partner_id,
            record["partner_name"],
            record["status"],
            record["signed_at"],
            record["commission"],
            json.dumps(record["stripe_aliases"]),
            record["lifestyle_category"],
            record["lead_date"],
            self._now(),
        ))
        return self.get_partner(partner_id)

    def update_partner(self, partner_id: str, fields: Dict[str, Any]) -> Partner:
        self.get_partner(partner_id)
        if fields:
            values = dict(fields)
            if "stripe_aliases" in values:
                values["stripe_aliases"] = json.dumps(list(values["stripe_aliases"]))
            assignments = ", ".join(f"{column} = ?" for column in values)
            self._execute(
                "update_partner",
                f"UPDATE partners SET {assignments} WHERE id = ?",
                tuple(values.values()) + (partner_id,),
            )
        return self.get_partner(partner_id)

    # ========================================================================
    # Uploads
    # ========================================================================

    def list_uploads(self) -> List[Upload]:
        rows = self._execute("list_uploads", "SELECT * FROM uploads ORDER BY month DESC").fetchall()
        return [Upload.from_record(dict(row)) for row in rows]

    def get_upload_for_month(self, month: str) -> Optional[Upload]:
        row = self._execute(
            "get_upload_for_month",
            "SELECT * FROM uploads WHERE month = ? ORDER BY created LIMIT 1",
            (month,),
        ).fetchone()
        return Upload.from_record(dict(row)) if row else None

    def create_upload(self, upload: Upload) -> Upload:
        upload_id = upload.id or self._new_id()
        created = self._now()
        record = upload.to_record()
        self._execute("create_upload", """
            INSERT INTO uploads (id, month, filename, uploaded_by, total_transactions,
                                 total_spend, matched_count, unmatched_count, created)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            upload_id,
            record["month"],
            record["filename"],
            record["uploaded_by"],
            record["total_transactions"],
            record["total_spend"],
            record["matched_count"],
            record["unmatched_count"],
            created,
        ))
        return Upload.from_record({**record, "id": upload_id, "created": created})

    def delete_upload(self, upload_id: str) -> None:
        cursor = self._execute("delete_upload", "DELETE FROM uploads WHERE id = ?", (upload_id,))
        if cursor.rowcount == 0:
            raise UploadNotFoundError(upload_id)

    # ========================================================================
    # Transactions
    # ========================================================================

    def list_transactions(
        self,
        upload_id: Optional[str] = None,
        merchant: Optional[str] = None,
    ) -> List[Transaction]:
        clauses = []
        params = []
        if upload_id is not None:
            clauses.append("upload_id = ?")
            params.append(upload_id)
        if merchant is not None:
            clauses.append("merchant_normalised = ?")
            params.append(merchant)

        sql = "SELECT * FROM transactions"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY date, rowid"

        rows = self._execute("list_transactions", sql, tuple(params)).fetchall()
        return [Transaction.from_record(dict(row)) for row in rows]

    def create_transaction(self, transaction: Transaction) -> Transaction:
        transaction_id = transaction.id or self._new_id()
        record = transaction.to_record()
        self._execute("create_transaction", """
            INSERT INTO transactions (id, upload_id, date, merchant_raw, merchant_normalised,
                                      amount, partner_id, category, is_hidden, created)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            transaction_id,
            record["upload_id"],
            record["date"],
            record["merchant_raw"],
            record["merchant_normalised"],
            record["amount"],
            record["partner_id"],
            record["category"],
            1 if record["is_hidden"] else 0,
            self._now(),
        ))
        return Transaction.from_record({**record, "id": transaction_id})

    def update_transaction(self, transaction_id: str, fields: Dict[str, Any]) -> None:
        if not fields:
            return
        values = dict(fields)
        if "is_hidden" in values:
            values["is_hidden"] = 1 if values["is_hidden"] else 0
        assignments = ", ".join(f"{column} = ?" for column in values)
        self._execute(
            "update_transaction",
            f"UPDATE transactions SET {assignments} WHERE id = ?",
            tuple(values.values()) + (transaction_id,),
        )

    def delete_transaction(self, transaction_id: str) -> None:
        self._execute("delete_transaction", "DELETE FROM transactions WHERE id = ?", (transaction_id,))


def get_store() -> RecordStore:
    """Hosted store when POCKETBASE_URL is configured, local SQLite otherwise."""
    if config.POCKETBASE_URL:
        from pocketbase_store import PocketBaseStore
        logger.info(f"Using PocketBase record store at {config.POCKETBASE_URL}")
        return PocketBaseStore(config.POCKETBASE_URL, token=config.POCKETBASE_TOKEN)
    logger.info(f"Using SQLite record store at {config.DB_PATH}")
    return SQLiteRecordStore(config.DB_PATH)
