"""
Upload Lifecycle Manager
========================

Takes a monthly payment export from raw bytes to persisted transactions:

1. prepare()          parse rows, derive the month, match merchants, and
                      look for an upload that already covers the month
2. confirm_match() /  human review of fuzzy proposals
   dismiss_match()
3. replace_existing() or cancel() when the month is already taken
4. commit()           build transaction rows, then save confirmed aliases,
                      create the Upload and persist rows in batches

There is no cross-record transaction in the hosted store. A replacement that
fails between its two deletes, or a batch that fails mid-upload, leaves the
records already written in place and says how far it got.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Union

import config
from csv_parser import decode_upload, extract_month, parse_amount, parse_csv, parse_date
from eligibility import EligibilityResolver
from exceptions import (
    BatchPersistenceError,
    DuplicateMonthError,
    MalformedInputError,
    ReplacementError,
    StoreError,
    UploadNotFoundError,
    ValidationError,
)
from matching import FuzzyMatch, MatchReport, find_matching_partner, match_merchants
from merchant_actions import append_partner_alias
from merchants import normalise_merchant
from models import CSVRow, Partner, Transaction, Upload

logger = logging.getLogger(__name__)


@dataclass
class UploadPreview:
    """A parsed, matched upload waiting for review and commit."""
    filename: str
    rows: List[CSVRow]
    month: str
    match_report: MatchReport
    existing_upload: Optional[Upload] = None
    cancelled: bool = False

    @property
    def has_conflict(self) -> bool:
        """True while another upload holds this month and no decision has been made."""
        return self.existing_upload is not None and not self.cancelled

    @property
    def pending_matches(self) -> List[FuzzyMatch]:
        return self.match_report.pending


@dataclass
class UploadResult:
    """What commit() wrote."""
    upload: Upload
    committed: int
    new_aliases: int
    matched_count: int
    unmatched_count: int


class UploadManager:
    """Runs the upload lifecycle against a record store."""

    def __init__(
        self,
        store,
        resolver: Optional[EligibilityResolver] = None,
        batch_size: int = None,
        batch_delay: float = None,
        min_score: int = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.store = store
        self.resolver = resolver or EligibilityResolver()
        self.batch_size = batch_size or config.UPLOAD_BATCH_SIZE
        self.batch_delay = config.UPLOAD_BATCH_DELAY if batch_delay is None else batch_delay
        self.min_score = config.FUZZY_MIN_SCORE if min_score is None else min_score
        self._sleep = sleep

    # ========================================================================
    # Preview
    # ========================================================================

    def prepare(self, content: Union[bytes, str], filename: str) -> UploadPreview:
        """
        Parse and match an export without writing anything.

        Raises:
            MalformedInputError: if the file has no usable rows
        """
        text = decode_upload(content) if isinstance(content, bytes) else content
        rows = parse_csv(text)
        month = extract_month(rows[0].date)

        partners = self.store.list_partners()
        report = match_merchants([row.merchant_name for row in rows], partners, self.min_score)

        existing = self.store.get_upload_for_month(month)
        if existing:
            logger.warning(f"Upload {existing.id} already covers {month}; replace or cancel required")

        logger.info(f"Prepared {filename}: {len(rows)} rows for {month}")
        return UploadPreview(
            filename=filename,
            rows=rows,
            month=month,
            match_report=report,
            existing_upload=existing,
        )

    def _proposal(self, preview: UploadPreview, merchant_name: str) -> FuzzyMatch:
        match = preview.match_report.proposal_for(merchant_name)
        if match is None:
            raise ValidationError(
                f"No proposed match for {merchant_name!r}", field="merchant_name", value=merchant_name
            )
        return match

    def confirm_match(self, preview: UploadPreview, merchant_name: str) -> FuzzyMatch:
        """Accept a fuzzy proposal after re-checking the partner as it is stored now."""
        match = self._proposal(preview, merchant_name)
        match.confirm(self.store.get_partner(match.partner.id))
        logger.info(f"Confirmed {merchant_name!r} -> {match.partner.name!r} ({match.score})")
        return match

    def dismiss_match(self, preview: UploadPreview, merchant_name: str) -> FuzzyMatch:
        match = self._proposal(preview, merchant_name)
        match.dismiss()
        logger.info(f"Dismissed {merchant_name!r} -> {match.partner.name!r}")
        return match

    # ========================================================================
    # Duplicate month decision
    # ========================================================================

    def cancel(self, preview: UploadPreview) -> UploadPreview:
        preview.cancelled = True
        logger.info(f"Upload of {preview.filename} for {preview.month} cancelled")
        return preview

    def replace_existing(self, preview: UploadPreview) -> UploadPreview:
        """
        Delete the upload currently holding the month, transactions first.

        Safe to call again after a failure: a repeat run deletes whatever is
        left.

        Raises:
            ReplacementError: naming the stage that failed
        """
        existing = preview.existing_upload
        if existing is None:
            return preview

        try:
            removed = self.store.delete_transactions_for_upload(existing.id)
        except StoreError as e:
            raise ReplacementError(
                f"Could not delete transactions of upload {existing.id}: {e.message}",
                upload_id=existing.id,
                stage="transactions",
            ) from e

        try:
            self.store.delete_upload(existing.id)
        except UploadNotFoundError:
            logger.warning(f"Upload {existing.id} was already gone")
        except StoreError as e:
            raise ReplacementError(
                f"Deleted {removed} transactions but not upload {existing.id}: {e.message}",
                upload_id=existing.id,
                stage="upload",
            ) from e

        logger.info(f"Replaced upload {existing.id} for {preview.month} ({removed} transactions removed)")
        preview.existing_upload = None
        return preview

    # ========================================================================
    # Commit
    # ========================================================================

    def _confirmed_partners(
        self,
        preview: UploadPreview,
        roster: Dict[str, Partner],
    ) -> Dict[str, FuzzyMatch]:
        """Confirmed matches whose partner is still signed, keyed by raw merchant. Writes nothing."""
        confirmed = {}
        for match in preview.match_report.confirmed:
            current = roster.get(match.partner.id)
            if current is None or not current.is_signed:
                logger.warning(
                    f"Skipping confirmed match {match.merchant_name!r}: "
                    f"partner {match.partner.id} is no longer signed"
                )
                continue
            match.partner = current
            confirmed[match.merchant_name] = match
        return confirmed

    def _save_confirmed_aliases(self, confirmed: Dict[str, FuzzyMatch]) -> int:
        """Append the suggested alias of each confirmed match to its partner."""
        for match in confirmed.values():
            append_partner_alias(self.store, match.partner.id, match.suggested_alias)
        return len(confirmed)

    def build_transactions(
        self,
        rows: List[CSVRow],
        confirmed: Dict[str, Partner],
        signed: List[Partner],
    ) -> List[Transaction]:
        """Turn rows into transactions, attributing eligible ones."""
        transactions = []
        for index, row in enumerate(rows):
            if not row.merchant_name:
                logger.debug(f"Skipping row {index}: no merchant")
                continue
            try:
                amount = parse_amount(row.amount)
                tx_date = parse_date(row.date)
            except MalformedInputError as e:
                logger.debug(f"Skipping row {index}: {e.message}")
                continue

            merchant_normalised = normalise_merchant(row.merchant_name)
            partner = confirmed.get(row.merchant_name) or find_matching_partner(
                merchant_normalised, signed, row.merchant_name
            )

            partner_id = None
            if partner is not None:
                if self.resolver.is_eligible(tx_date, partner):
                    partner_id = partner.id
                else:
                    logger.debug(
                        f"{row.merchant_name!r} matched {partner.name!r} but {tx_date} is before signing"
                    )

            transactions.append(Transaction(
                id=None,
                upload_id=None,
                date=tx_date,
                merchant_raw=row.merchant_name,
                merchant_normalised=merchant_normalised,
                amount=amount,
                partner_id=partner_id,
            ))
        return transactions

    def commit(self, preview: UploadPreview, uploaded_by: str = "") -> UploadResult:
        """
        Write the upload and its transactions.

        Pending proposals are treated as dismissed.

        Raises:
            ValidationError: if the preview was cancelled
            DuplicateMonthError: if another upload holds the month
            MalformedInputError: if no row survives amount parsing
            BatchPersistenceError: if a batch fails; earlier rows stay committed
        """
        if preview.cancelled:
            raise ValidationError("Upload was cancelled", field="month", value=preview.month)

        existing = self.store.get_upload_for_month(preview.month)
        if existing:
            preview.existing_upload = existing
            raise DuplicateMonthError(preview.month, existing.id)

        for match in preview.pending_matches:
            match.dismiss()

        roster = {p.id: p for p in self.store.list_partners()}
        confirmed = self._confirmed_partners(preview, roster)
        signed = [p for p in roster.values() if p.is_signed]

        transactions = self.build_transactions(
            preview.rows,
            {merchant: match.partner for merchant, match in confirmed.items()},
            signed,
        )
        if not transactions:
            raise MalformedInputError("No valid transactions to upload")

        new_aliases = self._save_confirmed_aliases(confirmed)

        matched_count = sum(1 for tx in transactions if tx.partner_id)
        upload = self.store.create_upload(Upload(
            id=None,
            month=preview.month,
            filename=preview.filename,
            uploaded_by=uploaded_by,
            total_transactions=len(transactions),
            total_spend=sum(tx.amount for tx in transactions),
            matched_count=matched_count,
            unmatched_count=len(transactions) - matched_count,
        ))

        for tx in transactions:
            tx.upload_id = upload.id

        try:
            committed = self.persist_transactions(transactions)
        except BatchPersistenceError as e:
            e.details["upload_id"] = upload.id
            raise

        logger.info(
            f"Committed upload {upload.id} for {preview.month}: {committed} transactions, "
            f"{matched_count} attributed, {new_aliases} new aliases"
        )
        return UploadResult(
            upload=upload,
            committed=committed,
            new_aliases=new_aliases,
            matched_count=matched_count,
            unmatched_count=len(transactions) - matched_count,
        )

    def persist_transactions(self, transactions: List[Transaction]) -> int:
        """
        Create transactions in fixed-size batches with a pause between batches.

        Returns:
            Number of transactions created

        Raises:
            BatchPersistenceError: on the first failure, with the committed count
        """
        total = len(transactions)
        committed = 0

        for start in range(0, total, self.batch_size):
            batch = transactions[start:start + self.batch_size]
            for tx in batch:
                try:
                    self.store.create_transaction(tx)
                except StoreError as e:
                    logger.error(f"Batch {start // self.batch_size + 1} failed after {committed}/{total}: {e}")
                    raise BatchPersistenceError(
                        f"Saved {committed} of {total} transactions before a failure: {e.message}",
                        committed=committed,
                        total=total,
                        status_code=e.status_code,
                    ) from e
                committed += 1

            if start + self.batch_size < total:
                self._sleep(self.batch_delay)

        return committed
