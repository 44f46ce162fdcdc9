"""
Allocation Ledger - transactional record of batch → order commitments.

Writes are staged inside a transaction and published on commit. Readers
see committed state only unless they ask for staged records explicitly.

Invariants enforced on every write:
- Total allocated against a batch never exceeds the batch weight
- A batch committed to a customer that cannot be reallocated stays with it
- The same batch/customer/order line is staged at most once per transaction

Single writer: a new begin_transaction() discards any staged state.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, Optional

import structlog
from pydantic import ValidationError as PydanticValidationError

from exceptions import (
    CapacityError,
    DuplicateAllocationError,
    InvalidQuantityError,
    MissingFieldError,
    PersistenceError,
    ReallocationError,
    TransactionError,
)
from models.allocation import LEDGER_SCHEMA_VERSION, AllocationRecord, LedgerEnvelope
from models.orders import OrderDemand, is_terminal_status
from models.stock import StockBatch
from services.ledger_store import LedgerStore, get_ledger_store
from utils.text_utils import normalize_batch_number

logger = structlog.get_logger(__name__)


class AllocationLedger:
    """
    Allocation ledger business logic.

    Core methods:
    - load: Initialize from the store, migrating old envelopes
    - begin/commit/rollback_transaction: Transaction control
    - add_allocation: Stage one validated record
    - remove_allocation / reset_allocations / clear_allocations: Deletion
    - update_order_statuses: Refresh reallocation flags from order import
    - get_*: Query methods for status and UI
    """

    def __init__(self, store: LedgerStore):
        self.store = store
        self._committed: list[AllocationRecord] = []
        self._pending: Optional[list[AllocationRecord]] = None
        self.last_updated: Optional[datetime] = None

    # ===================
    # LIFECYCLE
    # ===================

    def load(self) -> int:
        """
        Replace in-memory state with the stored envelope.

        Unreadable storage or records are logged and skipped. Envelopes
        written by an older schema are normalized and saved back at the
        current version.

        Returns:
            Number of records loaded
        """
        self._pending = None
        self._committed = []
        self.last_updated = None

        try:
            raw = self.store.load()
        except PersistenceError as e:
            logger.error("ledger_load_failed", error=e.message)
            return 0

        if raw is None:
            logger.info("ledger_empty")
            return 0

        if not isinstance(raw, dict):
            logger.warning("ledger_envelope_invalid", envelope_type=type(raw).__name__)
            return 0

        version = str(raw.get("schema_version") or "1")
        records, dropped = self._parse_records(raw.get("records") or [])
        self._committed = records
        self.last_updated = self._parse_timestamp(raw.get("last_updated"))

        if version != LEDGER_SCHEMA_VERSION:
            logger.info(
                "ledger_migrating",
                from_version=version,
                to_version=LEDGER_SCHEMA_VERSION,
                kept=len(records),
                dropped=dropped,
            )
            try:
                self._persist()
            except PersistenceError as e:
                logger.warning("ledger_migration_save_failed", error=e.message)

        logger.info("ledger_loaded", record_count=len(records), dropped=dropped)
        return len(records)

    def _parse_records(self, items: list) -> tuple[list[AllocationRecord], int]:
        records = []
        dropped = 0
        for item in items:
            try:
                record = AllocationRecord.model_validate(item)
            except PydanticValidationError as e:
                dropped += 1
                logger.warning("ledger_record_dropped", reason="invalid", error_count=e.error_count())
                continue

            batch_number = normalize_batch_number(record.batch_number)
            if not batch_number:
                dropped += 1
                logger.warning("ledger_record_dropped", reason="batch_number", allocation_id=record.allocation_id)
                continue

            if batch_number != record.batch_number:
                record = record.model_copy(update={"batch_number": batch_number})
            records.append(record)
        return records, dropped

    @staticmethod
    def _parse_timestamp(value) -> Optional[datetime]:
        if not value:
            return None
        try:
            return datetime.fromisoformat(str(value))
        except ValueError:
            return None

    def _persist(self) -> None:
        envelope = LedgerEnvelope(
            records=self._committed,
            last_updated=self.last_updated or datetime.now(timezone.utc),
        )
        self.store.save(envelope.model_dump(mode="json"))

    def _publish(self, records: list[AllocationRecord]) -> None:
        """Swap committed state and persist; restore it if the store fails."""
        previous = self._committed
        previous_updated = self.last_updated

        self._committed = records
        self.last_updated = datetime.now(timezone.utc)
        try:
            self._persist()
        except PersistenceError:
            self._committed = previous
            self.last_updated = previous_updated
            raise

    # ===================
    # TRANSACTIONS
    # ===================

    @property
    def in_transaction(self) -> bool:
        return self._pending is not None

    def begin_transaction(self) -> None:
        """Open a transaction. Staged records from an earlier one are discarded."""
        if self._pending:
            logger.warning("ledger_transaction_discarded", staged_count=len(self._pending))
        self._pending = []
        logger.debug("ledger_transaction_started")

    def commit_transaction(self) -> list[AllocationRecord]:
        """
        Publish staged records and persist.

        Returns:
            The records committed by this transaction

        Raises:
            TransactionError: No transaction is open
            PersistenceError: Store failed; committed state is unchanged and
                staged records are discarded
        """
        if self._pending is None:
            raise TransactionError("commit")

        staged = self._pending
        self._pending = None

        try:
            self._publish(self._committed + staged)
        except PersistenceError as e:
            logger.error("ledger_commit_failed", staged_count=len(staged), error=e.message)
            raise

        logger.info("ledger_transaction_committed", record_count=len(staged))
        return staged

    def rollback_transaction(self) -> int:
        """Discard staged records. Returns how many were discarded."""
        discarded = len(self._pending or [])
        self._pending = None
        logger.info("ledger_transaction_rolled_back", discarded=discarded)
        return discarded

    # ===================
    # WRITES
    # ===================

    def add_allocation(self, record: AllocationRecord) -> AllocationRecord:
        """
        Validate and stage one allocation.

        Returns:
            The staged record (normalized batch number, remaining quantity set)

        Raises:
            TransactionError: No transaction is open
            MissingFieldError: Batch number, sales document or customer missing
            InvalidQuantityError: Quantity is not positive
            ReallocationError: Batch is committed to another customer and locked
            DuplicateAllocationError: Same batch/customer/order already staged
            CapacityError: Batch weight would be exceeded
        """
        if self._pending is None:
            raise TransactionError("add an allocation")

        batch_number = normalize_batch_number(record.batch_number)
        if not batch_number:
            raise MissingFieldError("batch_number")
        if not record.sales_document:
            raise MissingFieldError("sales_document", batch_number)
        if not record.customer_id:
            raise MissingFieldError("customer_id", batch_number)
        if record.quantity_kg <= 0:
            raise InvalidQuantityError(batch_number, record.quantity_kg)

        owner = self.locking_owner(batch_number, record.customer_id)
        if owner is not None:
            raise ReallocationError(batch_number, owner, record.customer_id)

        for staged in self._pending:
            if (
                staged.batch_number == batch_number
                and staged.customer_id == record.customer_id
                and staged.sales_document == record.sales_document
                and staged.sales_document_item == record.sales_document_item
            ):
                raise DuplicateAllocationError(
                    batch_number,
                    record.customer_id,
                    record.sales_document,
                    record.sales_document_item,
                )

        already = self.allocated_quantity(batch_number, include_staged=True)
        available = record.original_batch_quantity_kg - already
        if record.quantity_kg > available:
            raise CapacityError(batch_number, record.quantity_kg, max(available, Decimal("0")))

        staged_record = record.model_copy(update={
            "batch_number": batch_number,
            "remaining_batch_quantity_kg": available - record.quantity_kg,
        })
        self._pending.append(staged_record)

        logger.debug(
            "allocation_staged",
            batch_number=batch_number,
            customer_id=record.customer_id,
            sales_document=record.sales_document,
            quantity_kg=str(record.quantity_kg),
        )
        return staged_record

    def remove_allocation(
        self,
        batch_number: Optional[str] = None,
        *,
        allocation_id: Optional[str] = None
    ) -> int:
        """
        Delete records by batch number or by allocation id.

        Removes from staged and committed state. Committed changes are
        persisted immediately.

        Returns:
            Number of records removed
        """
        normalized = normalize_batch_number(batch_number)
        if not allocation_id and not normalized:
            raise MissingFieldError("batch_number or allocation_id")

        def predicate(record: AllocationRecord) -> bool:
            if allocation_id:
                return record.allocation_id == allocation_id
            return record.batch_number == normalized

        removed = 0
        if self._pending:
            kept = [r for r in self._pending if not predicate(r)]
            removed += len(self._pending) - len(kept)
            self._pending = kept

        kept = [r for r in self._committed if not predicate(r)]
        committed_removed = len(self._committed) - len(kept)
        if committed_removed:
            self._publish(kept)
            removed += committed_removed

        logger.info(
            "allocations_removed",
            batch_number=batch_number,
            allocation_id=allocation_id,
            removed=removed,
        )
        return removed

    def reset_allocations(self, stock: Iterable[StockBatch]) -> int:
        """
        Drop records for batches missing from a new stock snapshot.

        Returns:
            Number of committed records pruned
        """
        present = {batch.batch_number for batch in stock}

        if self._pending:
            self._pending = [r for r in self._pending if r.batch_number in present]

        kept = [r for r in self._committed if r.batch_number in present]
        pruned = len(self._committed) - len(kept)
        if pruned:
            self._publish(kept)

        logger.info("ledger_reset", batch_count=len(present), pruned=pruned, kept=len(kept))
        return pruned

    def clear_allocations(self) -> int:
        """Remove every record. Returns how many committed records were removed."""
        cleared = len(self._committed)
        self._pending = None
        self._publish([])
        logger.warning("ledger_cleared", cleared=cleared)
        return cleared

    def update_order_statuses(self, orders: Iterable[OrderDemand]) -> int:
        """
        Refresh order status snapshots from the latest order import.

        Records of orders that are now delivered, shipped or finished
        become reallocatable.

        Returns:
            Number of committed records updated
        """
        status_by_order = {
            order.order_key: order.order_status_raw
            for order in orders
            if order.sales_document
        }
        if not status_by_order:
            return 0

        now = datetime.now(timezone.utc)
        updated = 0
        refreshed = []
        for record in self._committed:
            key = (record.sales_document, record.sales_document_item)
            if key not in status_by_order:
                refreshed.append(record)
                continue

            raw_status = status_by_order[key]
            can_reallocate = record.can_reallocate or is_terminal_status(raw_status)
            if raw_status == record.order_status_snapshot and can_reallocate == record.can_reallocate:
                refreshed.append(record)
                continue

            refreshed.append(record.model_copy(update={
                "order_status_snapshot": raw_status,
                "can_reallocate": can_reallocate,
                "last_status_update": now,
            }))
            updated += 1

        if updated:
            self._publish(refreshed)
            logger.info("ledger_order_statuses_updated", updated=updated)
        return updated

    # ===================
    # QUERIES
    # ===================

    def _records(self, include_staged: bool) -> list[AllocationRecord]:
        if include_staged and self._pending:
            return self._committed + self._pending
        return list(self._committed)

    def get_all_allocations(self, include_staged: bool = False) -> list[AllocationRecord]:
        return self._records(include_staged)

    def get_allocations_by_batch(
        self,
        batch_number: str,
        include_staged: bool = False
    ) -> list[AllocationRecord]:
        normalized = normalize_batch_number(batch_number)
        return [r for r in self._records(include_staged) if r.batch_number == normalized]

    def get_allocations_by_order(
        self,
        sales_document: str,
        sales_document_item: Optional[str] = None,
        include_staged: bool = False
    ) -> list[AllocationRecord]:
        return [
            r for r in self._records(include_staged)
            if r.sales_document == sales_document
            and (sales_document_item is None or r.sales_document_item == sales_document_item)
        ]

    def get_allocations_by_customer(
        self,
        customer_id: str,
        include_staged: bool = False
    ) -> list[AllocationRecord]:
        return [r for r in self._records(include_staged) if r.customer_id == customer_id]

    def locking_owner(self, batch_number: str, customer_id: str) -> Optional[str]:
        """Another customer holding the batch with a non-reallocatable commitment, if any."""
        for record in self.get_allocations_by_batch(batch_number):
            if record.customer_id != customer_id and not record.can_reallocate:
                return record.customer_id
        return None

    def allocated_quantity(self, batch_number: str, include_staged: bool = False) -> Decimal:
        """Total KG allocated against a batch."""
        return sum(
            (r.quantity_kg for r in self.get_allocations_by_batch(batch_number, include_staged)),
            Decimal("0"),
        )


# ===================
# SINGLETON
# ===================

_allocation_ledger: Optional[AllocationLedger] = None


def get_allocation_ledger() -> AllocationLedger:
    """Get or create the session AllocationLedger, loaded from the configured store."""
    global _allocation_ledger
    if _allocation_ledger is None:
        _allocation_ledger = AllocationLedger(get_ledger_store())
        _allocation_ledger.load()
    return _allocation_ledger
