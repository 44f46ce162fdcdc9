"""
Allocation Engine - greedy matching of stock batches to order demand.

Algorithm:
1. VALIDATE input inside a ledger transaction (duplicate batches, orders
   without customer or document)
2. REFRESH reallocation flags from order statuses, committed on its own
3. AGGREGATE open orders into customer/class buckets, highest priority first
4. PER BUCKET not pooled in step 5:
   a. target = required (spot) or required × 1.10 (production), less what
      the ledger already holds for the bucket's orders
   b. candidates = class match, spare capacity, restriction match,
      exact material code for spot
   c. production: small batches first (≤ 900 KG) in priority order;
      on a shortfall, one large batch covering the whole target replaces
      the small-batch picks, otherwise large batches top up
   d. spot: greedy over all candidates in spot priority order
5. POOL a group of production customers with identical restrictions when
   matching capacity is below their combined target: each batch take is
   split evenly between the members instead of running step 4 for each
6. COMMIT, or ROLL BACK on structural / ledger-consistency errors

Quantities taken from a batch are split across the bucket's orders by
loading date, one ledger record per batch/order pair.
"""

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_DOWN
from typing import Iterable, Optional

import structlog

from config import settings
from exceptions import (
    CapacityError,
    DuplicateError,
    ReallocationError,
    TransactionError,
    ValidationError,
)
from models.allocation import AllocationRecord, AllocationRunResult
from models.customer import Customer, CustomerRestrictions
from models.orders import DemandClass, OrderDemand
from models.stock import StockBatch
from services.allocation_ledger import AllocationLedger, get_allocation_ledger
from services.demand_service import DemandBucket, DemandService, get_demand_service
from services.material_classifier import batch_matches_class, same_material
from services.restriction_matcher import group_by_restrictions, matches
from services.stock_prioritizer import prioritize

logger = structlog.get_logger(__name__)

ZERO = Decimal("0")
SHARE_PRECISION = Decimal("0.001")

# Errors meaning the pass itself is inconsistent; nothing may be committed
FATAL_ERRORS = (CapacityError, DuplicateError, TransactionError, ValidationError)


@dataclass
class BucketState:
    """Progress of one bucket during a run."""
    bucket: DemandBucket
    required_kg: Decimal
    target_kg: Decimal
    held_kg: Decimal = ZERO
    staged_kg: Decimal = ZERO
    need_by_order: dict[tuple[str, str], Decimal] = field(default_factory=dict)
    staged_ids: list[str] = field(default_factory=list)

    @property
    def customer_id(self) -> str:
        return self.bucket.customer_id

    @property
    def remaining_kg(self) -> Decimal:
        return sum(self.need_by_order.values(), ZERO)

    @property
    def allocated_kg(self) -> Decimal:
        return self.held_kg + self.staged_kg


class AllocationEngine:
    """Runs allocation passes against an AllocationLedger."""

    def __init__(
        self,
        ledger: AllocationLedger,
        demand_service: Optional[DemandService] = None,
        buffer_pct: Optional[Decimal] = None,
        small_batch_threshold_kg: Optional[Decimal] = None,
    ):
        self.ledger = ledger
        self.demand_service = demand_service or get_demand_service()
        self.buffer_pct = settings.production_buffer_pct if buffer_pct is None else buffer_pct
        self.small_batch_threshold_kg = (
            settings.small_batch_threshold_kg
            if small_batch_threshold_kg is None
            else small_batch_threshold_kg
        )

    # ===================
    # ENTRY POINT
    # ===================

    def allocate(
        self,
        stock: list[StockBatch],
        orders: list[OrderDemand],
        customers: Iterable[Customer],
    ) -> AllocationRunResult:
        """
        Run one allocation pass.

        Returns:
            AllocationRunResult. errors non-empty means rolled back.

        Raises:
            PersistenceError: The ledger could not save the commit
        """
        customers = list(customers)
        result = AllocationRunResult()
        log = logger.bind(run_id=result.run_id)
        log.info(
            "allocation_run_started",
            batch_count=len(stock),
            order_count=len(orders),
            customer_count=len(customers),
        )

        self.ledger.begin_transaction()

        input_errors = self.validate_input(stock, orders)
        if input_errors:
            return self._roll_back(result, input_errors, log)

        # Committed on its own; a later rollback does not undo it
        self.ledger.update_order_statuses(orders)

        buckets = self.demand_service.build_buckets(orders, customers)
        production_stock = prioritize(stock, for_spot_sale=False)
        spot_stock = prioritize(stock, for_spot_sale=True)
        groups = self._restriction_groups(buckets)

        states: list[BucketState] = []
        pooled: set[int] = set()
        try:
            for bucket in buckets:
                if id(bucket) in pooled:
                    continue

                group = groups.get(id(bucket))
                if group is not None:
                    for member in group:
                        groups.pop(id(member), None)
                    group_states = self._pool_if_short(group, production_stock, result)
                    if group_states is not None:
                        pooled.update(id(member) for member in group)
                        states.extend(group_states)
                        continue

                ordered = spot_stock if bucket.is_spot else production_stock
                states.append(self._allocate_bucket(bucket, ordered, result))
        except FATAL_ERRORS as e:
            return self._roll_back(result, [e.message], log)

        for state in states:
            if state.remaining_kg > 0:
                self._warn_shortfall(state, result)

        result.committed = self.ledger.commit_transaction()

        log.info(
            "allocation_run_completed",
            committed=len(result.committed),
            warnings=len(result.warnings),
        )
        return result

    def validate_input(self, stock: list[StockBatch], orders: list[OrderDemand]) -> list[str]:
        """Structural problems that make a pass unsafe to commit."""
        errors = []

        seen_batches: set[str] = set()
        for batch in stock:
            if batch.batch_number in seen_batches:
                errors.append(f"Duplicate batch number {batch.batch_number} in stock")
            seen_batches.add(batch.batch_number)

        errors.extend(self.demand_service.validate_orders(orders))

        seen_lines: set[tuple[str, str]] = set()
        for order in self.demand_service.open_orders(orders):
            if not order.sales_document:
                continue
            if order.order_key in seen_lines:
                errors.append(
                    f"Duplicate order line {order.sales_document}/{order.sales_document_item}"
                )
            seen_lines.add(order.order_key)

        return errors

    def _roll_back(self, result: AllocationRunResult, errors: list[str], log) -> AllocationRunResult:
        self.ledger.rollback_transaction()
        result.errors.extend(errors)
        result.rolled_back = True
        log.warning("allocation_run_rolled_back", errors=errors)
        return result

    # ===================
    # PER-BUCKET PASS
    # ===================

    def target_factor(self, bucket: DemandBucket) -> Decimal:
        """Spot demand gets exactly what was ordered; production gets the buffer."""
        if bucket.is_spot:
            return Decimal("1")
        return Decimal("1") + self.buffer_pct

    def _start_bucket(self, bucket: DemandBucket) -> BucketState:
        factor = self.target_factor(bucket)
        state = BucketState(
            bucket=bucket,
            required_kg=bucket.total_required_kg,
            target_kg=bucket.total_required_kg * factor,
        )
        for order in bucket.orders_by_loading_date():
            held = sum(
                (
                    r.quantity_kg
                    for r in self.ledger.get_allocations_by_order(
                        order.sales_document,
                        order.sales_document_item,
                        include_staged=True,
                    )
                    if r.customer_id == order.customer_id
                ),
                ZERO,
            )
            state.held_kg += held
            state.need_by_order[order.order_key] = max(order.required_quantity_kg * factor - held, ZERO)
        return state

    def _allocate_bucket(
        self,
        bucket: DemandBucket,
        ordered_stock: list[StockBatch],
        result: AllocationRunResult,
    ) -> BucketState:
        state = self._start_bucket(bucket)
        need = state.remaining_kg

        if need <= 0:
            logger.debug("bucket_already_allocated", bucket=bucket.label)
            return state

        candidates = [b for b in ordered_stock if self._is_candidate(b, bucket)]

        if bucket.is_spot:
            self._take_greedy(state, candidates, result)
        else:
            small = [b for b in candidates if b.weight_kg <= self.small_batch_threshold_kg]
            large = [b for b in candidates if b.weight_kg > self.small_batch_threshold_kg]

            self._take_greedy(state, small, result)
            if state.remaining_kg > 0 and large:
                if not self._consolidate(state, large, need, result):
                    self._take_greedy(state, large, result)

        logger.info(
            "bucket_allocated",
            bucket=bucket.label,
            priority=round(bucket.priority, 3),
            target_kg=str(state.target_kg),
            allocated_kg=str(state.allocated_kg),
            candidates=len(candidates),
        )
        return state

    def _is_candidate(self, batch: StockBatch, bucket: DemandBucket) -> bool:
        if not batch_matches_class(batch, bucket.demand_class):
            return False
        if bucket.is_spot and not same_material(batch, bucket.material_id):
            return False
        if self.capacity(batch) <= 0:
            return False
        return matches(batch, bucket.restrictions)

    def capacity(self, batch: StockBatch) -> Decimal:
        """Batch weight not yet allocated, staged records included."""
        return batch.weight_kg - self.ledger.allocated_quantity(batch.batch_number, include_staged=True)

    def _take_greedy(
        self,
        state: BucketState,
        batches: list[StockBatch],
        result: AllocationRunResult,
    ) -> None:
        for batch in batches:
            remaining = state.remaining_kg
            if remaining <= 0:
                return
            available = self.capacity(batch)
            if available <= 0:
                continue
            self._stage(state, batch, min(available, remaining), result)

    def _consolidate(
        self,
        state: BucketState,
        large: list[StockBatch],
        need: Decimal,
        result: AllocationRunResult,
    ) -> bool:
        """
        Serve the whole bucket from one large batch if any can hold it.

        Largest batches are tried first. The bucket's small-batch picks are
        released before the large batch is staged.
        """
        by_weight = sorted(large, key=lambda b: -b.weight_kg)
        for batch in by_weight:
            if self.capacity(batch) < need:
                continue
            if self.ledger.locking_owner(batch.batch_number, state.customer_id) is not None:
                continue

            released = self._release_staged(state)
            staged = self._stage(state, batch, need, result)

            logger.info(
                "bucket_consolidated",
                bucket=state.bucket.label,
                batch_number=batch.batch_number,
                released_records=released,
                quantity_kg=str(staged),
            )
            return True
        return False

    def _release_staged(self, state: BucketState) -> int:
        """Remove this bucket's staged records and give the quantity back to its orders."""
        released = 0
        for allocation_id in state.staged_ids:
            record = next(
                (
                    r for r in self.ledger.get_all_allocations(include_staged=True)
                    if r.allocation_id == allocation_id
                ),
                None,
            )
            if record is None:
                continue
            self.ledger.remove_allocation(allocation_id=allocation_id)
            key = (record.sales_document, record.sales_document_item)
            state.need_by_order[key] = state.need_by_order.get(key, ZERO) + record.quantity_kg
            state.staged_kg -= record.quantity_kg
            released += 1
        state.staged_ids = []
        return released

    def _stage(
        self,
        state: BucketState,
        batch: StockBatch,
        amount: Decimal,
        result: AllocationRunResult,
    ) -> Decimal:
        """
        Split an amount from one batch across the bucket's orders.

        Returns the quantity actually staged. A batch locked to another
        customer stages nothing and is reported as a warning.
        """
        left = amount
        staged_total = ZERO

        for order in state.bucket.orders_by_loading_date():
            if left <= 0:
                break
            need = state.need_by_order.get(order.order_key, ZERO)
            if need <= 0:
                continue
            quantity = min(need, left)

            try:
                record = self.ledger.add_allocation(self._build_record(state.bucket, order, batch, quantity))
            except ReallocationError as e:
                self._warn_once(result, e.message)
                logger.warning(
                    "batch_locked",
                    batch_number=batch.batch_number,
                    customer_id=order.customer_id,
                )
                break

            state.need_by_order[order.order_key] = need - quantity
            state.staged_kg += quantity
            state.staged_ids.append(record.allocation_id)
            staged_total += quantity
            left -= quantity

        return staged_total

    @staticmethod
    def _build_record(
        bucket: DemandBucket,
        order: OrderDemand,
        batch: StockBatch,
        quantity: Decimal,
    ) -> AllocationRecord:
        return AllocationRecord(
            batch_number=batch.batch_number,
            customer_id=order.customer_id,
            order_ref=order.order_ref,
            sales_document=order.sales_document,
            sales_document_item=order.sales_document_item,
            quantity_kg=quantity,
            original_batch_quantity_kg=batch.weight_kg,
            can_reallocate=False,
            order_status_snapshot=order.order_status_raw,
            demand_class=bucket.demand_class,
            material_id=order.material_id,
            loading_date=order.loading_date,
        )

    # ===================
    # RESTRICTION-GROUP POOLING
    # ===================

    @staticmethod
    def _restriction_groups(buckets: list[DemandBucket]) -> dict[int, list[DemandBucket]]:
        """
        Production buckets of the same class whose customers share one
        restriction set, keyed by bucket identity. Groups of one are left out.
        """
        groups: dict[int, list[DemandBucket]] = {}
        for demand_class in (DemandClass.CONVENTIONAL, DemandClass.ORGANIC):
            by_customer = {
                b.customer_id: b for b in buckets
                if not b.is_spot and b.demand_class == demand_class
            }
            members = [
                Customer(id=customer_id, restrictions=b.restrictions or CustomerRestrictions())
                for customer_id, b in by_customer.items()
            ]
            for group in group_by_restrictions(members):
                if len(group.customer_ids) < 2:
                    continue
                group_buckets = [by_customer[customer_id] for customer_id in group.customer_ids]
                for b in group_buckets:
                    groups[id(b)] = group_buckets
        return groups

    def _pool_if_short(
        self,
        group: list[DemandBucket],
        ordered_stock: list[StockBatch],
        result: AllocationRunResult,
    ) -> Optional[list[BucketState]]:
        """
        Share matching stock evenly when it cannot cover the group's target.

        Returns:
            The members' states when the group was pooled, None when supply
            covers every member and each bucket runs on its own
        """
        states = [self._start_bucket(b) for b in group]
        demand = sum((s.remaining_kg for s in states), ZERO)
        if demand <= 0:
            return None

        first = group[0]
        member_ids = {b.customer_id for b in group}
        batches = [
            b for b in ordered_stock
            if self._is_poolable(b, first.demand_class, first.restrictions, member_ids)
        ]
        supply = sum((self.capacity(b) for b in batches), ZERO)
        if supply >= demand:
            return None

        pooled = self._pool_group(states, batches, result)
        logger.info(
            "restriction_group_pooled",
            demand_class=first.demand_class.value,
            customers=sorted(member_ids),
            target_kg=str(demand),
            supply_kg=str(supply),
            quantity_kg=str(pooled),
        )
        return states

    def _is_poolable(
        self,
        batch: StockBatch,
        demand_class: DemandClass,
        restrictions: Optional[CustomerRestrictions],
        member_ids: set[str],
    ) -> bool:
        if not batch_matches_class(batch, demand_class):
            return False
        if self.capacity(batch) <= 0 or not matches(batch, restrictions):
            return False
        locked_by = {
            r.customer_id
            for r in self.ledger.get_allocations_by_batch(batch.batch_number)
            if not r.can_reallocate
        }
        return locked_by <= member_ids

    def _pool_group(
        self,
        members: list[BucketState],
        batches: list[StockBatch],
        result: AllocationRunResult,
    ) -> Decimal:
        pooled = ZERO
        for batch in batches:
            active = [m for m in members if m.remaining_kg > 0]
            if not active:
                break

            take = min(self.capacity(batch), sum((m.remaining_kg for m in active), ZERO))
            if take <= 0:
                continue

            for member, share in self.split_evenly(take, active):
                if share > 0:
                    pooled += self._stage(member, batch, share, result)
        return pooled

    @staticmethod
    def split_evenly(total: Decimal, members: list[BucketState]) -> list[tuple[BucketState, Decimal]]:
        """
        Even split of one batch take, capped by each member's remaining need.

        Members needing less than an even share get their need; the rest is
        shared by the others. Shares are rounded down to grams and the last
        member receives the remainder.
        """
        by_need = sorted(members, key=lambda m: m.remaining_kg)
        shares: dict[int, Decimal] = {}
        left = total
        for i, member in enumerate(by_need):
            count = len(by_need) - i
            if count == 1:
                share = min(left, member.remaining_kg)
            else:
                even = (left / count).quantize(SHARE_PRECISION, rounding=ROUND_DOWN)
                share = min(even, member.remaining_kg)
            shares[id(member)] = share
            left -= share
        return [(m, shares[id(m)]) for m in members]

    # ===================
    # REPORTING
    # ===================

    def _warn_shortfall(self, state: BucketState, result: AllocationRunResult) -> None:
        bucket = state.bucket
        if bucket.is_spot and not bucket.material_id:
            documents = ", ".join(sorted({o.sales_document for o in bucket.orders}))
            message = (
                f"{bucket.label}: spot order without material code ({documents}) "
                f"cannot be matched to stock. "
                f"Unallocated: {state.remaining_kg:.2f}KG"
            )
            result.warnings.append(message)
            logger.warning(
                "spot_order_without_material_code",
                customer_id=bucket.customer_id,
                sales_documents=documents,
                unallocated_kg=str(state.remaining_kg),
            )
            return

        message = (
            f"{bucket.label} could not be fully allocated. "
            f"Required: {state.required_kg:.2f}KG, "
            f"Target: {state.target_kg:.2f}KG, "
            f"Allocated: {state.allocated_kg:.2f}KG, "
            f"Unallocated: {state.remaining_kg:.2f}KG"
        )
        result.warnings.append(message)
        logger.warning(
            "bucket_shortfall",
            customer_id=bucket.customer_id,
            demand_class=bucket.demand_class.value,
            target_kg=str(state.target_kg),
            unallocated_kg=str(state.remaining_kg),
        )

    @staticmethod
    def _warn_once(result: AllocationRunResult, message: str) -> None:
        if message not in result.warnings:
            result.warnings.append(message)


# ===================
# SINGLETON
# ===================

_allocation_engine: Optional[AllocationEngine] = None


def get_allocation_engine() -> AllocationEngine:
    """Get or create AllocationEngine bound to the session ledger."""
    global _allocation_engine
    if _allocation_engine is None:
        _allocation_engine = AllocationEngine(get_allocation_ledger())
    return _allocation_engine
