"""
Lot lifecycle — the write path triggered by voucher lines.

    inbound   → new Lot + ENTRADA movement
    outbound  → costing policy plan + SALIDA movement + lot consumptions
    adjust    → AJUSTE movement (new lot, or FIFO draw for negatives)
    cancel    → status flag only; rows are never removed

All methods run under transaction.atomic() with the position row locked
(select_for_update), so two outbound lines against one position are
serialized and the second plans against the first one's consumptions.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Iterable

from django.contrib.contenttypes.models import ContentType
from django.db import transaction

from costman.conf import costman_settings
from costman.exceptions import InvalidCost, InvalidQuantity, NotFound, ValuationError
from costman.models.enums import MovementDirection, MovementStatus
from costman.models.lot import Lot
from costman.models.movement import LotConsumption, Movement, MovementLine
from costman.models.position import Position
from costman.precision import quantize_cost, quantize_qty, to_decimal
from costman.protocols.costing import Allocation, CostPlan
from costman.services.costing import FifoAllocator, get_policy
from costman.services.derivation import StockDerivation

logger = logging.getLogger('costman')


@dataclass(frozen=True)
class VoucherLine:
    """
    One inventory line of an external voucher (comprobante).

    quantity is positive for inbound/outbound lines and signed for
    adjustments. unit_cost is the purchase price for inbound lines and
    is ignored for outbound ones.
    """

    position_id: int
    quantity: Decimal
    date: date
    unit_cost: Decimal | None = None
    reference: Any = None
    reason: str = ''
    lot_code: str | None = None
    expiry_date: date | None = None
    user: Any = None


@dataclass(frozen=True)
class OutboundResult:
    """What an outbound line was booked at."""

    movement: Movement
    line: MovementLine
    plan: CostPlan

    @property
    def allocations(self) -> tuple[Allocation, ...]:
        return self.plan.allocations

    @property
    def unit_cost(self) -> Decimal:
        return quantize_cost(self.plan.unit_cost)

    @property
    def total_cost(self) -> Decimal:
        return self.plan.total_cost


class LotLifecycle:
    """Creates lots and books outbound cost against the ledger."""

    def __init__(self, derivation: StockDerivation):
        self.derivation = derivation
        self.cache = derivation.cache

    # ══════════════════════════════════════════════════════════════
    # INBOUND
    # ══════════════════════════════════════════════════════════════

    def on_inbound_line(self, line: VoucherLine) -> Lot:
        """
        Receive a purchase line: one new lot per line.

        The lot is stamped with the voucher date, so back-dated entries
        land at the right place in the replay.

        Raises:
            InvalidQuantity: quantity <= 0
            InvalidCost: unit cost missing or negative
            NotFound: unknown position
        """
        quantity = self._positive_quantity(line.quantity)
        unit_cost = self._valid_cost(line.unit_cost)

        with transaction.atomic():
            position = self._lock_position(line.position_id)
            lot = self._create_lot(position, line, quantity, unit_cost)
            movement = self._create_movement(MovementDirection.ENTRADA, line, 'Compra')
            MovementLine.objects.create(
                movement=movement,
                position=position,
                lot=lot,
                quantity=quantity,
            )

        self._invalidate([position.pk])
        logger.info(
            "costman.lot.created",
            extra={
                "position_id": position.pk,
                "lot_id": lot.pk,
                "qty": str(quantity),
                "unit_cost": str(unit_cost),
                "entry_date": line.date.isoformat(),
            },
        )
        return lot

    # ══════════════════════════════════════════════════════════════
    # OUTBOUND
    # ══════════════════════════════════════════════════════════════

    def on_outbound_line(self, line: VoucherLine, policy=None,
                         cutoff: date | None = None) -> OutboundResult:
        """
        Book a sale line under a valuation policy.

        FIFO persists one consumption per lot drawn. Weighted average
        persists a single consumption with no lot at the blended cost.
        The plan is computed as of cutoff (default: the voucher date),
        with each lot capped at what it still holds today, so a
        back-dated line cannot overdraw a lot later sales consumed.

        Raises:
            InvalidQuantity: quantity <= 0
            NotFound: unknown position
            InsufficientStock: propagated unchanged; nothing is written
        """
        quantity = self._positive_quantity(line.quantity)
        cutoff = cutoff if cutoff is not None else line.date

        with transaction.atomic():
            position = self._lock_position(line.position_id)
            # plan against the ledger as it is under the lock
            self.cache.invalidate(position.pk)
            plan = get_policy(policy, self.derivation).plan(position.pk, quantity, cutoff)

            movement = self._create_movement(MovementDirection.SALIDA, line, 'Venta')
            movement_line = MovementLine.objects.create(
                movement=movement,
                position=position,
                lot=None,
                quantity=quantity,
            )
            for allocation in plan.allocations:
                LotConsumption.objects.create(
                    line=movement_line,
                    lot_id=allocation.lot_id,
                    quantity=quantize_qty(allocation.quantity),
                    unit_cost=quantize_cost(allocation.unit_cost),
                )

        self._invalidate([position.pk], [a.lot_id for a in plan.allocations if a.lot_id])
        logger.info(
            "costman.outbound.booked",
            extra={
                "position_id": position.pk,
                "movement_id": movement.pk,
                "method": str(plan.method),
                "qty": str(quantity),
                "unit_cost": str(quantize_cost(plan.unit_cost)),
                "lots": [a.lot_id for a in plan.allocations],
            },
        )
        return OutboundResult(movement=movement, line=movement_line, plan=plan)

    # ══════════════════════════════════════════════════════════════
    # ADJUSTMENTS
    # ══════════════════════════════════════════════════════════════

    def on_adjustment_line(self, line: VoucherLine) -> Movement:
        """
        Signed inventory correction.

        Positive: a new lot at line.unit_cost (default: the current
        blended cost). Negative: lots drawn oldest first, one negative
        AJUSTE line per lot.

        Raises:
            InvalidQuantity: zero delta
            InvalidCost: negative unit cost
            InsufficientStock: negative delta larger than available lots
        """
        delta = quantize_qty(to_decimal(line.quantity))
        if delta == 0:
            raise InvalidQuantity(requested=delta)

        touched_lots = []
        with transaction.atomic():
            position = self._lock_position(line.position_id)
            self.cache.invalidate(position.pk)

            if delta > 0:
                if line.unit_cost is None:
                    stock = self.derivation.derive_position_stock(position.pk, line.date)
                    unit_cost = stock.weighted_unit_cost
                else:
                    unit_cost = self._valid_cost(line.unit_cost)
                lot = self._create_lot(position, line, delta, unit_cost)
                movement = self._create_movement(MovementDirection.AJUSTE, line, 'Ajuste de inventario')
                MovementLine.objects.create(movement=movement, position=position, lot=lot, quantity=delta)
                touched_lots.append(lot.pk)
            else:
                allocations = FifoAllocator(self.derivation).allocate_fifo(
                    position.pk, -delta, line.date,
                )
                movement = self._create_movement(MovementDirection.AJUSTE, line, 'Ajuste de inventario')
                for allocation in allocations:
                    MovementLine.objects.create(
                        movement=movement,
                        position=position,
                        lot_id=allocation.lot_id,
                        quantity=-allocation.quantity,
                    )
                    touched_lots.append(allocation.lot_id)

        self._invalidate([position.pk], touched_lots)
        logger.info(
            "costman.adjustment.booked",
            extra={
                "position_id": position.pk,
                "movement_id": movement.pk,
                "delta": str(delta),
                "lots": touched_lots,
            },
        )
        return movement

    # ══════════════════════════════════════════════════════════════
    # STATUS
    # ══════════════════════════════════════════════════════════════

    def cancel_movement(self, movement_id: int) -> Movement:
        """
        Cancel a movement: PENDING|PROCESSED → CANCELLED.

        Cancelled movements drop out of every replay. Cancelling an
        entry whose lot was already drawn leaves that lot negative,
        which derivation clamps and logs.

        Raises:
            NotFound('MOVEMENT_NOT_FOUND')
            ValuationError('INVALID_STATUS'): already cancelled
        """
        return self._set_status(
            movement_id,
            MovementStatus.CANCELLED,
            allowed=[MovementStatus.PENDING, MovementStatus.PROCESSED],
            event="costman.movement.cancelled",
        )

    def process_movement(self, movement_id: int) -> Movement:
        """
        Make a pending movement count: PENDING → PROCESSED.

        Raises:
            NotFound('MOVEMENT_NOT_FOUND')
            ValuationError('INVALID_STATUS'): not pending
        """
        return self._set_status(
            movement_id,
            MovementStatus.PROCESSED,
            allowed=[MovementStatus.PENDING],
            event="costman.movement.processed",
        )

    def deactivate_lot(self, lot_id: int) -> Lot:
        """
        Withdraw a lot from FIFO selection. Its stock still counts
        towards the position; nothing in the ledger changes.

        Raises:
            NotFound('LOT_NOT_FOUND')
        """
        lot = Lot.objects.filter(pk=lot_id).first()
        if lot is None:
            raise NotFound('LOT_NOT_FOUND', lot_id=lot_id)
        if lot.is_active:
            lot.deactivate()
            self._invalidate([lot.position_id], [lot.pk])
            logger.info(
                "costman.lot.deactivated",
                extra={"lot_id": lot.pk, "position_id": lot.position_id},
            )
        return lot

    def _set_status(self, movement_id, status, allowed, event) -> Movement:
        with transaction.atomic():
            movement = Movement.objects.select_for_update().filter(pk=movement_id).first()
            if movement is None:
                raise NotFound('MOVEMENT_NOT_FOUND', movement_id=movement_id)
            if movement.status not in allowed:
                raise ValuationError(
                    'INVALID_STATUS',
                    current=movement.status,
                    expected=[str(s) for s in allowed],
                )
            movement.status = status
            movement.save(update_fields=['status'])

            lines = list(movement.lines.prefetch_related('consumptions'))
            position_ids = {ln.position_id for ln in lines}
            lot_ids = {ln.lot_id for ln in lines if ln.lot_id}
            lot_ids.update(
                c.lot_id for ln in lines for c in ln.consumptions.all() if c.lot_id
            )

        self._invalidate(position_ids, lot_ids)
        logger.info(
            event,
            extra={
                "movement_id": movement.pk,
                "positions": sorted(position_ids),
            },
        )
        return movement

    # ══════════════════════════════════════════════════════════════
    # INTERNALS
    # ══════════════════════════════════════════════════════════════

    @staticmethod
    def _positive_quantity(value) -> Decimal:
        quantity = quantize_qty(to_decimal(value))
        if quantity <= 0:
            raise InvalidQuantity(requested=value)
        return quantity

    @staticmethod
    def _valid_cost(value) -> Decimal:
        if value is None:
            raise InvalidCost(unit_cost=None)
        unit_cost = to_decimal(value)
        if unit_cost < 0:
            raise InvalidCost(unit_cost=unit_cost)
        return quantize_cost(unit_cost)

    @staticmethod
    def _lock_position(position_id: int) -> Position:
        position = Position.objects.select_for_update().filter(pk=position_id).first()
        if position is None:
            raise NotFound('POSITION_NOT_FOUND', position_id=position_id)
        return position

    @staticmethod
    def _create_lot(position: Position, line: VoucherLine,
                    quantity: Decimal, unit_cost: Decimal) -> Lot:
        code = line.lot_code
        if not code:
            seq = Lot.objects.filter(position=position).count() + 1
            code = (
                f"{costman_settings.LOT_CODE_PREFIX}-{line.date:%Y%m%d}"
                f"-{position.pk}-{seq}"
            )
        return Lot.objects.create(
            position=position,
            entry_date=line.date,
            entry_quantity=quantity,
            unit_cost=unit_cost,
            expiry_date=line.expiry_date,
            code=code,
            notes=line.reason,
        )

    @staticmethod
    def _create_movement(direction, line: VoucherLine, default_reason: str) -> Movement:
        reference_type = None
        reference_id = None
        if line.reference is not None:
            reference_type = ContentType.objects.get_for_model(line.reference)
            reference_id = line.reference.pk
        return Movement.objects.create(
            direction=direction,
            date=line.date,
            status=MovementStatus.PROCESSED,
            reference_type=reference_type,
            reference_id=reference_id,
            reason=line.reason or default_reason,
            user=line.user,
        )

    def _invalidate(self, position_ids: Iterable[int], lot_ids: Iterable[int] = ()) -> None:
        """
        Evict now, for reads later in this flow, and again on commit,
        for reads that ran against the pre-commit ledger meanwhile.
        """
        position_ids = list(position_ids)
        lot_ids = list(lot_ids)

        def evict():
            self.cache.invalidate_many(position_ids)
            for lot_id in lot_ids:
                self.cache.invalidate_lot(lot_id)

        evict()
        transaction.on_commit(evict)
