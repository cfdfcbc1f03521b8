"""
Stock derivation — quantity and cost replayed from the ledger.

Nothing here trusts a stored counter. Every result is a fold over
processed movement lines (and their lot consumptions) dated on or
before the cutoff, memoized in the ValuationCache the engine was
given.

Fold rules per lot:
    ENTRADA line  +quantity
    AJUSTE line   +quantity (signed)
    SALIDA line   -quantity of each consumption naming the lot

Unattributed withdrawals (a weighted-average consumption with no lot,
or a SALIDA line with no consumptions at all) are drained from the
position's lots pro rata to what each lot holds at the point in the
replay where they happened. A pooled sale booked at the blended cost
therefore takes exactly that much value out of the lots.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal

from django.db.models import Q, Sum
from django.db.models.functions import Coalesce

from costman.cache import MISS, CacheKind, ValuationCache
from costman.models.enums import MovementDirection, MovementStatus
from costman.models.lot import Lot
from costman.models.movement import LotConsumption, MovementLine
from costman.models.position import Position
from costman.precision import ZERO, quantize_cost, quantize_qty, weighted_cost

logger = logging.getLogger('costman')


@dataclass(frozen=True)
class LotStock:
    """Derived state of one lot at a cutoff."""

    lot_id: int
    position_id: int
    remaining_quantity: Decimal
    entry_quantity: Decimal
    unit_cost: Decimal
    entry_date: date
    code: str | None = None
    expiry_date: date | None = None
    is_active: bool = True
    clamped: bool = False  # raw ledger sum was negative

    @property
    def value(self) -> Decimal:
        return self.remaining_quantity * self.unit_cost

    @property
    def is_exhausted(self) -> bool:
        return self.remaining_quantity <= 0


@dataclass(frozen=True)
class PositionStock:
    """Derived state of a position at a cutoff."""

    position_id: int
    total_quantity: Decimal
    weighted_unit_cost: Decimal
    total_value: Decimal
    lots: tuple[LotStock, ...] = field(default_factory=tuple)

    @property
    def is_empty(self) -> bool:
        return self.total_quantity <= 0


@dataclass(frozen=True)
class LedgerAudit:
    """Anomalies found replaying a position's ledger."""

    position_id: int
    lots: int
    clamped_lots: tuple[int, ...] = ()
    unattributed_shortfall: Decimal = ZERO

    @property
    def is_clean(self) -> bool:
        return not self.clamped_lots and self.unattributed_shortfall == 0


@dataclass
class _Replay:
    """Running balances of a position replay."""

    lots: list[Lot]
    balances: dict[int, Decimal]
    unattributed_shortfall: Decimal = ZERO

    def drain(self, quantity: Decimal) -> Decimal:
        """Withdraw pro rata across lots with stock; returns what could not be covered."""
        holding = [lot.pk for lot in self.lots if self.balances[lot.pk] > 0]
        on_hand = sum((self.balances[pk] for pk in holding), ZERO)

        if quantity >= on_hand:
            for pk in holding:
                self.balances[pk] = ZERO
            return quantity - on_hand

        remaining = quantity
        for pk in holding[:-1]:
            take = min(self.balances[pk], remaining,
                       quantize_qty(quantity * self.balances[pk] / on_hand))
            self.balances[pk] -= take
            remaining -= take
        # rounding residue: the last lot first, then whoever has room
        for pk in [holding[-1], *holding[:-1]]:
            if remaining <= 0:
                break
            take = min(self.balances[pk], remaining)
            self.balances[pk] -= take
            remaining -= take
        return ZERO


def _lot_stock(lot: Lot, raw: Decimal) -> LotStock:
    clamped = raw < 0
    if clamped:
        logger.warning(
            "costman.lot.clamped",
            extra={
                "lot_id": lot.pk,
                "position_id": lot.position_id,
                "raw_quantity": str(raw),
            },
        )
    return LotStock(
        lot_id=lot.pk,
        position_id=lot.position_id,
        remaining_quantity=quantize_qty(max(raw, ZERO)),
        entry_quantity=lot.entry_quantity,
        unit_cost=lot.unit_cost,
        entry_date=lot.entry_date,
        code=lot.code,
        expiry_date=lot.expiry_date,
        is_active=lot.is_active,
        clamped=clamped,
    )


def processed_lines(cutoff: date | None):
    qs = MovementLine.objects.filter(movement__status=MovementStatus.PROCESSED)
    if cutoff is not None:
        qs = qs.filter(movement__date__lte=cutoff)
    return qs


class StockDerivation:
    """
    Derives lot and position stock by replaying the ledger.

    Usage:
        engine = StockDerivation(cache)
        engine.derive_lot_stock(lot_id)                  # as of now
        engine.derive_position_stock(pos_id, date(2024, 1, 14))
    """

    def __init__(self, cache: ValuationCache):
        self.cache = cache

    # ══════════════════════════════════════════════════════════════
    # LOTS
    # ══════════════════════════════════════════════════════════════

    def derive_lot_stock(self, lot_id: int, cutoff: date | None = None,
                         use_cache: bool = True) -> LotStock | None:
        """
        Remaining quantity of a lot as of cutoff (None = now).

        Returns None if the lot does not exist. Never raises for zero
        stock; a negative raw sum is clamped to zero and logged.
        """
        if use_cache:
            cached = self.cache.get(CacheKind.LOT, lot_id, cutoff)
            if cached is not MISS:
                return cached

        lot = Lot.objects.filter(pk=lot_id).first()
        if lot is None:
            return None

        if self._has_unattributed(lot.position_id, cutoff):
            replay = self._replay(lot.position_id, cutoff)
            result = _lot_stock(lot, replay.balances[lot.pk])
        else:
            result = _lot_stock(lot, self._fold_lot(lot, cutoff))

        self.cache.set(CacheKind.LOT, lot_id, cutoff, result, owner=lot.position_id)
        return result

    def _fold_lot(self, lot: Lot, cutoff: date | None) -> Decimal:
        """Raw signed sum of the ledger rows naming this lot."""
        added = processed_lines(cutoff).filter(
            lot_id=lot.pk,
            movement__direction__in=[MovementDirection.ENTRADA, MovementDirection.AJUSTE],
        ).aggregate(t=Coalesce(Sum('quantity'), ZERO))['t']

        consumed = LotConsumption.objects.filter(
            lot_id=lot.pk,
            line__movement__status=MovementStatus.PROCESSED,
            line__movement__direction=MovementDirection.SALIDA,
        )
        if cutoff is not None:
            consumed = consumed.filter(line__movement__date__lte=cutoff)
        consumed = consumed.aggregate(t=Coalesce(Sum('quantity'), ZERO))['t']

        return added - consumed

    # ══════════════════════════════════════════════════════════════
    # POSITIONS
    # ══════════════════════════════════════════════════════════════

    def derive_position_stock(self, position_id: int, cutoff: date | None = None,
                              use_cache: bool = True) -> PositionStock | None:
        """
        Total quantity and blended cost of a position as of cutoff.

        Only lots with remaining > 0 take part. The blended cost is
        sum(qty * unit_cost) / sum(qty), and 0 when nothing is left.

        Returns None if the position does not exist. A position with no
        lots is a valid zero-stock result.
        """
        if use_cache:
            cached = self.cache.get(CacheKind.POSITION, position_id, cutoff)
            if cached is not MISS:
                return cached

        if not Position.objects.filter(pk=position_id).exists():
            return None

        replay = self._replay(position_id, cutoff)
        stocks = [_lot_stock(lot, replay.balances[lot.pk]) for lot in replay.lots]
        with_stock = tuple(s for s in stocks if s.remaining_quantity > 0)

        total_qty = sum((s.remaining_quantity for s in with_stock), ZERO)
        total_value = sum((s.value for s in with_stock), ZERO)

        result = PositionStock(
            position_id=position_id,
            total_quantity=total_qty,
            weighted_unit_cost=quantize_cost(weighted_cost(total_value, total_qty)),
            total_value=total_value,
            lots=with_stock,
        )

        self.cache.set(CacheKind.POSITION, position_id, cutoff, result)
        for stock in stocks:
            self.cache.set(CacheKind.LOT, stock.lot_id, cutoff, stock, owner=position_id)
        return result

    def available_lots(self, position_id: int, cutoff: date | None = None,
                       use_cache: bool = True) -> tuple[LotStock, ...]:
        """
        Active lots with stock, oldest first (entry date, then id).

        Inactive (soft-deactivated) lots still count towards the
        position's quantity but are never offered for consumption.
        """
        if use_cache:
            cached = self.cache.get(CacheKind.LOTS, position_id, cutoff)
            if cached is not MISS:
                return cached

        stock = self.derive_position_stock(position_id, cutoff, use_cache=use_cache)
        if stock is None:
            return ()

        lots = tuple(sorted(
            (s for s in stock.lots if s.remaining_quantity > 0 and s.is_active),
            key=lambda s: (s.entry_date, s.lot_id),
        ))
        self.cache.set(CacheKind.LOTS, position_id, cutoff, lots)
        return lots

    def drawable_lots(self, position_id: int, cutoff: date | None = None,
                      include_inactive: bool = False,
                      use_cache: bool = True) -> tuple[LotStock, ...]:
        """
        Lots a withdrawal dated cutoff may draw from, oldest first.

        Each lot offers the lesser of its remaining at cutoff and its
        remaining now, so a back-dated withdrawal never takes units a
        later one already consumed.
        """
        stock = self.derive_position_stock(position_id, cutoff, use_cache=use_cache)
        if stock is None:
            return ()

        lots = [s for s in stock.lots if include_inactive or s.is_active]
        if cutoff is not None:
            current = self.derive_position_stock(position_id, None, use_cache=use_cache)
            now = {s.lot_id: s.remaining_quantity for s in current.lots}
            lots = [
                replace(s, remaining_quantity=min(s.remaining_quantity, now.get(s.lot_id, ZERO)))
                for s in lots
            ]

        return tuple(sorted(
            (s for s in lots if s.remaining_quantity > 0),
            key=lambda s: (s.entry_date, s.lot_id),
        ))

    def audit(self, position_id: int, cutoff: date | None = None) -> LedgerAudit:
        """
        Integrity check of a position's ledger, bypassing the cache.

        A healthy ledger has no clamped lots and no withdrawal left
        uncovered by the replay.
        """
        replay = self._replay(position_id, cutoff)
        clamped = tuple(
            lot.pk for lot in replay.lots if replay.balances[lot.pk] < 0
        )
        return LedgerAudit(
            position_id=position_id,
            lots=len(replay.lots),
            clamped_lots=clamped,
            unattributed_shortfall=replay.unattributed_shortfall,
        )

    # ══════════════════════════════════════════════════════════════
    # REPLAY
    # ══════════════════════════════════════════════════════════════

    def _has_unattributed(self, position_id: int, cutoff: date | None) -> bool:
        """Does the position have withdrawals that name no lot?"""
        return processed_lines(cutoff).filter(position_id=position_id).filter(
            Q(movement__direction=MovementDirection.SALIDA, consumptions__lot__isnull=True)
            | (Q(lot__isnull=True) & ~Q(movement__direction=MovementDirection.SALIDA))
        ).exists()

    def _replay(self, position_id: int, cutoff: date | None) -> _Replay:
        """Replay a position's ledger in (date, movement, line) order."""
        lots = list(Lot.objects.filter(position_id=position_id).order_by('entry_date', 'id'))
        replay = _Replay(lots=lots, balances={lot.pk: ZERO for lot in lots})

        lines = (
            processed_lines(cutoff)
            .filter(position_id=position_id)
            .select_related('movement')
            .prefetch_related('consumptions')
            .order_by('movement__date', 'movement_id', 'id')
        )

        for line in lines:
            direction = line.movement.direction
            if direction == MovementDirection.SALIDA:
                consumptions = list(line.consumptions.all())
                if not consumptions:
                    self._drain(replay, line, line.quantity)
                for consumption in consumptions:
                    if consumption.lot_id is None:
                        self._drain(replay, line, consumption.quantity)
                    elif consumption.lot_id in replay.balances:
                        replay.balances[consumption.lot_id] -= consumption.quantity
            elif line.lot_id in replay.balances:
                replay.balances[line.lot_id] += line.quantity
            elif line.quantity < 0:
                self._drain(replay, line, -line.quantity)
            else:
                logger.warning(
                    "costman.replay.unattributed_entry",
                    extra={"position_id": position_id, "line_id": line.pk,
                           "quantity": str(line.quantity)},
                )

        return replay

    def _drain(self, replay: _Replay, line: MovementLine, quantity: Decimal) -> None:
        shortfall = replay.drain(quantity)
        if shortfall > 0:
            replay.unattributed_shortfall += shortfall
            logger.warning(
                "costman.replay.unattributed_shortfall",
                extra={
                    "position_id": line.position_id,
                    "line_id": line.pk,
                    "shortfall": str(shortfall),
                },
            )
