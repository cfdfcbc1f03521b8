"""
Valuation Service — The single public interface for inventory valuation.

Usage:
    from costman import Valuation, ValuationCache, VoucherLine, ValuationMethod

    valuation = Valuation(cache=ValuationCache())

    valuation.on_inbound_line(VoucherLine(pos.pk, Decimal('10'), day, unit_cost=Decimal('2.00')))
    valuation.on_outbound_line(VoucherLine(pos.pk, Decimal('4'), day), ValuationMethod.FIFO)
    valuation.derive_position_stock(pos.pk).total_quantity  # 6

The cache is passed in, never looked up: every Valuation built on the
same ValuationCache sees the same invalidations.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from costman.cache import ValuationCache
from costman.models.lot import Lot
from costman.models.movement import Movement
from costman.models.position import Position
from costman.protocols.costing import Allocation
from costman.services.costing import FifoAllocator, WeightedAverageCalculator, get_policy
from costman.services.derivation import LedgerAudit, LotStock, PositionStock, StockDerivation
from costman.services.kardex import KardexBuilder, KardexReport
from costman.services.lifecycle import LotLifecycle, OutboundResult, VoucherLine
from costman.services.queries import CostOfSalesReport, StockBalance, StockQueries


class Valuation:
    """
    Single interface for all valuation operations.

    Reads (derive_*, available_lots, average_cost, reports) never lock.
    Writes (on_*_line, cancel_movement, process_movement) run atomically
    with the position row locked, and invalidate the cache before
    returning.
    """

    def __init__(self, cache: ValuationCache | None = None):
        self.cache = cache if cache is not None else ValuationCache()
        self.derivation = StockDerivation(self.cache)
        self.allocator = FifoAllocator(self.derivation)
        self.calculator = WeightedAverageCalculator(self.derivation)
        self.lifecycle = LotLifecycle(self.derivation)
        self.kardex = KardexBuilder(self.derivation)
        self.queries = StockQueries(self.derivation)

    # ══════════════════════════════════════════════════════════════
    # DERIVATION
    # ══════════════════════════════════════════════════════════════

    def derive_lot_stock(self, lot_id: int, cutoff: date | None = None) -> LotStock | None:
        return self.derivation.derive_lot_stock(lot_id, cutoff)

    def derive_position_stock(self, position_id: int,
                              cutoff: date | None = None) -> PositionStock | None:
        return self.derivation.derive_position_stock(position_id, cutoff)

    def available_lots(self, position_id: int, cutoff: date | None = None) -> tuple[LotStock, ...]:
        return self.derivation.available_lots(position_id, cutoff)

    def audit(self, position_id: int, cutoff: date | None = None) -> LedgerAudit:
        return self.derivation.audit(position_id, cutoff)

    # ══════════════════════════════════════════════════════════════
    # COSTING
    # ══════════════════════════════════════════════════════════════

    def allocate_fifo(self, position_id: int, requested,
                      cutoff: date | None = None) -> list[Allocation]:
        return self.allocator.allocate_fifo(position_id, requested, cutoff)

    def average_cost(self, position_id: int, cutoff: date | None = None) -> Decimal:
        return self.calculator.average_cost(position_id, cutoff)

    def unit_cost_for_sale(self, position_id: int, quantity, policy=None,
                           cutoff: date | None = None) -> Decimal:
        """
        Unit cost an outbound line would be booked at, without booking it.

        FIFO: the quantity-weighted cost of the lots it would draw.
        Weighted average: the blended cost.
        """
        return get_policy(policy, self.derivation).unit_cost(position_id, quantity, cutoff)

    def has_sufficient_stock(self, position_id: int, quantity,
                             cutoff: date | None = None) -> bool:
        return self.queries.has_sufficient_stock(position_id, quantity, cutoff)

    # ══════════════════════════════════════════════════════════════
    # LIFECYCLE
    # ══════════════════════════════════════════════════════════════

    def on_inbound_line(self, line: VoucherLine) -> Lot:
        return self.lifecycle.on_inbound_line(line)

    def on_outbound_line(self, line: VoucherLine, policy=None,
                         cutoff: date | None = None) -> OutboundResult:
        return self.lifecycle.on_outbound_line(line, policy, cutoff)

    def on_adjustment_line(self, line: VoucherLine) -> Movement:
        return self.lifecycle.on_adjustment_line(line)

    def cancel_movement(self, movement_id: int) -> Movement:
        return self.lifecycle.cancel_movement(movement_id)

    def process_movement(self, movement_id: int) -> Movement:
        return self.lifecycle.process_movement(movement_id)

    def deactivate_lot(self, lot_id: int) -> Lot:
        return self.lifecycle.deactivate_lot(lot_id)

    # ══════════════════════════════════════════════════════════════
    # REPORTS
    # ══════════════════════════════════════════════════════════════

    def build_report(self, position_id: int, policy=None,
                     date_from: date | None = None,
                     date_to: date | None = None) -> KardexReport:
        """Kardex of a position; policy only labels the report."""
        return self.kardex.build_report(position_id, policy, date_from, date_to)

    def stock_balance(self, warehouse=None, product=None, cutoff: date | None = None,
                      include_empty: bool = False) -> StockBalance:
        return self.queries.stock_balance(warehouse, product, cutoff, include_empty)

    def cost_of_sales(self, year: int, warehouse=None, product=None) -> CostOfSalesReport:
        return self.queries.cost_of_sales(year, warehouse, product)

    def expiring_lots(self, days: int | None = None, position: Position | None = None,
                      today: date | None = None) -> list[LotStock]:
        return self.queries.expiring_lots(days, position, today)

    def expired_lots(self, position: Position | None = None,
                     today: date | None = None) -> list[LotStock]:
        return self.queries.expired_lots(position, today)

    def get_or_create_position(self, product, warehouse) -> Position:
        return self.queries.get_or_create_position(product, warehouse)
