"""
Stock queries — read-only reports over derived stock.

Nothing here writes or locks. Per-position balance rows are cached
under the long TTL class; everything else rides on StockDerivation's
cache entries.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass, field
from datetime import MAXYEAR, MINYEAR, date, timedelta
from decimal import Decimal

from django.contrib.contenttypes.models import ContentType
from django.utils import timezone

from costman.cache import MISS, CacheKind
from costman.conf import costman_settings
from costman.exceptions import ValuationError
from costman.models.enums import MovementDirection, MovementStatus
from costman.models.lot import Lot
from costman.models.movement import LotConsumption
from costman.models.position import Position
from costman.precision import ZERO, quantize_cost, quantize_qty, quantize_total, to_decimal
from costman.services.derivation import LotStock, StockDerivation, processed_lines


@dataclass(frozen=True)
class BalanceRow:
    """Stock of one position at a cutoff."""

    position_id: int
    product: str
    warehouse: str
    quantity: Decimal
    unit_cost: Decimal
    total_value: Decimal
    lots: int

    def as_dict(self) -> dict:
        return {
            'position_id': self.position_id,
            'product': self.product,
            'warehouse': self.warehouse,
            'quantity': str(quantize_qty(self.quantity)),
            'unit_cost': str(quantize_cost(self.unit_cost)),
            'total_value': str(quantize_total(self.total_value)),
            'lots': self.lots,
        }


@dataclass(frozen=True)
class StockBalance:
    """Balance rows plus totals."""

    cutoff: date | None
    rows: tuple[BalanceRow, ...] = field(default_factory=tuple)

    @property
    def positions(self) -> int:
        return len(self.rows)

    @property
    def total_quantity(self) -> Decimal:
        return sum((r.quantity for r in self.rows), ZERO)

    @property
    def total_value(self) -> Decimal:
        return sum((r.total_value for r in self.rows), ZERO)

    def as_dict(self) -> dict:
        return {
            'cutoff': self.cutoff.isoformat() if self.cutoff else None,
            'rows': [r.as_dict() for r in self.rows],
            'summary': {
                'positions': self.positions,
                'total_quantity': str(quantize_qty(self.total_quantity)),
                'total_value': str(quantize_total(self.total_value)),
            },
        }


MONTH_NAMES = (
    'Enero', 'Febrero', 'Marzo', 'Abril', 'Mayo', 'Junio',
    'Julio', 'Agosto', 'Septiembre', 'Octubre', 'Noviembre', 'Diciembre',
)


@dataclass(frozen=True)
class CostOfSalesMonth:
    """Purchases, outflows at cost and closing inventory value of one month."""

    month: int
    purchases: Decimal
    outflows: Decimal
    ending_inventory: Decimal

    @property
    def name(self) -> str:
        return MONTH_NAMES[self.month - 1]

    def as_dict(self) -> dict:
        return {
            'month': self.month,
            'name': self.name,
            'purchases': str(quantize_total(self.purchases)),
            'outflows': str(quantize_total(self.outflows)),
            'ending_inventory': str(quantize_total(self.ending_inventory)),
        }


@dataclass(frozen=True)
class CostOfSalesReport:
    """Twelve months of a year plus annual totals."""

    year: int
    warehouse: str | None
    product: str | None
    months: tuple[CostOfSalesMonth, ...] = field(default_factory=tuple)

    @property
    def total_purchases(self) -> Decimal:
        return sum((m.purchases for m in self.months), ZERO)

    @property
    def total_outflows(self) -> Decimal:
        return sum((m.outflows for m in self.months), ZERO)

    @property
    def ending_inventory(self) -> Decimal:
        """December's closing value."""
        return self.months[-1].ending_inventory if self.months else ZERO

    def as_dict(self) -> dict:
        return {
            'year': self.year,
            'warehouse': self.warehouse,
            'product': self.product,
            'months': [m.as_dict() for m in self.months],
            'summary': {
                'purchases': str(quantize_total(self.total_purchases)),
                'outflows': str(quantize_total(self.total_outflows)),
                'ending_inventory': str(quantize_total(self.ending_inventory)),
            },
        }


class StockQueries:
    """Read-only stock query methods."""

    def __init__(self, derivation: StockDerivation):
        self.derivation = derivation
        self.cache = derivation.cache

    # ══════════════════════════════════════════════════════════════
    # POSITIONS
    # ══════════════════════════════════════════════════════════════

    @staticmethod
    def get_or_create_position(product, warehouse) -> Position:
        """The position of a product in a warehouse, created on first use."""
        ct = ContentType.objects.get_for_model(product)
        position, _created = Position.objects.get_or_create(
            content_type=ct,
            object_id=product.pk,
            warehouse=warehouse,
        )
        return position

    def has_sufficient_stock(self, position_id: int, quantity,
                             cutoff: date | None = None) -> bool:
        """Can the consumable lots cover quantity right now (or at cutoff)?"""
        lots = self.derivation.available_lots(position_id, cutoff)
        available = sum((lot.remaining_quantity for lot in lots), ZERO)
        return available >= to_decimal(quantity)

    # ══════════════════════════════════════════════════════════════
    # BALANCE
    # ══════════════════════════════════════════════════════════════

    def stock_balance(self, warehouse=None, product=None, cutoff: date | None = None,
                      include_empty: bool = False) -> StockBalance:
        """
        Per-position balance, optionally narrowed to a warehouse or product.

        Positions without stock are left out unless include_empty=True.
        """
        rows = []
        for position in self._positions(warehouse, product).order_by('warehouse__code', 'id'):
            row = self._balance_row(position, cutoff)
            if include_empty or row.quantity > 0:
                rows.append(row)
        return StockBalance(cutoff=cutoff, rows=tuple(rows))

    @staticmethod
    def _positions(warehouse=None, product=None):
        positions = Position.objects.select_related('warehouse', 'content_type')
        if warehouse is not None:
            positions = positions.filter(warehouse=warehouse)
        if product is not None:
            ct = ContentType.objects.get_for_model(product)
            positions = positions.filter(content_type=ct, object_id=product.pk)
        return positions

    def _balance_row(self, position: Position, cutoff: date | None) -> BalanceRow:
        cached = self.cache.get(CacheKind.BALANCE, position.pk, cutoff)
        if cached is not MISS:
            return cached

        stock = self.derivation.derive_position_stock(position.pk, cutoff)
        row = BalanceRow(
            position_id=position.pk,
            product=str(position.product),
            warehouse=position.warehouse.code,
            quantity=stock.total_quantity,
            unit_cost=stock.weighted_unit_cost,
            total_value=stock.total_value,
            lots=len(stock.lots),
        )
        self.cache.set(CacheKind.BALANCE, position.pk, cutoff, row)
        return row

    # ══════════════════════════════════════════════════════════════
    # COST OF SALES
    # ══════════════════════════════════════════════════════════════

    def cost_of_sales(self, year: int, warehouse=None, product=None) -> CostOfSalesReport:
        """
        Monthly cost-of-sales statement for a calendar year.

        purchases         ENTRADA lines valued at their lot's unit cost
        outflows          SALIDA consumptions at the cost they were booked at
        ending_inventory  derived stock value on the month's last day

        Adjustments move ending_inventory but count as neither purchases
        nor outflows.

        Raises:
            ValuationError('INVALID_YEAR'): year outside the calendar range
        """
        if not MINYEAR <= year <= MAXYEAR:
            raise ValuationError('INVALID_YEAR', year=year)

        position_ids = list(self._positions(warehouse, product).values_list('pk', flat=True))

        purchases = dict.fromkeys(range(1, 13), ZERO)
        entries = processed_lines(date(year, 12, 31)).filter(
            position_id__in=position_ids,
            movement__direction=MovementDirection.ENTRADA,
            movement__date__year=year,
        ).select_related('movement', 'lot')
        for line in entries:
            unit_cost = line.lot.unit_cost if line.lot_id else ZERO
            purchases[line.movement.date.month] += line.quantity * unit_cost

        outflows = dict.fromkeys(range(1, 13), ZERO)
        consumptions = LotConsumption.objects.filter(
            line__position_id__in=position_ids,
            line__movement__status=MovementStatus.PROCESSED,
            line__movement__direction=MovementDirection.SALIDA,
            line__movement__date__year=year,
        ).select_related('line__movement')
        for consumption in consumptions:
            outflows[consumption.line.movement.date.month] += consumption.quantity * consumption.unit_cost

        months = []
        for month in range(1, 13):
            last_day = date(year, month, calendar.monthrange(year, month)[1])
            ending = sum(
                (self.derivation.derive_position_stock(pk, last_day).total_value
                 for pk in position_ids),
                ZERO,
            )
            months.append(CostOfSalesMonth(
                month=month,
                purchases=purchases[month],
                outflows=outflows[month],
                ending_inventory=ending,
            ))

        return CostOfSalesReport(
            year=year,
            warehouse=warehouse.code if warehouse is not None else None,
            product=str(product) if product is not None else None,
            months=tuple(months),
        )

    # ══════════════════════════════════════════════════════════════
    # EXPIRY
    # ══════════════════════════════════════════════════════════════

    def expiring_lots(self, days: int | None = None, position: Position | None = None,
                      today: date | None = None) -> list[LotStock]:
        """
        Active lots with stock expiring within the next `days` days.

        days defaults to COSTMAN["EXPIRY_WARNING_DAYS"]. Already expired
        lots are not included (see expired_lots).
        """
        today = today or timezone.localdate()
        days = costman_settings.EXPIRY_WARNING_DAYS if days is None else days
        lots = Lot.objects.active().filter(
            expiry_date__gte=today,
        ).expiring_before(today + timedelta(days=days))
        return self._with_stock(lots, position)

    def expired_lots(self, position: Position | None = None,
                     today: date | None = None) -> list[LotStock]:
        """Active lots with stock whose expiry date is past."""
        today = today or timezone.localdate()
        lots = Lot.objects.active().expired(today)
        return self._with_stock(lots, position)

    def _with_stock(self, lots, position: Position | None) -> list[LotStock]:
        if position is not None:
            lots = lots.filter(position=position)
        result = []
        for lot in lots.order_by('expiry_date', 'id'):
            stock = self.derivation.derive_lot_stock(lot.pk)
            if stock is not None and stock.remaining_quantity > 0:
                result.append(stock)
        return result
