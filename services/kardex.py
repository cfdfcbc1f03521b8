"""
Kardex — chronological movement report for one position.

    opening balance  derived stock the day before date_from
    events           every processed line in the window, with running balance
    closing balance  opening + the signed sum of the events

SALIDA events are valued at the costs frozen in their consumption
records, so a report reads the same under either policy no matter when
it is run. Under weighted average those are blended costs quantized to
four places, while the replay drains the same quantity pro rata from
the lots at their own costs. The closing value then differs from a
fresh lot-based derivation by that quantization only, unless a sale
was back-dated behind later sales whose blended cost it would have
changed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal

from django.utils import timezone

from costman.conf import costman_settings
from costman.exceptions import NotFound, ValuationError
from costman.models.enums import MovementDirection
from costman.models.movement import MovementLine
from costman.models.position import Position
from costman.precision import ZERO, quantize_cost, quantize_qty, quantize_total, weighted_cost
from costman.protocols.costing import Allocation
from costman.services.derivation import StockDerivation, processed_lines

logger = logging.getLogger('costman')


@dataclass(frozen=True)
class KardexEvent:
    """One movement line as it appears in the report."""

    date: date
    movement_id: int
    line_id: int
    direction: str
    quantity: Decimal       # signed: SALIDA negative
    unit_cost: Decimal
    total_cost: Decimal     # signed, full precision
    running_quantity: Decimal
    running_value: Decimal
    voucher: str = ''
    reason: str = ''
    lot_id: int | None = None
    consumptions: tuple[Allocation, ...] = field(default_factory=tuple)

    def as_dict(self) -> dict:
        return {
            'date': self.date.isoformat(),
            'movement_id': self.movement_id,
            'direction': self.direction,
            'voucher': self.voucher,
            'reason': self.reason,
            'lot_id': self.lot_id,
            'quantity': str(quantize_qty(self.quantity)),
            'unit_cost': str(quantize_cost(self.unit_cost)),
            'total_cost': str(quantize_total(self.total_cost)),
            'running_quantity': str(quantize_qty(self.running_quantity)),
            'running_value': str(quantize_total(self.running_value)),
            'consumptions': [
                {
                    'lot_id': c.lot_id,
                    'quantity': str(quantize_qty(c.quantity)),
                    'unit_cost': str(quantize_cost(c.unit_cost)),
                    'total_cost': str(quantize_total(c.total_cost)),
                }
                for c in self.consumptions
            ],
        }


@dataclass(frozen=True)
class KardexReport:
    """Opening balance, ordered events, closing balance."""

    position_id: int
    product: str
    warehouse: str
    method: str
    date_from: date | None
    date_to: date
    opening_quantity: Decimal
    opening_value: Decimal
    closing_quantity: Decimal
    closing_value: Decimal
    events: tuple[KardexEvent, ...] = field(default_factory=tuple)

    @property
    def closing_unit_cost(self) -> Decimal:
        return quantize_cost(weighted_cost(self.closing_value, self.closing_quantity))

    def as_dict(self) -> dict:
        return {
            'position_id': self.position_id,
            'product': self.product,
            'warehouse': self.warehouse,
            'method': self.method,
            'date_from': self.date_from.isoformat() if self.date_from else None,
            'date_to': self.date_to.isoformat(),
            'opening': {
                'quantity': str(quantize_qty(self.opening_quantity)),
                'value': str(quantize_total(self.opening_value)),
            },
            'events': [event.as_dict() for event in self.events],
            'closing': {
                'quantity': str(quantize_qty(self.closing_quantity)),
                'unit_cost': str(self.closing_unit_cost),
                'value': str(quantize_total(self.closing_value)),
            },
        }


class KardexBuilder:
    """Builds Kardex reports in a single pass over the window's lines."""

    def __init__(self, derivation: StockDerivation):
        self.derivation = derivation

    def build_report(self, position_id: int, policy=None,
                     date_from: date | None = None,
                     date_to: date | None = None) -> KardexReport:
        """
        Kardex of a position between two dates (both inclusive).

        date_from=None starts at the beginning of the ledger (zero
        opening); date_to=None means today.

        policy only labels the report (KardexReport.method, default
        COSTMAN["DEFAULT_VALUATION_METHOD"]). It does not change any
        figure: each event carries the cost it was booked at.

        Raises:
            NotFound: unknown position
            ValuationError('INVALID_DATE_RANGE'): date_from after date_to
        """
        date_to = date_to or timezone.localdate()
        if date_from is not None and date_from > date_to:
            raise ValuationError(
                'INVALID_DATE_RANGE',
                date_from=date_from.isoformat(),
                date_to=date_to.isoformat(),
            )

        position = Position.objects.select_related('warehouse').filter(pk=position_id).first()
        if position is None:
            raise NotFound('POSITION_NOT_FOUND', position_id=position_id)

        method = str(getattr(policy, 'method', policy) or costman_settings.DEFAULT_VALUATION_METHOD)

        if date_from is None:
            opening_qty, opening_value = ZERO, ZERO
        else:
            opening = self.derivation.derive_position_stock(
                position_id, date_from - timedelta(days=1),
            )
            opening_qty, opening_value = opening.total_quantity, opening.total_value

        lines = processed_lines(date_to).filter(position_id=position_id)
        if date_from is not None:
            lines = lines.filter(movement__date__gte=date_from)
        lines = (
            lines
            .select_related('movement', 'lot')
            .prefetch_related('consumptions')
            .order_by('movement__date', 'movement_id', 'id')
        )

        running_qty, running_value = opening_qty, opening_value
        events = []
        for line in lines:
            event = self._event(line, running_qty, running_value)
            running_qty, running_value = event.running_quantity, event.running_value
            events.append(event)

        logger.debug(
            "costman.kardex.built",
            extra={
                "position_id": position_id,
                "method": method,
                "events": len(events),
            },
        )

        return KardexReport(
            position_id=position_id,
            product=str(position.product),
            warehouse=position.warehouse.code,
            method=method,
            date_from=date_from,
            date_to=date_to,
            opening_quantity=opening_qty,
            opening_value=opening_value,
            closing_quantity=running_qty,
            closing_value=running_value,
            events=tuple(events),
        )

    @staticmethod
    def _event(line: MovementLine, running_qty: Decimal, running_value: Decimal) -> KardexEvent:
        movement = line.movement
        consumptions = ()

        if movement.direction == MovementDirection.SALIDA:
            consumptions = tuple(
                Allocation(lot_id=c.lot_id, quantity=c.quantity, unit_cost=c.unit_cost)
                for c in line.consumptions.all()
            )
            if consumptions:
                cost = sum((c.total_cost for c in consumptions), ZERO)
                unit_cost = weighted_cost(cost, line.quantity)
            else:
                # no frozen cost on record: value at the running average
                unit_cost = weighted_cost(running_value, running_qty)
                cost = line.quantity * unit_cost
            quantity, total_cost = -line.quantity, -cost
        else:
            unit_cost = line.lot.unit_cost if line.lot_id else weighted_cost(running_value, running_qty)
            quantity = line.quantity
            total_cost = quantity * unit_cost

        return KardexEvent(
            date=movement.date,
            movement_id=movement.pk,
            line_id=line.pk,
            direction=movement.direction,
            quantity=quantity,
            unit_cost=unit_cost,
            total_cost=total_cost,
            running_quantity=running_qty + quantity,
            running_value=running_value + total_cost,
            voucher=movement.voucher_label,
            reason=movement.reason,
            lot_id=line.lot_id,
            consumptions=consumptions,
        )
