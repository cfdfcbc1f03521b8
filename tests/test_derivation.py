"""
Tests for stock derivation (ledger replay, clamping, cutoffs, cache).
"""

import logging
from datetime import date
from decimal import Decimal

import pytest

from costman.models import (
    LotConsumption,
    Movement,
    MovementDirection,
    MovementLine,
    MovementStatus,
    ValuationMethod,
)


pytestmark = pytest.mark.django_db


def raw_sale(position, day, draws, status=MovementStatus.PROCESSED):
    """
    Write a SALIDA straight into the ledger, without the lifecycle
    (and so without cache invalidation).

    draws: [(lot_or_None, quantity, unit_cost), ...]
    """
    movement = Movement.objects.create(
        direction=MovementDirection.SALIDA, date=day, status=status,
    )
    total = sum((Decimal(str(q)) for _lot, q, _c in draws), Decimal('0'))
    line = MovementLine.objects.create(movement=movement, position=position, quantity=total)
    for lot, quantity, unit_cost in draws:
        LotConsumption.objects.create(
            line=line, lot=lot,
            quantity=Decimal(str(quantity)), unit_cost=Decimal(str(unit_cost)),
        )
    return movement


class TestDeriveLotStock:

    def test_fresh_lot_has_entry_quantity(self, valuation, position, receive):
        lot = receive(position, 10, '2.00', date(2024, 1, 1))

        stock = valuation.derive_lot_stock(lot.pk)

        assert stock.remaining_quantity == Decimal('10')
        assert stock.unit_cost == Decimal('2.00')
        assert stock.code == lot.code
        assert not stock.clamped

    def test_unknown_lot_is_none(self, valuation, db):
        assert valuation.derive_lot_stock(999) is None

    def test_cutoff_before_entry_is_zero(self, valuation, position, receive):
        lot = receive(position, 10, '2.00', date(2024, 1, 10))

        assert valuation.derive_lot_stock(lot.pk, date(2024, 1, 9)).remaining_quantity == 0
        assert valuation.derive_lot_stock(lot.pk, date(2024, 1, 10)).remaining_quantity == 10

    def test_fifo_consumption_reduces_lot(self, valuation, position, two_lots, sell):
        lot_a, lot_b = two_lots
        sell(position, 15, date(2024, 2, 1), ValuationMethod.FIFO)

        assert valuation.derive_lot_stock(lot_a.pk).remaining_quantity == 0
        assert valuation.derive_lot_stock(lot_b.pk).remaining_quantity == 5

    def test_lot_stock_as_of_before_sale(self, valuation, position, two_lots, sell):
        lot_a, _lot_b = two_lots
        sell(position, 15, date(2024, 2, 1), ValuationMethod.FIFO)

        assert valuation.derive_lot_stock(lot_a.pk, date(2024, 1, 31)).remaining_quantity == 10

    def test_negative_sum_is_clamped(self, valuation, position, receive, caplog):
        lot = receive(position, 10, '2.00', date(2024, 1, 1))
        raw_sale(position, date(2024, 1, 2), [(lot, 15, '2.00')])

        with caplog.at_level(logging.WARNING, logger='costman'):
            stock = valuation.derive_lot_stock(lot.pk)

        assert stock.remaining_quantity == 0
        assert stock.clamped
        assert any(r.getMessage() == 'costman.lot.clamped' for r in caplog.records)

    def test_weighted_average_sale_drains_pro_rata(self, valuation, position, two_lots, sell):
        lot_a, lot_b = two_lots
        sell(position, 12, date(2024, 2, 1), ValuationMethod.WEIGHTED_AVERAGE)

        assert valuation.derive_lot_stock(lot_a.pk).remaining_quantity == 4
        assert valuation.derive_lot_stock(lot_b.pk).remaining_quantity == 4
        # 50.00 - 12 @ 2.50
        assert valuation.derive_position_stock(position.pk).total_value == Decimal('20')


class TestDerivePositionStock:

    def test_unknown_position_is_none(self, valuation, db):
        assert valuation.derive_position_stock(999) is None

    def test_position_without_lots_is_zero(self, valuation, position):
        stock = valuation.derive_position_stock(position.pk)

        assert stock.total_quantity == 0
        assert stock.weighted_unit_cost == 0
        assert stock.total_value == 0
        assert stock.is_empty

    def test_totals_and_blended_cost(self, valuation, position, receive):
        receive(position, 10, '2.00', date(2024, 1, 1))
        receive(position, 5, '4.00', date(2024, 1, 2))

        stock = valuation.derive_position_stock(position.pk)

        assert stock.total_quantity == Decimal('15')
        assert stock.total_value == Decimal('40')
        assert stock.weighted_unit_cost == Decimal('2.6667')
        assert len(stock.lots) == 2

    def test_exhausted_lots_do_not_count(self, valuation, position, two_lots, sell):
        sell(position, 15, date(2024, 2, 1), ValuationMethod.FIFO)

        stock = valuation.derive_position_stock(position.pk)

        assert stock.total_quantity == Decimal('5')
        assert stock.weighted_unit_cost == Decimal('3.0000')
        assert stock.total_value == Decimal('15')
        assert [s.lot_id for s in stock.lots] == [two_lots[1].pk]

    def test_quantity_equals_sum_of_lots(self, valuation, position, two_lots, sell, receive):
        sell(position, 7, date(2024, 1, 5), ValuationMethod.FIFO)
        receive(position, 4, '5.00', date(2024, 1, 20))
        sell(position, 6, date(2024, 2, 1), ValuationMethod.WEIGHTED_AVERAGE)

        stock = valuation.derive_position_stock(position.pk)
        lot_sum = sum(
            (valuation.derive_lot_stock(lot.pk).remaining_quantity for lot in position.lots.all()),
            Decimal('0'),
        )

        assert stock.total_quantity == Decimal('11')
        assert lot_sum == stock.total_quantity

    def test_cancelled_and_pending_movements_are_ignored(self, valuation, position, two_lots):
        lot_a, _lot_b = two_lots
        raw_sale(position, date(2024, 1, 5), [(lot_a, 4, '2.00')], status=MovementStatus.CANCELLED)
        raw_sale(position, date(2024, 1, 5), [(lot_a, 3, '2.00')], status=MovementStatus.PENDING)

        assert valuation.derive_position_stock(position.pk).total_quantity == Decimal('20')

    def test_sale_without_consumptions_drains_pro_rata(self, valuation, position, two_lots):
        lot_a, lot_b = two_lots
        movement = Movement.objects.create(direction=MovementDirection.SALIDA, date=date(2024, 2, 1))
        MovementLine.objects.create(movement=movement, position=position, quantity=Decimal('12'))

        assert valuation.derive_position_stock(position.pk).total_quantity == Decimal('8')
        assert valuation.derive_lot_stock(lot_a.pk).remaining_quantity == 4
        assert valuation.derive_lot_stock(lot_b.pk).remaining_quantity == 4

    def test_pooled_drain_follows_lot_weights(self, valuation, position, receive):
        small = receive(position, 5, '2.00', date(2024, 1, 1))
        large = receive(position, 15, '4.00', date(2024, 1, 2))
        raw_sale(position, date(2024, 1, 3), [(None, 8, '3.50')])

        assert valuation.derive_lot_stock(small.pk).remaining_quantity == 3
        assert valuation.derive_lot_stock(large.pk).remaining_quantity == 9
        # 70.00 - 8 @ 3.50
        assert valuation.derive_position_stock(position.pk).total_value == Decimal('42')

    def test_cutoff_is_inclusive(self, valuation, position, two_lots):
        assert valuation.derive_position_stock(position.pk, date(2024, 1, 9)).total_quantity == 10
        assert valuation.derive_position_stock(position.pk, date(2024, 1, 10)).total_quantity == 20

    def test_deterministic(self, valuation, position, two_lots, sell):
        sell(position, 3, date(2024, 1, 15), ValuationMethod.FIFO)

        first = valuation.derivation.derive_position_stock(position.pk, use_cache=False)
        second = valuation.derivation.derive_position_stock(position.pk, use_cache=False)

        assert first == second


class TestAvailableLots:

    def test_fifo_order(self, valuation, position, receive):
        late = receive(position, 5, '3.00', date(2024, 1, 10))
        early = receive(position, 5, '2.00', date(2024, 1, 1))

        lots = valuation.available_lots(position.pk)

        assert [s.lot_id for s in lots] == [early.pk, late.pk]

    def test_same_day_ties_by_id(self, valuation, position, receive):
        first = receive(position, 5, '3.00', date(2024, 1, 1))
        second = receive(position, 5, '2.00', date(2024, 1, 1))

        assert [s.lot_id for s in valuation.available_lots(position.pk)] == [first.pk, second.pk]

    def test_inactive_lot_counts_but_is_not_offered(self, valuation, position, two_lots):
        lot_a, lot_b = two_lots
        valuation.deactivate_lot(lot_a.pk)

        assert [s.lot_id for s in valuation.available_lots(position.pk)] == [lot_b.pk]
        assert valuation.derive_position_stock(position.pk).total_quantity == Decimal('20')


class TestDrawableLots:

    def test_without_cutoff_matches_available_lots(self, valuation, position, two_lots):
        assert valuation.derivation.drawable_lots(position.pk) == valuation.available_lots(position.pk)

    def test_capped_by_later_consumption(self, valuation, position, two_lots, sell):
        lot_a, lot_b = two_lots
        sell(position, 13, date(2024, 2, 1), ValuationMethod.FIFO)

        lots = valuation.derivation.drawable_lots(position.pk, date(2024, 1, 15))

        # lot A: 10 on the 15th, 0 now; lot B: 10 on the 15th, 7 now
        assert [(s.lot_id, s.remaining_quantity) for s in lots] == [(lot_b.pk, Decimal('7'))]

    def test_inactive_lots_on_request(self, valuation, position, two_lots):
        lot_a, lot_b = two_lots
        valuation.deactivate_lot(lot_a.pk)

        assert [s.lot_id for s in valuation.derivation.drawable_lots(position.pk)] == [lot_b.pk]
        assert [
            s.lot_id for s in valuation.derivation.drawable_lots(position.pk, include_inactive=True)
        ] == [lot_a.pk, lot_b.pk]


class TestCaching:

    def test_stale_read_without_invalidate(self, valuation, cache, position, receive):
        """Writing around the lifecycle serves stale stock until invalidated."""
        lot = receive(position, 5, '2.00', date(2024, 1, 1))
        assert valuation.derive_position_stock(position.pk).total_quantity == 5

        raw_sale(position, date(2024, 1, 2), [(lot, 2, '2.00')])

        assert valuation.derive_position_stock(position.pk).total_quantity == 5

        cache.invalidate(position.pk)

        assert valuation.derive_position_stock(position.pk).total_quantity == 3

    def test_ttl_expiry_refreshes(self, valuation, clock, position, receive):
        lot = receive(position, 5, '2.00', date(2024, 1, 1))
        valuation.derive_position_stock(position.pk)
        raw_sale(position, date(2024, 1, 2), [(lot, 2, '2.00')])

        clock.advance(301)

        assert valuation.derive_position_stock(position.pk).total_quantity == 3

    def test_lifecycle_write_invalidates(self, valuation, position, two_lots, sell):
        assert valuation.derive_position_stock(position.pk).total_quantity == 20

        sell(position, 4, date(2024, 2, 1), ValuationMethod.FIFO)

        assert valuation.derive_position_stock(position.pk).total_quantity == 16
        assert valuation.derive_lot_stock(two_lots[0].pk).remaining_quantity == 6


class TestAudit:

    def test_clean_ledger(self, valuation, position, two_lots, sell):
        sell(position, 5, date(2024, 2, 1), ValuationMethod.WEIGHTED_AVERAGE)

        audit = valuation.audit(position.pk)

        assert audit.is_clean
        assert audit.lots == 2

    def test_reports_clamped_lots(self, valuation, position, receive):
        lot = receive(position, 10, '2.00', date(2024, 1, 1))
        raw_sale(position, date(2024, 1, 2), [(lot, 12, '2.00')])

        audit = valuation.audit(position.pk)

        assert audit.clamped_lots == (lot.pk,)
        assert not audit.is_clean

    def test_reports_uncovered_pooled_withdrawal(self, valuation, position, receive):
        receive(position, 10, '2.00', date(2024, 1, 1))
        raw_sale(position, date(2024, 1, 2), [(None, 12, '2.00')])

        assert valuation.audit(position.pk).unattributed_shortfall == Decimal('2')
