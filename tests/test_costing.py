"""
Tests for FIFO allocation, weighted-average cost and the policy registry.
"""

from datetime import date
from decimal import Decimal

import pytest
from django.core.exceptions import ImproperlyConfigured

from costman.exceptions import InsufficientStock, InvalidQuantity, NotFound, ValuationError
from costman.models import ValuationMethod
from costman.protocols import CostingPolicy
from costman.services.costing import (
    FifoPolicy,
    WeightedAveragePolicy,
    get_policy,
    get_policy_class,
)


pytestmark = pytest.mark.django_db


class TestAllocateFifo:

    def test_spans_lots_oldest_first(self, valuation, position, two_lots):
        lot_a, lot_b = two_lots

        allocations = valuation.allocate_fifo(position.pk, Decimal('15'))

        assert [(a.lot_id, a.quantity, a.unit_cost) for a in allocations] == [
            (lot_a.pk, Decimal('10'), Decimal('2.00')),
            (lot_b.pk, Decimal('5'), Decimal('3.00')),
        ]

    def test_conserves_quantity(self, valuation, position, two_lots):
        allocations = valuation.allocate_fifo(position.pk, Decimal('13.5'))

        assert sum(a.quantity for a in allocations) == Decimal('13.5')
        assert all(a.quantity > 0 for a in allocations)

    def test_exact_fit_uses_one_lot(self, valuation, position, two_lots):
        allocations = valuation.allocate_fifo(position.pk, Decimal('10'))

        assert len(allocations) == 1
        assert allocations[0].lot_id == two_lots[0].pk

    def test_insufficient_stock(self, valuation, position, two_lots):
        with pytest.raises(InsufficientStock) as exc:
            valuation.allocate_fifo(position.pk, Decimal('25'))

        assert exc.value.code == 'INSUFFICIENT_STOCK'
        assert exc.value.requested == Decimal('25')
        assert exc.value.available == Decimal('20')
        assert exc.value.shortfall == Decimal('5')

    def test_respects_cutoff(self, valuation, position, two_lots):
        with pytest.raises(InsufficientStock) as exc:
            valuation.allocate_fifo(position.pk, Decimal('15'), date(2024, 1, 5))

        assert exc.value.available == Decimal('10')

    @pytest.mark.parametrize('quantity', [Decimal('0'), Decimal('-1')])
    def test_rejects_non_positive(self, valuation, position, two_lots, quantity):
        with pytest.raises(InvalidQuantity):
            valuation.allocate_fifo(position.pk, quantity)

    def test_unknown_position(self, valuation, db):
        with pytest.raises(NotFound):
            valuation.allocate_fifo(999, Decimal('1'))

    def test_skips_inactive_lots(self, valuation, position, two_lots):
        lot_a, lot_b = two_lots
        valuation.deactivate_lot(lot_a.pk)

        allocations = valuation.allocate_fifo(position.pk, Decimal('4'))

        assert [a.lot_id for a in allocations] == [lot_b.pk]

    def test_does_not_write(self, valuation, position, two_lots):
        valuation.allocate_fifo(position.pk, Decimal('15'))

        assert valuation.derive_position_stock(position.pk).total_quantity == Decimal('20')


class TestAverageCost:

    def test_blended_cost(self, valuation, position, receive):
        receive(position, 10, '2.00', date(2024, 1, 1))
        receive(position, 5, '4.00', date(2024, 1, 2))

        assert valuation.average_cost(position.pk) == Decimal('2.6667')

    def test_empty_position_is_zero(self, valuation, position):
        assert valuation.average_cost(position.pk) == Decimal('0')

    def test_single_lot_is_its_cost(self, valuation, position, receive):
        receive(position, 3, '7.25', date(2024, 1, 1))
        assert valuation.average_cost(position.pk) == Decimal('7.25')

    def test_unknown_position(self, valuation, db):
        with pytest.raises(NotFound):
            valuation.average_cost(999)


class TestPolicies:

    def test_builtins_satisfy_protocol(self, valuation):
        assert isinstance(FifoPolicy(valuation.derivation), CostingPolicy)
        assert isinstance(WeightedAveragePolicy(valuation.derivation), CostingPolicy)

    def test_fifo_unit_cost_for_sale(self, valuation, position, two_lots):
        # (10 * 2.00 + 5 * 3.00) / 15
        cost = valuation.unit_cost_for_sale(position.pk, Decimal('15'), ValuationMethod.FIFO)
        assert cost == Decimal('2.3333')

    def test_weighted_unit_cost_for_sale(self, valuation, position, two_lots):
        cost = valuation.unit_cost_for_sale(
            position.pk, Decimal('15'), ValuationMethod.WEIGHTED_AVERAGE,
        )
        assert cost == Decimal('2.5000')

    def test_weighted_plan_is_one_pooled_allocation(self, valuation, position, two_lots):
        plan = WeightedAveragePolicy(valuation.derivation).plan(position.pk, Decimal('4'))

        assert len(plan.allocations) == 1
        assert plan.allocations[0].is_pooled
        assert plan.allocations[0].unit_cost == Decimal('2.5000')
        assert plan.total_cost == Decimal('10')

    def test_weighted_plan_insufficient(self, valuation, position, two_lots):
        with pytest.raises(InsufficientStock) as exc:
            WeightedAveragePolicy(valuation.derivation).plan(position.pk, Decimal('21'))

        assert exc.value.shortfall == Decimal('1')

    def test_fifo_plan_deterministic(self, valuation, position, two_lots):
        policy = FifoPolicy(valuation.derivation)

        assert policy.plan(position.pk, Decimal('12')) == policy.plan(position.pk, Decimal('12'))


class TestPolicyRegistry:

    def test_builtin_lookup(self):
        assert get_policy_class(ValuationMethod.FIFO) is FifoPolicy
        assert get_policy_class('WEIGHTED_AVERAGE') is WeightedAveragePolicy

    def test_default_method_from_settings(self, settings):
        settings.COSTMAN = {'DEFAULT_VALUATION_METHOD': 'FIFO'}
        assert get_policy_class(None) is FifoPolicy

    def test_unknown_method(self):
        with pytest.raises(ValuationError) as exc:
            get_policy_class('LIFO')
        assert exc.value.code == 'UNKNOWN_POLICY'

    def test_configured_policy(self, settings):
        settings.COSTMAN = {
            'COSTING_POLICIES': {'PEPS': 'costman.services.costing.FifoPolicy'},
        }
        assert get_policy_class('PEPS') is FifoPolicy

    def test_misconfigured_policy(self, settings):
        settings.COSTMAN = {
            'COSTING_POLICIES': {'LIFO': 'nowhere.LifoPolicy'},
        }
        with pytest.raises(ImproperlyConfigured):
            get_policy_class('LIFO')

    def test_instance_passes_through(self, valuation):
        policy = FifoPolicy(valuation.derivation)
        assert get_policy(policy, valuation.derivation) is policy
