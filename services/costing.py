"""
Outbound costing — FIFO allocation and weighted-average cost.

Two implementations of the CostingPolicy protocol, picked by
ValuationMethod through a small registry:

    policy = get_policy(ValuationMethod.FIFO, derivation)
    plan = policy.plan(position_id, Decimal('15'), cutoff)

Plans are computed, never persisted here. LotLifecycle commits them.
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal

from django.core.exceptions import ImproperlyConfigured
from django.utils.module_loading import import_string

from costman.conf import costman_settings
from costman.exceptions import InsufficientStock, InvalidQuantity, NotFound, ValuationError
from costman.models.enums import ValuationMethod
from costman.precision import ZERO, quantize_cost, to_decimal
from costman.protocols.costing import Allocation, CostingPolicy, CostPlan
from costman.services.derivation import StockDerivation

logger = logging.getLogger('costman')


def _require_positive(quantity) -> Decimal:
    quantity = to_decimal(quantity)
    if quantity <= 0:
        raise InvalidQuantity(requested=quantity)
    return quantity


class FifoAllocator:
    """Splits a withdrawal across a position's lots, oldest first."""

    def __init__(self, derivation: StockDerivation):
        self.derivation = derivation

    def allocate_fifo(self, position_id: int, requested, cutoff: date | None = None,
                      use_cache: bool = True) -> list[Allocation]:
        """
        Per-lot consumption plan for requested quantity.

        Greedy: each lot in (entry_date, id) order gives
        min(still requested, lot remaining) until nothing is left.
        A lot's remaining is capped at what it still holds today, so a
        back-dated plan cannot reuse units a later sale consumed.

        Raises:
            InvalidQuantity: requested <= 0
            NotFound: unknown position
            InsufficientStock: lots run out first; nothing is allocated
        """
        requested = _require_positive(requested)

        if self.derivation.derive_position_stock(position_id, cutoff, use_cache=use_cache) is None:
            raise NotFound('POSITION_NOT_FOUND', position_id=position_id)

        lots = self.derivation.drawable_lots(position_id, cutoff, use_cache=use_cache)

        allocations = []
        remaining = requested
        for lot in lots:
            if remaining <= 0:
                break
            take = min(remaining, lot.remaining_quantity)
            allocations.append(Allocation(
                lot_id=lot.lot_id,
                quantity=take,
                unit_cost=lot.unit_cost,
            ))
            remaining -= take

        if remaining > 0:
            available = requested - remaining
            logger.info(
                "costman.allocation.insufficient",
                extra={
                    "position_id": position_id,
                    "requested": str(requested),
                    "available": str(available),
                },
            )
            raise InsufficientStock(
                requested=requested,
                available=available,
                shortfall=remaining,
                position_id=position_id,
            )

        return allocations


class WeightedAverageCalculator:
    """Blended unit cost over every lot with stock."""

    def __init__(self, derivation: StockDerivation):
        self.derivation = derivation

    def average_cost(self, position_id: int, cutoff: date | None = None,
                     use_cache: bool = True) -> Decimal:
        """
        sum(qty * unit_cost) / sum(qty) over lots with stock; 0 if none.

        Raises:
            NotFound: unknown position
        """
        stock = self.derivation.derive_position_stock(position_id, cutoff, use_cache=use_cache)
        if stock is None:
            raise NotFound('POSITION_NOT_FOUND', position_id=position_id)
        return stock.weighted_unit_cost


# ══════════════════════════════════════════════════════════════
# POLICIES
# ══════════════════════════════════════════════════════════════

class FifoPolicy:
    """Each draw named by lot and priced at that lot's cost."""

    method = ValuationMethod.FIFO

    def __init__(self, derivation: StockDerivation):
        self.allocator = FifoAllocator(derivation)

    def plan(self, position_id, quantity, cutoff=None) -> CostPlan:
        quantity = _require_positive(quantity)
        allocations = self.allocator.allocate_fifo(position_id, quantity, cutoff)
        return CostPlan(
            method=self.method,
            position_id=position_id,
            quantity=quantity,
            allocations=tuple(allocations),
        )

    def unit_cost(self, position_id, quantity, cutoff=None) -> Decimal:
        return quantize_cost(self.plan(position_id, quantity, cutoff).unit_cost)


class WeightedAveragePolicy:
    """
    One pseudo-allocation (no lot) at the position's blended cost.

    The replay drains the pooled quantity from every lot with stock,
    inactive ones included, pro rata to what each holds, which is the
    same mix the blended cost was computed over.
    """

    method = ValuationMethod.WEIGHTED_AVERAGE

    def __init__(self, derivation: StockDerivation):
        self.derivation = derivation
        self.calculator = WeightedAverageCalculator(derivation)

    def plan(self, position_id, quantity, cutoff=None) -> CostPlan:
        quantity = _require_positive(quantity)
        stock = self.derivation.derive_position_stock(position_id, cutoff)
        if stock is None:
            raise NotFound('POSITION_NOT_FOUND', position_id=position_id)
        drawable = self.derivation.drawable_lots(position_id, cutoff, include_inactive=True)
        available = sum((lot.remaining_quantity for lot in drawable), ZERO)
        if available < quantity:
            raise InsufficientStock(
                requested=quantity,
                available=available,
                shortfall=quantity - available,
                position_id=position_id,
            )
        return CostPlan(
            method=self.method,
            position_id=position_id,
            quantity=quantity,
            allocations=(Allocation(lot_id=None, quantity=quantity,
                                    unit_cost=stock.weighted_unit_cost),),
        )

    def unit_cost(self, position_id, quantity, cutoff=None) -> Decimal:
        return self.calculator.average_cost(position_id, cutoff)


BUILTIN_POLICIES: dict[str, type] = {
    ValuationMethod.FIFO.value: FifoPolicy,
    ValuationMethod.WEIGHTED_AVERAGE.value: WeightedAveragePolicy,
}


def get_policy_class(method) -> type:
    """
    Resolve a valuation method to its policy class.

    COSTMAN["COSTING_POLICIES"] entries win over the built-ins.

    Raises:
        ImproperlyConfigured: a configured dotted path cannot be imported
        ValuationError('UNKNOWN_POLICY'): no policy for the method
    """
    key = str(method or costman_settings.DEFAULT_VALUATION_METHOD)
    configured = costman_settings.COSTING_POLICIES.get(key)
    if configured:
        try:
            return import_string(configured)
        except ImportError as e:
            raise ImproperlyConfigured(
                f"Failed to import costing policy '{configured}' for {key}: {e}"
            ) from e

    try:
        return BUILTIN_POLICIES[key]
    except KeyError:
        raise ValuationError('UNKNOWN_POLICY', method=key) from None


def get_policy(method, derivation: StockDerivation) -> CostingPolicy:
    """Policy instance for a method; an existing policy instance passes through."""
    if isinstance(method, CostingPolicy):
        return method
    return get_policy_class(method)(derivation)
