"""
Costing Policy Protocol — Interface for outbound valuation policies.

Costman ships FIFO and weighted average. A third policy is one more class
implementing this protocol, registered under COSTMAN["COSTING_POLICIES"].
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Protocol, runtime_checkable

from costman.precision import ZERO, weighted_cost


@dataclass(frozen=True)
class Allocation:
    """
    One draw of an outbound plan.

    lot_id=None is the weighted-average pseudo-allocation: the quantity is
    booked at the blended cost without naming a lot.
    """

    lot_id: int | None
    quantity: Decimal
    unit_cost: Decimal

    @property
    def is_pooled(self) -> bool:
        return self.lot_id is None

    @property
    def total_cost(self) -> Decimal:
        """Full precision; round only for presentation."""
        return self.quantity * self.unit_cost


@dataclass(frozen=True)
class CostPlan:
    """Result of planning an outbound quantity under a policy. Not persisted."""

    method: str
    position_id: int
    quantity: Decimal
    allocations: tuple[Allocation, ...]

    @property
    def total_cost(self) -> Decimal:
        return sum((a.total_cost for a in self.allocations), ZERO)

    @property
    def unit_cost(self) -> Decimal:
        """Quantity-weighted cost of the plan (0 for an empty plan)."""
        return weighted_cost(self.total_cost, self.quantity)


@runtime_checkable
class CostingPolicy(Protocol):
    """
    Protocol for outbound costing.

    Implementations receive the StockDerivation engine at construction
    and must be deterministic: the same ledger snapshot and cutoff give
    the same plan.
    """

    method: str

    def plan(self, position_id: int, quantity: Decimal,
             cutoff: date | None = None) -> CostPlan:
        """
        Plan the withdrawal of quantity from a position.

        Raises:
            InsufficientStock: when the policy cannot cover the quantity
        """
        ...

    def unit_cost(self, position_id: int, quantity: Decimal,
                  cutoff: date | None = None) -> Decimal:
        """Unit cost an outbound line of this quantity would carry."""
        ...
