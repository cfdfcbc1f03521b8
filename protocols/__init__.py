"""
Costman Protocols.

Defines interfaces for pluggable costing policies.
"""

from costman.protocols.costing import (
    Allocation,
    CostingPolicy,
    CostPlan,
)

__all__ = [
    "Allocation",
    "CostingPolicy",
    "CostPlan",
]
