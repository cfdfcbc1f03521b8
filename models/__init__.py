"""
Costman Models.

Ledger store for inventory valuation:
- Warehouse: Where stock exists
- Position: Product x warehouse identity (no stored quantity)
- Lot: Batch received at one moment with its own unit cost
- Movement: Append-only ledger header
- MovementLine: Per-position quantity of a movement
- LotConsumption: Per-lot breakdown of a SALIDA line
"""

from costman.models.enums import (
    MovementDirection,
    MovementStatus,
    ValuationMethod,
    WarehouseKind,
)
from costman.models.lot import Lot
from costman.models.movement import LotConsumption, Movement, MovementLine
from costman.models.position import Position
from costman.models.warehouse import Warehouse

__all__ = [
    'WarehouseKind',
    'MovementDirection',
    'MovementStatus',
    'ValuationMethod',
    'Warehouse',
    'Position',
    'Lot',
    'Movement',
    'MovementLine',
    'LotConsumption',
]
