"""
Exceptions for Costman.

All errors are ValuationError with a structured code for programmatic
handling. Subclasses exist for the conditions callers usually branch on.
"""

from decimal import Decimal
from typing import Any


class ValuationError(Exception):
    """
    Structured exception for valuation operations.

    Usage:
        try:
            valuation.on_outbound_line(line, ValuationMethod.FIFO)
        except InsufficientStock as e:
            print(f"Solo hay {e.available} de {e.requested}")
        except ValuationError as e:
            if e.code == 'POSITION_NOT_FOUND':
                ...

    Attributes:
        code: Error code for programmatic handling
        message: Human-readable message
        data: Additional context data
    """

    default_code = 'VALUATION_ERROR'

    _default_messages = {
        'VALUATION_ERROR': 'Error de valorización',
        'POSITION_NOT_FOUND': 'Inventario no encontrado',
        'LOT_NOT_FOUND': 'Lote no encontrado',
        'MOVEMENT_NOT_FOUND': 'Movimiento no encontrado',
        'INSUFFICIENT_STOCK': 'Stock insuficiente',
        'INVALID_QUANTITY': 'Cantidad inválida',
        'INVALID_COST': 'Costo unitario inválido (no puede ser negativo)',
        'INVALID_STATUS': 'Estado inválido para esta operación',
        'INVALID_DATE_RANGE': 'Rango de fechas inválido',
        'INVALID_YEAR': 'Año inválido',
        'UNKNOWN_POLICY': 'Método de valoración desconocido',
    }

    def __init__(self, code: str | None = None, message: str | None = None, **data):
        self.code = code or self.default_code
        self.message = message or self._default_messages.get(self.code, self.code)
        self.data = data
        super().__init__(f"[{self.code}] {self.message}")

    def as_dict(self) -> dict[str, Any]:
        """Serialize to dict (useful for APIs)."""
        return {
            'code': self.code,
            'message': self.message,
            'data': {
                k: str(v) if isinstance(v, Decimal) else v
                for k, v in self.data.items()
            }
        }


class NotFound(ValuationError):
    """A referenced position, lot or movement does not exist."""

    default_code = 'POSITION_NOT_FOUND'


class InsufficientStock(ValuationError):
    """Available lots cannot cover the requested quantity."""

    default_code = 'INSUFFICIENT_STOCK'

    @property
    def requested(self) -> Decimal:
        """Shortcut for data['requested']."""
        return self.data.get('requested', Decimal('0'))

    @property
    def available(self) -> Decimal:
        """Shortcut for data['available']."""
        return self.data.get('available', Decimal('0'))

    @property
    def shortfall(self) -> Decimal:
        """Shortcut for data['shortfall']."""
        return self.data.get('shortfall', self.requested - self.available)


class InvalidQuantity(ValuationError):
    default_code = 'INVALID_QUANTITY'


class InvalidCost(ValuationError):
    default_code = 'INVALID_COST'
