"""
Django Costman — Motor de Valorización de Inventario.

Kardex, lotes FIFO y costo promedio ponderado, derivados del libro de
movimientos.

Uso:
    from costman import Valuation, ValuationCache, VoucherLine, ValuationMethod

    valuation = Valuation(cache=ValuationCache())
    valuation.on_inbound_line(VoucherLine(pos.pk, 10, enero, unit_cost=2))
    valuation.on_outbound_line(VoucherLine(pos.pk, 4, febrero), ValuationMethod.FIFO)
    valuation.build_report(pos.pk, date_from=enero, date_to=febrero)
"""


def __getattr__(name):
    """Lazy import to avoid circular imports during app loading."""
    if name == 'Valuation':
        from costman.service import Valuation
        return Valuation
    elif name == 'ValuationCache':
        from costman.cache import ValuationCache
        return ValuationCache
    elif name == 'VoucherLine':
        from costman.services.lifecycle import VoucherLine
        return VoucherLine
    elif name in ('ValuationError', 'NotFound', 'InsufficientStock',
                  'InvalidQuantity', 'InvalidCost'):
        from costman import exceptions
        return getattr(exceptions, name)
    elif name in ('Warehouse', 'Position', 'Lot', 'Movement',
                  'MovementLine', 'LotConsumption'):
        from costman import models
        return getattr(models, name)
    elif name in ('MovementDirection', 'MovementStatus',
                  'ValuationMethod', 'WarehouseKind'):
        from costman.models import enums
        return getattr(enums, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    'Valuation',
    'ValuationCache',
    'VoucherLine',
    'ValuationError',
    'NotFound',
    'InsufficientStock',
    'InvalidQuantity',
    'InvalidCost',
    'Warehouse',
    'Position',
    'Lot',
    'Movement',
    'MovementLine',
    'LotConsumption',
    'MovementDirection',
    'MovementStatus',
    'ValuationMethod',
    'WarehouseKind',
]

__version__ = '0.1.0'
