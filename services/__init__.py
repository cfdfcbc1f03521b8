"""
Valuation services — modular organization of valuation operations.

    from costman.services import StockDerivation, LotLifecycle, KardexBuilder
"""

from costman.services.costing import (
    FifoAllocator,
    FifoPolicy,
    WeightedAverageCalculator,
    WeightedAveragePolicy,
    get_policy,
)
from costman.services.derivation import LedgerAudit, LotStock, PositionStock, StockDerivation
from costman.services.kardex import KardexBuilder, KardexEvent, KardexReport
from costman.services.lifecycle import LotLifecycle, OutboundResult, VoucherLine
from costman.services.queries import (
    BalanceRow,
    CostOfSalesMonth,
    CostOfSalesReport,
    StockBalance,
    StockQueries,
)

__all__ = [
    'StockDerivation',
    'LotStock',
    'PositionStock',
    'LedgerAudit',
    'FifoAllocator',
    'WeightedAverageCalculator',
    'FifoPolicy',
    'WeightedAveragePolicy',
    'get_policy',
    'LotLifecycle',
    'VoucherLine',
    'OutboundResult',
    'KardexBuilder',
    'KardexEvent',
    'KardexReport',
    'StockQueries',
    'BalanceRow',
    'StockBalance',
    'CostOfSalesMonth',
    'CostOfSalesReport',
]
