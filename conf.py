"""
Costman configuration.

Usage in settings.py:
    COSTMAN = {
        "CACHE_TTL_DEFAULT": 300,
        "DEFAULT_VALUATION_METHOD": "FIFO",
        "COSTING_POLICIES": {
            "LIFO": "myproject.costing.LifoPolicy",
        },
        "EXPIRY_WARNING_DAYS": 15,
    }
"""

from dataclasses import dataclass, field
from typing import Any

from django.conf import settings


@dataclass
class CostmanSettings:
    """Costman configuration settings."""

    # Valuation cache on/off (off = every read replays the ledger)
    CACHE_ENABLED: bool = True

    # TTL classes in seconds: per-lot lookups, default, aggregates
    CACHE_TTL_SHORT: int = 120
    CACHE_TTL_DEFAULT: int = 300
    CACHE_TTL_LONG: int = 600

    # Policy used when the caller does not name one
    DEFAULT_VALUATION_METHOD: str = "WEIGHTED_AVERAGE"

    # Extra or replacement costing policies (method -> dotted path)
    COSTING_POLICIES: dict[str, str] = field(default_factory=dict)

    # Prefix for generated lot codes
    LOT_CODE_PREFIX: str = "LOTE"

    # Window used by expiring_lots() when no explicit window is given
    EXPIRY_WARNING_DAYS: int = 30


def get_costman_settings() -> CostmanSettings:
    """Load settings from Django settings."""
    user_settings: dict[str, Any] = getattr(settings, "COSTMAN", {})
    return CostmanSettings(**{
        k: v for k, v in user_settings.items()
        if k in CostmanSettings.__dataclass_fields__
    })


class _LazySettings:
    """Lazy proxy that re-reads settings on every attribute access."""

    def __getattr__(self, name):
        return getattr(get_costman_settings(), name)


costman_settings = _LazySettings()
