"""
Pytest fixtures for Costman tests.
"""

from datetime import date
from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model

from costman.cache import ValuationCache
from costman.models import Position, Warehouse, WarehouseKind
from costman.service import Valuation
from costman.services.lifecycle import VoucherLine
from costman.tests.testapp.models import Product


User = get_user_model()


class FakeClock:
    """Monotonic clock the tests move by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def user(db):
    """Create a test user."""
    return User.objects.create_user(
        username='testuser',
        password='testpass123'
    )


@pytest.fixture
def product(db):
    """Create a test product."""
    return Product.objects.create(sku='ARR-001', name='Arroz Costeño 5kg')


@pytest.fixture
def other_product(db):
    return Product.objects.create(sku='AZU-001', name='Azúcar Rubia 1kg')


@pytest.fixture
def warehouse(db):
    """Get or create the central warehouse."""
    warehouse, _ = Warehouse.objects.get_or_create(
        code='central',
        defaults={
            'name': 'Almacén Central',
            'kind': WarehouseKind.PHYSICAL,
            'is_default': True,
        }
    )
    return warehouse


@pytest.fixture
def store(db):
    """Get or create a second warehouse."""
    warehouse, _ = Warehouse.objects.get_or_create(
        code='tienda-1',
        defaults={'name': 'Tienda 1'}
    )
    return warehouse


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    """Enabled cache on a hand-driven clock."""
    return ValuationCache(clock=clock, enabled=True)


@pytest.fixture
def valuation(cache):
    return Valuation(cache=cache)


@pytest.fixture
def position(valuation, product, warehouse):
    return valuation.get_or_create_position(product, warehouse)


@pytest.fixture
def receive(valuation):
    """Book an inbound line: receive(position, qty, cost, day, **kwargs) -> Lot."""

    def _receive(position: Position, quantity, unit_cost, day: date, **kwargs):
        return valuation.on_inbound_line(VoucherLine(
            position_id=position.pk,
            quantity=Decimal(str(quantity)),
            unit_cost=Decimal(str(unit_cost)),
            date=day,
            **kwargs,
        ))

    return _receive


@pytest.fixture
def sell(valuation):
    """Book an outbound line: sell(position, qty, day, policy) -> OutboundResult."""

    def _sell(position: Position, quantity, day: date, policy=None, **kwargs):
        return valuation.on_outbound_line(
            VoucherLine(
                position_id=position.pk,
                quantity=Decimal(str(quantity)),
                date=day,
                **kwargs,
            ),
            policy,
        )

    return _sell


@pytest.fixture
def two_lots(position, receive):
    """
    Lot A: 2024-01-01, 10 @ 2.00
    Lot B: 2024-01-10, 10 @ 3.00
    """
    lot_a = receive(position, 10, '2.00', date(2024, 1, 1))
    lot_b = receive(position, 10, '3.00', date(2024, 1, 10))
    return lot_a, lot_b
