"""
Smoke tests for the admin views and actions.
"""

from datetime import date

import pytest
from django.urls import reverse

from costman.models import Lot, MovementStatus, ValuationMethod


pytestmark = pytest.mark.django_db


@pytest.mark.parametrize('model', ['warehouse', 'position', 'lot', 'movement', 'movementline'])
def test_changelist_renders(admin_client, model, position, two_lots, sell):
    sell(position, 3, date(2024, 2, 1), ValuationMethod.FIFO)

    response = admin_client.get(reverse(f'admin:costman_{model}_changelist'))

    assert response.status_code == 200


def test_position_shows_derived_quantity(admin_client, position, two_lots):
    response = admin_client.get(reverse('admin:costman_position_changelist'))

    assert '20.0000' in response.content.decode()


def test_cancel_action(admin_client, valuation, position, two_lots, sell):
    result = sell(position, 3, date(2024, 2, 1), ValuationMethod.FIFO)

    admin_client.post(reverse('admin:costman_movement_changelist'), {
        'action': 'cancel_movements',
        '_selected_action': [result.movement.pk],
    })

    result.movement.refresh_from_db()
    assert result.movement.status == MovementStatus.CANCELLED


def test_deactivate_action(admin_client, position, two_lots):
    lot_a, _lot_b = two_lots

    admin_client.post(reverse('admin:costman_lot_changelist'), {
        'action': 'deactivate_lots',
        '_selected_action': [lot_a.pk],
    })

    assert not Lot.objects.get(pk=lot_a.pk).is_active
