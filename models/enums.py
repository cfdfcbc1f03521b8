"""
Enums for Costman models.
"""

from django.db import models
from django.utils.translation import gettext_lazy as _


class WarehouseKind(models.TextChoices):
    """
    Type of warehouse.

    PHYSICAL: Place where product exists in the real world.
              Examples: Almacén central, Tienda, Depósito
    VIRTUAL:  Accounting concept, product doesn't physically exist.
              Examples: Mermas, Ajustes de inventario, En tránsito
    """
    PHYSICAL = 'physical', _('Físico')
    VIRTUAL = 'virtual', _('Virtual')


class MovementDirection(models.TextChoices):
    """Direction of a ledger movement."""
    ENTRADA = 'ENTRADA', _('Entrada')   # Adds to a lot
    SALIDA = 'SALIDA', _('Salida')      # Draws from lots
    AJUSTE = 'AJUSTE', _('Ajuste')      # Signed correction on a lot


class MovementStatus(models.TextChoices):
    """Movement processing state. Only PROCESSED movements affect stock."""
    PENDING = 'PENDIENTE', _('Pendiente')
    PROCESSED = 'PROCESADO', _('Procesado')
    CANCELLED = 'CANCELADO', _('Cancelado')


class ValuationMethod(models.TextChoices):
    """
    Costing policy for outbound lines.

    FIFO:             oldest lots consumed first, each at its own cost
    WEIGHTED_AVERAGE: one blended cost across every lot with stock
    """
    FIFO = 'FIFO', _('PEPS (FIFO)')
    WEIGHTED_AVERAGE = 'WEIGHTED_AVERAGE', _('Promedio ponderado')
