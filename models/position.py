"""
Position model — a product in a warehouse.
"""

from django.contrib.contenttypes.fields import GenericForeignKey
from django.contrib.contenttypes.models import ContentType
from django.db import models
from django.utils.translation import gettext_lazy as _


class PositionManager(models.Manager):
    """Manager with helper methods for Position queries."""

    def for_product(self, product):
        """Filter positions for a specific product."""
        ct = ContentType.objects.get_for_model(product)
        return self.filter(content_type=ct, object_id=product.pk)

    def in_warehouse(self, warehouse):
        return self.filter(warehouse=warehouse)


class Position(models.Model):
    """
    A (product, warehouse) pair whose stock and cost are tracked.

    Identity only. There is deliberately no quantity or cost column:
    both are derived by replaying the ledger (see StockDerivation).
    Created the first time a product is stocked in a warehouse.
    """

    # Generic reference to product (agnostic)
    content_type = models.ForeignKey(
        ContentType,
        on_delete=models.PROTECT,
        verbose_name=_('Tipo de Producto'),
    )
    object_id = models.PositiveIntegerField(
        verbose_name=_('ID del Producto'),
    )
    product = GenericForeignKey('content_type', 'object_id')

    warehouse = models.ForeignKey(
        'costman.Warehouse',
        on_delete=models.PROTECT,
        related_name='positions',
        verbose_name=_('Almacén'),
    )

    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    objects = PositionManager()

    class Meta:
        verbose_name = _('Inventario')
        verbose_name_plural = _('Inventarios')
        constraints = [
            models.UniqueConstraint(
                fields=['content_type', 'object_id', 'warehouse'],
                name='unique_position_product_warehouse',
            )
        ]
        indexes = [
            models.Index(fields=['content_type', 'object_id'], name='costman_position_product_idx'),
        ]

    def __str__(self) -> str:
        return f"{self.product} @ {self.warehouse.code}"
