"""
Warehouse model — Where stock exists.
"""

from django.db import models
from django.utils.translation import gettext_lazy as _

from costman.models.enums import WarehouseKind


class Warehouse(models.Model):
    """
    Where stock exists — physical place or accounting bucket.

    Warehouses are stable entities, created during system setup.

    Examples:
        Warehouse.objects.create(code='central', name='Almacén Central')
        Warehouse.objects.create(code='mermas', name='Mermas', kind=WarehouseKind.VIRTUAL)
    """

    code = models.SlugField(
        unique=True,
        max_length=50,
        verbose_name=_('Código'),
        help_text=_('Identificador único (ej: central, tienda-1)'),
    )
    name = models.CharField(
        max_length=100,
        verbose_name=_('Nombre'),
    )
    kind = models.CharField(
        max_length=20,
        choices=WarehouseKind.choices,
        default=WarehouseKind.PHYSICAL,
        verbose_name=_('Tipo'),
    )
    is_default = models.BooleanField(
        default=False,
        verbose_name=_('Almacén por defecto'),
    )
    metadata = models.JSONField(
        default=dict,
        blank=True,
        verbose_name=_('Metadatos'),
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _('Almacén')
        verbose_name_plural = _('Almacenes')
        ordering = ['code']

    def __str__(self) -> str:
        return self.name
