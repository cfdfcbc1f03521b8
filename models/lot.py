"""
Lot model — a batch of a position received at one moment with its own cost.
"""

from datetime import date

from django.db import models
from django.utils.translation import gettext_lazy as _


class LotQuerySet(models.QuerySet):
    """Custom QuerySet for Lot with convenience filters."""

    def active(self):
        return self.filter(is_active=True)

    def fifo(self):
        """Oldest first; ties broken by insertion order."""
        return self.order_by('entry_date', 'id')

    def expiring_before(self, day):
        """Lots expiring on or before the given date."""
        return self.filter(expiry_date__lte=day, expiry_date__isnull=False)

    def expired(self, today=None):
        return self.filter(expiry_date__lt=today or date.today(), expiry_date__isnull=False)


class Lot(models.Model):
    """
    Batch of stock received together with a specific unit cost.

    One lot is created per inbound (purchase) voucher line. After creation
    a lot is never edited, except for soft deactivation. The remaining
    quantity is NOT stored here: it is recomputed from the movement lines
    and consumption records that reference the lot.
    """

    MUTABLE_FIELDS = frozenset({'is_active', 'notes'})

    position = models.ForeignKey(
        'costman.Position',
        on_delete=models.PROTECT,
        related_name='lots',
        verbose_name=_('Inventario'),
    )
    entry_date = models.DateField(
        db_index=True,
        verbose_name=_('Fecha de Ingreso'),
        help_text=_('Fecha de emisión del comprobante (admite fechas retroactivas)'),
    )
    entry_quantity = models.DecimalField(
        max_digits=12,
        decimal_places=4,
        verbose_name=_('Cantidad Inicial'),
    )
    unit_cost = models.DecimalField(
        max_digits=12,
        decimal_places=4,
        verbose_name=_('Costo Unitario'),
    )
    expiry_date = models.DateField(
        null=True,
        blank=True,
        db_index=True,
        verbose_name=_('Fecha de Vencimiento'),
    )
    code = models.CharField(
        max_length=50,
        null=True,
        blank=True,
        db_index=True,
        verbose_name=_('Número de Lote'),
    )
    notes = models.TextField(
        blank=True,
        default='',
        verbose_name=_('Observaciones'),
    )
    is_active = models.BooleanField(
        default=True,
        verbose_name=_('Activo'),
    )
    created_at = models.DateTimeField(auto_now_add=True)

    objects = LotQuerySet.as_manager()

    class Meta:
        verbose_name = _('Lote')
        verbose_name_plural = _('Lotes')
        ordering = ['entry_date', 'id']
        indexes = [
            models.Index(fields=['position', 'entry_date'], name='costman_lot_position_date_idx'),
        ]

    def save(self, *args, **kwargs):
        """Lots are append-only; existing rows may only change MUTABLE_FIELDS."""
        if self.pk:
            update_fields = kwargs.get('update_fields')
            if update_fields is None or not set(update_fields) <= self.MUTABLE_FIELDS:
                raise ValueError(
                    "Los lotes son inmutables. "
                    "Solo se permite desactivar o anotar observaciones."
                )
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError("Los lotes no se eliminan. Use la desactivación.")

    def deactivate(self) -> None:
        self.is_active = False
        self.save(update_fields=['is_active'])

    @property
    def is_expired(self) -> bool:
        if self.expiry_date is None:
            return False
        return date.today() > self.expiry_date

    def __str__(self) -> str:
        label = self.code or f"#{self.pk}"
        return f"Lote {label} ({self.entry_date}, {self.entry_quantity} @ {self.unit_cost})"
