"""
Movement models — Append-only ledger of inventory events.

    Movement        header: direction, date, status, voucher reference
    MovementLine    per-position quantity, optional lot
    LotConsumption  per-lot breakdown of a SALIDA line (frozen unit cost)
"""

from django.conf import settings
from django.contrib.contenttypes.fields import GenericForeignKey
from django.contrib.contenttypes.models import ContentType
from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from costman.models.enums import MovementDirection, MovementStatus


class MovementQuerySet(models.QuerySet):

    def processed(self):
        return self.filter(status=MovementStatus.PROCESSED)


class Movement(models.Model):
    """
    Immutable header of one inventory-affecting event.

    Rules:
    - NEVER delete()
    - The only permitted change is the status flag
      (PENDING → PROCESSED, PENDING|PROCESSED → CANCELLED)
    - Only PROCESSED movements take part in stock replay
    """

    direction = models.CharField(
        max_length=10,
        choices=MovementDirection.choices,
        db_index=True,
        verbose_name=_('Tipo'),
    )
    date = models.DateField(
        db_index=True,
        verbose_name=_('Fecha'),
    )
    status = models.CharField(
        max_length=10,
        choices=MovementStatus.choices,
        default=MovementStatus.PROCESSED,
        db_index=True,
        verbose_name=_('Estado'),
    )

    # Originating voucher (comprobante), if any
    reference_type = models.ForeignKey(
        ContentType,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
        verbose_name=_('Tipo de Referencia'),
    )
    reference_id = models.PositiveIntegerField(null=True, blank=True, verbose_name=_('ID de Referencia'))
    reference = GenericForeignKey('reference_type', 'reference_id')

    reason = models.CharField(
        max_length=255,
        blank=True,
        default='',
        verbose_name=_('Motivo'),
        help_text=_('Ej: "Compra F001-123", "Venta B001-45"'),
    )
    metadata = models.JSONField(default=dict, blank=True, verbose_name=_('Metadatos'))
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        verbose_name=_('Usuario'),
    )
    created_at = models.DateTimeField(default=timezone.now)

    objects = MovementQuerySet.as_manager()

    class Meta:
        verbose_name = _('Movimiento')
        verbose_name_plural = _('Movimientos')
        ordering = ['date', 'id']
        indexes = [
            models.Index(fields=['status', 'date'], name='costman_movement_status_idx'),
        ]

    def save(self, *args, **kwargs):
        """Only the status flag of an existing movement may change."""
        if self.pk:
            update_fields = kwargs.get('update_fields')
            if update_fields is None or set(update_fields) != {'status'}:
                raise ValueError(
                    "Los movimientos son inmutables. "
                    "Para anular, cambie el estado a CANCELADO."
                )
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError(
            "Los movimientos son inmutables. "
            "Para anular, cambie el estado a CANCELADO."
        )

    @property
    def is_processed(self) -> bool:
        return self.status == MovementStatus.PROCESSED

    @property
    def voucher_label(self) -> str:
        """Printable reference for reports (empty when there is none)."""
        if self.reference_id is None:
            return ''
        ref = self.reference
        return str(ref) if ref is not None else f"{self.reference_type_id}:{self.reference_id}"

    def __str__(self) -> str:
        return f"{self.get_direction_display()} #{self.pk} ({self.date})"


class MovementLine(models.Model):
    """
    Per-position line of a Movement.

    quantity is positive for ENTRADA and SALIDA; AJUSTE lines are signed.
    ENTRADA and AJUSTE lines always name their lot. SALIDA lines name
    their lots through LotConsumption records instead.
    """

    movement = models.ForeignKey(
        Movement,
        on_delete=models.PROTECT,
        related_name='lines',
        verbose_name=_('Movimiento'),
    )
    position = models.ForeignKey(
        'costman.Position',
        on_delete=models.PROTECT,
        related_name='movement_lines',
        verbose_name=_('Inventario'),
    )
    lot = models.ForeignKey(
        'costman.Lot',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='movement_lines',
        verbose_name=_('Lote'),
    )
    quantity = models.DecimalField(
        max_digits=12,
        decimal_places=4,
        verbose_name=_('Cantidad'),
    )

    class Meta:
        verbose_name = _('Detalle de Movimiento')
        verbose_name_plural = _('Detalles de Movimiento')
        ordering = ['id']
        indexes = [
            models.Index(fields=['position', 'movement'], name='costman_line_position_idx'),
        ]

    def save(self, *args, **kwargs):
        if self.pk:
            raise ValueError("Los detalles de movimiento son inmutables.")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError("Los detalles de movimiento son inmutables.")

    def __str__(self) -> str:
        return f"{self.quantity} | {self.position_id} | lote {self.lot_id or '-'}"


class LotConsumption(models.Model):
    """
    Which lot a SALIDA line drew from, how much, and at what cost.

    unit_cost is a snapshot taken at the time of the draw, never a live
    lookup. lot=None marks the weighted-average pseudo-allocation: the
    quantity is booked at the blended cost without naming a lot.
    """

    line = models.ForeignKey(
        MovementLine,
        on_delete=models.PROTECT,
        related_name='consumptions',
        verbose_name=_('Detalle de Movimiento'),
    )
    lot = models.ForeignKey(
        'costman.Lot',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='consumptions',
        verbose_name=_('Lote'),
        help_text=_('Vacío = consumo a costo promedio (sin lote específico)'),
    )
    quantity = models.DecimalField(
        max_digits=12,
        decimal_places=4,
        verbose_name=_('Cantidad'),
    )
    unit_cost = models.DecimalField(
        max_digits=12,
        decimal_places=4,
        verbose_name=_('Costo Unitario de Lote'),
    )

    class Meta:
        verbose_name = _('Detalle de Salida')
        verbose_name_plural = _('Detalles de Salida')
        ordering = ['id']

    def save(self, *args, **kwargs):
        if self.pk:
            raise ValueError("Los detalles de salida son inmutables.")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError("Los detalles de salida son inmutables.")

    @property
    def is_pooled(self) -> bool:
        """True for the weighted-average pseudo-allocation."""
        return self.lot_id is None

    def __str__(self) -> str:
        return f"{self.quantity} @ {self.unit_cost} (lote {self.lot_id or 'promedio'})"
