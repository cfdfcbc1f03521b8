"""
Costman Admin — read-only views for auditing the ledger.

- Warehouse: list + edit
- Position: read-only, with derived quantity, average cost and value
- Lot: read-only, with derived remaining quantity and "deactivate" action
- Movement: read-only audit trail with lines inline and "cancel" action

Derived columns replay the ledger with the cache off, so the admin
always shows the current ledger rather than a cached snapshot.
"""

import logging

from django.contrib import admin
from django.utils.translation import gettext_lazy as _

from costman.cache import ValuationCache
from costman.exceptions import ValuationError
from costman.models import (
    Lot,
    LotConsumption,
    Movement,
    MovementLine,
    MovementStatus,
    Position,
    Warehouse,
)
from costman.precision import quantize_total
from costman.service import Valuation

logger = logging.getLogger(__name__)


def _valuation():
    return Valuation(cache=ValuationCache(enabled=False))


class ReadOnlyAdminMixin:
    """Ledger rows only change through the Valuation service."""

    def has_add_permission(self, request, obj=None):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


# =========================================================================
# WAREHOUSE ADMIN
# =========================================================================

@admin.register(Warehouse)
class WarehouseAdmin(admin.ModelAdmin):
    """Warehouse admin — editable."""

    list_display = ['code', 'name', 'kind', 'is_default']
    list_filter = ['kind']
    search_fields = ['code', 'name']
    readonly_fields = ['created_at', 'updated_at']


# =========================================================================
# POSITION ADMIN (read-only)
# =========================================================================

@admin.register(Position)
class PositionAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    """Position admin — read-only. Stock is derived, never stored."""

    list_display = ['__str__', 'warehouse', 'quantity_display',
                    'unit_cost_display', 'value_display']
    list_filter = ['warehouse']
    search_fields = ['object_id', 'warehouse__code']
    readonly_fields = ['content_type', 'object_id', 'warehouse', 'metadata', 'created_at']
    list_select_related = ['warehouse']

    def _stock(self, obj):
        if not hasattr(obj, '_derived_stock'):
            obj._derived_stock = _valuation().derive_position_stock(obj.pk)
        return obj._derived_stock

    @admin.display(description=_('Cantidad'))
    def quantity_display(self, obj):
        return self._stock(obj).total_quantity

    @admin.display(description=_('Costo Promedio'))
    def unit_cost_display(self, obj):
        return self._stock(obj).weighted_unit_cost

    @admin.display(description=_('Valor Total'))
    def value_display(self, obj):
        return quantize_total(self._stock(obj).total_value)


# =========================================================================
# LOT ADMIN (read-only with deactivate action)
# =========================================================================

@admin.register(Lot)
class LotAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    """Lot admin — read-only with deactivate action."""

    list_display = ['code', 'position', 'entry_date', 'entry_quantity', 'unit_cost',
                    'remaining_display', 'expiry_date', 'is_expired_display', 'is_active']
    list_filter = ['is_active', 'entry_date', 'expiry_date']
    search_fields = ['code', 'notes']
    readonly_fields = ['position', 'entry_date', 'entry_quantity', 'unit_cost',
                       'expiry_date', 'code', 'notes', 'is_active', 'created_at']
    date_hierarchy = 'entry_date'
    actions = ['deactivate_lots']

    @admin.display(description=_('Saldo'))
    def remaining_display(self, obj):
        stock = _valuation().derive_lot_stock(obj.pk)
        return stock.remaining_quantity if stock else None

    @admin.display(description=_('¿Vencido?'), boolean=True)
    def is_expired_display(self, obj):
        return obj.is_expired

    @admin.action(description=_('Desactivar lotes seleccionados'))
    def deactivate_lots(self, request, queryset):
        valuation = _valuation()
        count = 0
        for lot in queryset.filter(is_active=True):
            valuation.deactivate_lot(lot.pk)
            count += 1
        self.message_user(request, _('{count} lote(s) desactivado(s).').format(count=count))


# =========================================================================
# MOVEMENT ADMIN (read-only audit trail with cancel action)
# =========================================================================

class LotConsumptionInline(ReadOnlyAdminMixin, admin.TabularInline):
    model = LotConsumption
    fields = ['lot', 'quantity', 'unit_cost']
    readonly_fields = fields
    extra = 0


class MovementLineInline(ReadOnlyAdminMixin, admin.TabularInline):
    model = MovementLine
    fields = ['position', 'lot', 'quantity']
    readonly_fields = fields
    extra = 0
    show_change_link = True


@admin.register(MovementLine)
class MovementLineAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    """Movement line admin — read-only, shows the lots a sale drew."""

    list_display = ['id', 'movement', 'position', 'lot', 'quantity']
    list_select_related = ['movement', 'position__warehouse', 'lot']
    readonly_fields = ['movement', 'position', 'lot', 'quantity']
    inlines = [LotConsumptionInline]


@admin.register(Movement)
class MovementAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    """Movement admin — read-only. Immutable audit trail."""

    list_display = ['id', 'date', 'direction', 'status', 'voucher_display', 'reason', 'user']
    list_filter = ['direction', 'status', 'date']
    search_fields = ['reason']
    readonly_fields = ['direction', 'date', 'status', 'reference_type', 'reference_id',
                       'reason', 'metadata', 'user', 'created_at']
    date_hierarchy = 'date'
    inlines = [MovementLineInline]
    actions = ['cancel_movements']

    @admin.display(description=_('Comprobante'))
    def voucher_display(self, obj):
        return obj.voucher_label or '-'

    @admin.action(description=_('Anular movimientos seleccionados'))
    def cancel_movements(self, request, queryset):
        valuation = _valuation()
        count = 0
        for movement in queryset.exclude(status=MovementStatus.CANCELLED):
            try:
                valuation.cancel_movement(movement.pk)
                count += 1
            except ValuationError as exc:
                logger.warning("cancel_movements: failed to cancel %s: %s", movement.pk, exc)

        self.message_user(request, _('{count} movimiento(s) anulado(s).').format(count=count))
