"""
Initial migration for Costman models.
"""

import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    """Create Costman models: Warehouse, Position, Lot, Movement, MovementLine, LotConsumption."""

    initial = True

    dependencies = [
        ('contenttypes', '0002_remove_content_type_name'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Warehouse',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('code', models.SlugField(help_text='Identificador único (ej: central, tienda-1)', unique=True, verbose_name='Código')),
                ('name', models.CharField(max_length=100, verbose_name='Nombre')),
                ('kind', models.CharField(choices=[('physical', 'Físico'), ('virtual', 'Virtual')], default='physical', max_length=20, verbose_name='Tipo')),
                ('is_default', models.BooleanField(default=False, verbose_name='Almacén por defecto')),
                ('metadata', models.JSONField(blank=True, default=dict, verbose_name='Metadatos')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'verbose_name': 'Almacén',
                'verbose_name_plural': 'Almacenes',
                'ordering': ['code'],
            },
        ),
        migrations.CreateModel(
            name='Position',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('object_id', models.PositiveIntegerField(verbose_name='ID del Producto')),
                ('metadata', models.JSONField(blank=True, default=dict)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('content_type', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, to='contenttypes.contenttype', verbose_name='Tipo de Producto')),
                ('warehouse', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='positions', to='costman.warehouse', verbose_name='Almacén')),
            ],
            options={
                'verbose_name': 'Inventario',
                'verbose_name_plural': 'Inventarios',
                'indexes': [models.Index(fields=['content_type', 'object_id'], name='costman_position_product_idx')],
                'constraints': [models.UniqueConstraint(fields=('content_type', 'object_id', 'warehouse'), name='unique_position_product_warehouse')],
            },
        ),
        migrations.CreateModel(
            name='Lot',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('entry_date', models.DateField(db_index=True, help_text='Fecha de emisión del comprobante (admite fechas retroactivas)', verbose_name='Fecha de Ingreso')),
                ('entry_quantity', models.DecimalField(decimal_places=4, max_digits=12, verbose_name='Cantidad Inicial')),
                ('unit_cost', models.DecimalField(decimal_places=4, max_digits=12, verbose_name='Costo Unitario')),
                ('expiry_date', models.DateField(blank=True, db_index=True, null=True, verbose_name='Fecha de Vencimiento')),
                ('code', models.CharField(blank=True, db_index=True, max_length=50, null=True, verbose_name='Número de Lote')),
                ('notes', models.TextField(blank=True, default='', verbose_name='Observaciones')),
                ('is_active', models.BooleanField(default=True, verbose_name='Activo')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('position', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='lots', to='costman.position', verbose_name='Inventario')),
            ],
            options={
                'verbose_name': 'Lote',
                'verbose_name_plural': 'Lotes',
                'ordering': ['entry_date', 'id'],
                'indexes': [models.Index(fields=['position', 'entry_date'], name='costman_lot_position_date_idx')],
            },
        ),
        migrations.CreateModel(
            name='Movement',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('direction', models.CharField(choices=[('ENTRADA', 'Entrada'), ('SALIDA', 'Salida'), ('AJUSTE', 'Ajuste')], db_index=True, max_length=10, verbose_name='Tipo')),
                ('date', models.DateField(db_index=True, verbose_name='Fecha')),
                ('status', models.CharField(choices=[('PENDIENTE', 'Pendiente'), ('PROCESADO', 'Procesado'), ('CANCELADO', 'Cancelado')], db_index=True, default='PROCESADO', max_length=10, verbose_name='Estado')),
                ('reference_id', models.PositiveIntegerField(blank=True, null=True, verbose_name='ID de Referencia')),
                ('reason', models.CharField(blank=True, default='', help_text='Ej: "Compra F001-123", "Venta B001-45"', max_length=255, verbose_name='Motivo')),
                ('metadata', models.JSONField(blank=True, default=dict, verbose_name='Metadatos')),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('reference_type', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to='contenttypes.contenttype', verbose_name='Tipo de Referencia')),
                ('user', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, to=settings.AUTH_USER_MODEL, verbose_name='Usuario')),
            ],
            options={
                'verbose_name': 'Movimiento',
                'verbose_name_plural': 'Movimientos',
                'ordering': ['date', 'id'],
                'indexes': [models.Index(fields=['status', 'date'], name='costman_movement_status_idx')],
            },
        ),
        migrations.CreateModel(
            name='MovementLine',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('quantity', models.DecimalField(decimal_places=4, max_digits=12, verbose_name='Cantidad')),
                ('lot', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='movement_lines', to='costman.lot', verbose_name='Lote')),
                ('movement', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='lines', to='costman.movement', verbose_name='Movimiento')),
                ('position', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='movement_lines', to='costman.position', verbose_name='Inventario')),
            ],
            options={
                'verbose_name': 'Detalle de Movimiento',
                'verbose_name_plural': 'Detalles de Movimiento',
                'ordering': ['id'],
                'indexes': [models.Index(fields=['position', 'movement'], name='costman_line_position_idx')],
            },
        ),
        migrations.CreateModel(
            name='LotConsumption',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('quantity', models.DecimalField(decimal_places=4, max_digits=12, verbose_name='Cantidad')),
                ('unit_cost', models.DecimalField(decimal_places=4, max_digits=12, verbose_name='Costo Unitario de Lote')),
                ('line', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='consumptions', to='costman.movementline', verbose_name='Detalle de Movimiento')),
                ('lot', models.ForeignKey(blank=True, help_text='Vacío = consumo a costo promedio (sin lote específico)', null=True, on_delete=django.db.models.deletion.PROTECT, related_name='consumptions', to='costman.lot', verbose_name='Lote')),
            ],
            options={
                'verbose_name': 'Detalle de Salida',
                'verbose_name_plural': 'Detalles de Salida',
                'ordering': ['id'],
            },
        ),
    ]
