"""
Management command to audit the movement ledger.

Replays every position (or one) and reports lots whose ledger sum went
negative and withdrawals the replay could not cover.

Usage:
    python manage.py audit_ledger
    python manage.py audit_ledger --position 42
    python manage.py audit_ledger --cutoff 2024-12-31
"""

from datetime import date

from django.core.management.base import BaseCommand, CommandError

from costman.cache import ValuationCache
from costman.models import Position
from costman.service import Valuation


class Command(BaseCommand):
    """Audit ledger command."""

    help = 'Verifica la consistencia del libro de movimientos'

    def add_arguments(self, parser):
        parser.add_argument(
            '--position',
            type=int,
            help='Audita solo este inventario (ID)'
        )
        parser.add_argument(
            '--cutoff',
            type=date.fromisoformat,
            help='Fecha de corte (AAAA-MM-DD); por defecto, todo el libro'
        )

    def handle(self, *args, **options):
        valuation = Valuation(cache=ValuationCache(enabled=False))

        positions = Position.objects.order_by('id')
        if options['position'] is not None:
            positions = positions.filter(pk=options['position'])
            if not positions.exists():
                raise CommandError(f"Inventario {options['position']} no existe")

        problems = 0
        checked = 0
        for position in positions.iterator():
            checked += 1
            audit = valuation.audit(position.pk, options['cutoff'])
            if audit.is_clean:
                continue
            problems += 1
            self.stdout.write(self.style.WARNING(
                f'Inventario {position.pk}: '
                f'lotes negativos={list(audit.clamped_lots)} '
                f'faltante sin lote={audit.unattributed_shortfall}'
            ))

        if problems:
            self.stdout.write(
                self.style.ERROR(f'{problems} de {checked} inventario(s) con inconsistencias')
            )
        else:
            self.stdout.write(
                self.style.SUCCESS(f'{checked} inventario(s) consistentes')
            )
