"""Django app configuration for Costman."""

from django.apps import AppConfig
from django.utils.translation import gettext_lazy as _


class CostmanConfig(AppConfig):
    """Configuration for Costman app."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "costman"
    verbose_name = _("Valorización de Inventario")
