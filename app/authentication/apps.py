"""
App configuration for user accounts.
"""

from django.apps import AppConfig


class AuthenticationConfig(AppConfig):
    """Email-identified accounts that own billing customers."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "authentication"
    verbose_name = "Accounts"
