"""Custom user model for equipment custody tracking."""

from django.conf import settings
from django.contrib.auth.models import AbstractUser
from django.db import models


class CustomUser(AbstractUser):
    """Employee account with display name, employee id and reporting line."""

    display_name = models.CharField(
        max_length=255,
        blank=True,
        help_text="Human-readable name shown on custody records",
    )
    employee_id = models.CharField(
        max_length=50,
        blank=True,
        help_text="HR employee number",
    )
    email = models.EmailField("email address", blank=False, unique=True)
    manager = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="direct_reports",
        help_text="Manager who validates this employee's custody transfers",
    )

    class Meta:
        verbose_name = "user"
        verbose_name_plural = "users"

    def get_display_name(self):
        """Return display_name if set, otherwise full name or username."""
        if self.display_name:
            return self.display_name
        full = self.get_full_name()
        return full if full else self.username

    def __str__(self):
        return self.get_display_name()
