from django.db import models


class Entity(models.Model):
    """Company/legal entity.

    Key principle:
    - Almost every business object belongs to an Entity (multi-tenant / multi-company).
    - Callers address a company by its code; internal ids never leave the services.
    """

    code = models.CharField(max_length=20, unique=True)
    name = models.CharField(max_length=255)

    # ISO 4217 code, e.g. "DKK"
    base_currency = models.CharField(max_length=3, default="DKK")

    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["code"]
        verbose_name_plural = "entities"

    def __str__(self):
        return f"{self.code} {self.name}"
