from django.db import models
from decimal import Decimal


class Product(models.Model):
    entity = models.ForeignKey("core.Entity", on_delete=models.CASCADE, related_name="products")

    code = models.CharField(max_length=50)
    name = models.CharField(max_length=255)

    # services are sold but never stocked, reserved or costed
    is_stock_item = models.BooleanField(default=True)

    unit_price = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))
    revenue_account = models.ForeignKey("core.Account", on_delete=models.PROTECT, related_name="+")

    is_active = models.BooleanField(default=True)

    class Meta:
        unique_together = ("entity", "code")
        ordering = ["code"]

    def __str__(self):
        return f"{self.code} {self.name}"
