from django.db import models


class Vendor(models.Model):
    """Supplier.

    Both accounts are optional: without ap_account the AP rule is used, and
    default_expense_account is only needed for PO lines that name neither a
    product nor an expense account.
    """
    entity = models.ForeignKey("core.Entity", on_delete=models.CASCADE, related_name="vendors")

    code = models.CharField(max_length=50)
    name = models.CharField(max_length=255)
    email = models.EmailField(blank=True, default="")
    payment_terms_days = models.IntegerField(default=30)

    ap_account = models.ForeignKey("core.Account", null=True, blank=True, on_delete=models.PROTECT, related_name="+")
    default_expense_account = models.ForeignKey("core.Account", null=True, blank=True, on_delete=models.PROTECT, related_name="+")

    is_active = models.BooleanField(default=True)

    class Meta:
        unique_together = ("entity", "code")
        ordering = ["code"]

    def __str__(self):
        return f"{self.code} {self.name}"
