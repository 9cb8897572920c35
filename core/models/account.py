from django.db import models
from mptt.models import MPTTModel, TreeForeignKey


class Account(MPTTModel):
    """Chart of accounts node for a specific entity (tree via django-mptt).

    Identity is (entity, code). The same code may exist under several entities;
    lookups must always filter on both.
    """

    class AccountType(models.TextChoices):
        ASSET = "asset", "Asset"
        LIABILITY = "liability", "Liability"
        EQUITY = "equity", "Equity"
        REVENUE = "revenue", "Revenue"
        EXPENSE = "expense", "Expense"

    entity = models.ForeignKey("core.Entity", on_delete=models.CASCADE, related_name="accounts")

    code = models.CharField(max_length=50)
    name = models.CharField(max_length=255)
    account_type = models.CharField(max_length=20, choices=AccountType.choices)

    parent = TreeForeignKey("self", null=True, blank=True, on_delete=models.PROTECT, related_name="children")
    is_postable = models.BooleanField(default=True)

    class Meta:
        unique_together = ("entity", "code")
        ordering = ["code"]

    class MPTTMeta:
        order_insertion_by = ["code"]

    def __str__(self):
        return f"{self.code} – {self.name}"
