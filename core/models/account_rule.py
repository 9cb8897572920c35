from django.db import models


class AccountRule(models.Model):
    """Maps a semantic role (AR, INVENTORY, COGS, ...) to an account code.

    Rules are versioned by an effective date range; when several rules cover
    the same day the highest priority wins. An optional qualifier narrows a
    rule to e.g. one product group or one warehouse.
    """

    class RuleType(models.TextChoices):
        AR = "AR", "Accounts receivable"
        AP = "AP", "Accounts payable"
        INVENTORY = "INVENTORY", "Inventory"
        COGS = "COGS", "Cost of goods sold"
        BANK_DEFAULT = "BANK_DEFAULT", "Default bank"
        RECEIPT_CREDIT = "RECEIPT_CREDIT", "Goods receipt credit"

    entity = models.ForeignKey("core.Entity", on_delete=models.CASCADE, related_name="account_rules")
    rule_type = models.CharField(max_length=30, choices=RuleType.choices)

    qualifier_key = models.CharField(max_length=50, blank=True, default="")
    qualifier_value = models.CharField(max_length=100, blank=True, default="")

    account_code = models.CharField(max_length=50)
    priority = models.IntegerField(default=0)

    effective_from = models.DateField()
    effective_to = models.DateField(null=True, blank=True)

    class Meta:
        ordering = ["entity", "rule_type", "-priority", "-effective_from"]
        indexes = [models.Index(fields=["entity", "rule_type"])]

    def __str__(self):
        qualifier = f" [{self.qualifier_key}={self.qualifier_value}]" if self.qualifier_key else ""
        return f"{self.rule_type}{qualifier} -> {self.account_code}"
