from django.db import models
from decimal import Decimal
from ledger.models.journal import JournalEntry


class JournalLine(models.Model):
    """Journal line stores both transaction and base amounts.

    Exactly one side is non-zero. The base amount is the transaction amount
    times the entry's exchange rate, rounded to cents; for every entry the
    base debits equal the base credits.
    """
    entry = models.ForeignKey(JournalEntry, on_delete=models.PROTECT, related_name="lines")
    account = models.ForeignKey("core.Account", on_delete=models.PROTECT, related_name="journal_lines")

    currency = models.CharField(max_length=3)
    fx_rate = models.DecimalField(max_digits=20, decimal_places=10, default=Decimal("1"))

    debit_tx = models.DecimalField(max_digits=18, decimal_places=4, default=Decimal("0.0000"))
    credit_tx = models.DecimalField(max_digits=18, decimal_places=4, default=Decimal("0.0000"))

    debit_base = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))
    credit_base = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))

    class Meta:
        ordering = ["id"]

    def __str__(self):
        side = f"D {self.debit_base}" if self.debit_base else f"C {self.credit_base}"
        return f"{self.account} {side}"

    def save(self, *args, **kwargs):
        if self.pk is not None and not self._state.adding:
            raise ValueError("Journal lines are immutable.")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError("Journal lines cannot be deleted.")
