from django.db import models
from django.db.models import Q


class JournalEntry(models.Model):
    """Immutable, balanced unit of posting.

    Entries are only created by ledger.services.posting. Once saved they are
    never updated or deleted: a mistake is corrected by a reversal, i.e. a new
    entry that points back at this one through `reversal_of`.
    """

    entity = models.ForeignKey("core.Entity", on_delete=models.PROTECT, related_name="journal_entries")

    # unique per entity; NULL means the caller opted out of de-duplication
    idempotency_key = models.CharField(max_length=255, null=True, blank=True)

    posting_date = models.DateField()
    document_date = models.DateField()

    narration = models.CharField(max_length=500, blank=True, default="")
    reasoning = models.TextField(blank=True, default="")
    reference = models.CharField(max_length=255, blank=True, default="")

    document = models.ForeignKey(
        "core.Document", null=True, blank=True, on_delete=models.PROTECT, related_name="journal_entries"
    )
    # one-to-one: an entry can be reversed at most once
    reversal_of = models.OneToOneField(
        "self", null=True, blank=True, on_delete=models.PROTECT, related_name="reversed_by"
    )

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ("-posting_date", "-id")
        verbose_name_plural = "journal entries"
        constraints = [
            models.UniqueConstraint(
                fields=["entity", "idempotency_key"],
                condition=Q(idempotency_key__isnull=False),
                name="journal_entry_idempotency_key_unique",
            ),
        ]
        indexes = [models.Index(fields=["entity", "posting_date"])]

    def __str__(self):
        number = self.document.number if self.document_id else ""
        return f"Entry {self.pk} {number} {self.posting_date}".strip()

    def save(self, *args, **kwargs):
        if self.pk is not None and not self._state.adding:
            raise ValueError("Journal entries are immutable; post a reversal instead.")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError("Journal entries cannot be deleted; post a reversal instead.")

    @property
    def is_reversed(self) -> bool:
        return type(self).objects.filter(reversal_of_id=self.pk).exists()
