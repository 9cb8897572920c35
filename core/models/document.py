from django.db import models
from django.db.models import Q
from django.utils import timezone
from django_fsm import FSMField, transition
from django_fsm_log.decorators import fsm_log_by


class DocumentType(models.Model):
    """Reference data: how documents of a type are numbered."""

    class Numbering(models.TextChoices):
        GLOBAL = "global", "Global"
        PER_FY = "per_fy", "Per financial year"
        PER_BRANCH = "per_branch", "Per branch"

    code = models.CharField(max_length=10, primary_key=True)
    name = models.CharField(max_length=255)

    numbering_strategy = models.CharField(max_length=20, choices=Numbering.choices, default=Numbering.GLOBAL)
    resets_every_fy = models.BooleanField(default=True)
    # JE-style types may post without consuming a number
    is_numbered = models.BooleanField(default=True)

    affects_inventory = models.BooleanField(default=False)
    affects_gl = models.BooleanField(default=True)
    affects_ar = models.BooleanField(default=False)
    affects_ap = models.BooleanField(default=False)

    class Meta:
        ordering = ["code"]

    def __str__(self):
        return f"{self.code} {self.name}"


class Document(models.Model):
    """A numbered business artifact.

    The number is assigned exactly once, on DRAFT -> POSTED, by
    core.services.numbering. It is kept when the document is cancelled and
    is never handed out again.
    """

    class Status(models.TextChoices):
        DRAFT = "DRAFT", "Draft"
        POSTED = "POSTED", "Posted"
        CANCELLED = "CANCELLED", "Cancelled"

    entity = models.ForeignKey("core.Entity", on_delete=models.CASCADE, related_name="documents")
    document_type = models.ForeignKey(DocumentType, on_delete=models.PROTECT, related_name="documents")
    status = FSMField(default=Status.DRAFT, choices=Status.choices, protected=True)

    financial_year = models.IntegerField(null=True, blank=True)
    branch = models.IntegerField(null=True, blank=True)

    number = models.CharField(max_length=50, blank=True, default="")

    created_at = models.DateTimeField(auto_now_add=True)
    posted_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ("-created_at", "-id")
        constraints = [
            models.UniqueConstraint(
                fields=["entity", "number"],
                condition=~Q(number=""),
                name="document_number_unique_per_entity",
            ),
        ]

    def __str__(self):
        return self.number or f"{self.document_type_id} draft {self.pk}"

    @fsm_log_by
    @transition(field=status, source=Status.DRAFT, target=Status.POSTED)
    def post(self, number, by=None):
        if self.number:
            raise ValueError(f"Document {self.pk} already carries number {self.number}")
        self.number = number
        self.posted_at = timezone.now()

    @fsm_log_by
    @transition(field=status, source=[Status.DRAFT, Status.POSTED], target=Status.CANCELLED)
    def cancel(self, by=None):
        self.cancelled_at = timezone.now()


class DocumentSequence(models.Model):
    """Last number handed out per (entity, type, financial year, branch).

    "No year" and "no branch" are stored as 0 so the unique constraint also
    covers unscoped counters. Rows are only touched by the upsert in
    core.services.numbering.next_number.
    """

    entity = models.ForeignKey("core.Entity", on_delete=models.CASCADE, related_name="document_sequences")
    document_type = models.ForeignKey(DocumentType, on_delete=models.PROTECT, related_name="sequences")
    financial_year = models.IntegerField(default=0)
    branch = models.IntegerField(default=0)

    last_number = models.BigIntegerField(default=0)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["entity", "document_type", "financial_year", "branch"],
                name="document_sequence_scope_unique",
            ),
        ]

    def __str__(self):
        return f"{self.entity_id}/{self.document_type_id}/{self.financial_year}/{self.branch}: {self.last_number}"
