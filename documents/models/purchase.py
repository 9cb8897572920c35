from django.db import models
from django.utils import timezone
from django_fsm import FSMField, transition
from simple_history.models import HistoricalRecords
from django_fsm_log.decorators import fsm_log_by
from decimal import Decimal


class PurchaseOrder(models.Model):
    """Purchase order with DRAFT -> APPROVED -> RECEIVED -> INVOICED -> PAID.

    Stores the PO number (ours), the vendor's invoice number and our PI number.
    """
    class Status(models.TextChoices):
        DRAFT = "DRAFT", "Draft"
        APPROVED = "APPROVED", "Approved"
        RECEIVED = "RECEIVED", "Received"
        INVOICED = "INVOICED", "Invoiced"
        PAID = "PAID", "Paid"

    entity = models.ForeignKey("core.Entity", on_delete=models.CASCADE, related_name="purchase_orders")
    vendor = models.ForeignKey("masterdata.Vendor", on_delete=models.PROTECT, related_name="purchase_orders")
    status = FSMField(default=Status.DRAFT, choices=Status.choices, protected=True)

    po_date = models.DateField()
    expected_delivery_date = models.DateField(null=True, blank=True)
    currency = models.CharField(max_length=3)
    exchange_rate = models.DecimalField(max_digits=20, decimal_places=10, default=Decimal("1"))

    total_tx = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))
    total_base = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))
    notes = models.TextField(blank=True, default="")

    po_number = models.CharField(max_length=50, blank=True, default="")
    po_document = models.OneToOneField("core.Document", null=True, blank=True, on_delete=models.PROTECT, related_name="+")

    # vendor invoice
    invoice_number = models.CharField(max_length=100, blank=True, default="")
    invoice_date = models.DateField(null=True, blank=True)
    invoice_amount = models.DecimalField(max_digits=14, decimal_places=2, null=True, blank=True)
    pi_document = models.OneToOneField("core.Document", null=True, blank=True, on_delete=models.PROTECT, related_name="+")

    created_at = models.DateTimeField(auto_now_add=True)
    approved_at = models.DateTimeField(null=True, blank=True)
    received_at = models.DateTimeField(null=True, blank=True)
    invoiced_at = models.DateTimeField(null=True, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)

    history = HistoricalRecords()

    class Meta:
        ordering = ("-po_date", "-id")
        indexes = [
            models.Index(fields=["entity", "status", "po_date"]),
            models.Index(fields=["entity", "po_number"]),
        ]

    def __str__(self):
        return f"{self.get_status_display()} {self.po_number or self.pk}"

    @fsm_log_by
    @transition(field=status, source=Status.DRAFT, target=Status.APPROVED)
    def approve(self, by=None):
        self.approved_at = timezone.now()

    @fsm_log_by
    @transition(field=status, source=Status.APPROVED, target=Status.RECEIVED)
    def receive(self, by=None):
        self.received_at = timezone.now()

    @fsm_log_by
    @transition(field=status, source=Status.RECEIVED, target=Status.INVOICED)
    def invoice(self, by=None):
        self.invoiced_at = timezone.now()

    @fsm_log_by
    @transition(field=status, source=Status.INVOICED, target=Status.PAID)
    def mark_paid(self, by=None):
        self.paid_at = timezone.now()


class PurchaseOrderLine(models.Model):
    """Goods line (product) or service line (expense account). Immutable."""
    order = models.ForeignKey(PurchaseOrder, on_delete=models.CASCADE, related_name="lines")
    line_no = models.IntegerField()

    product = models.ForeignKey("masterdata.Product", null=True, blank=True, on_delete=models.PROTECT, related_name="+")
    expense_account = models.ForeignKey("core.Account", null=True, blank=True, on_delete=models.PROTECT, related_name="+")
    description = models.CharField(max_length=255, blank=True, default="")

    quantity = models.DecimalField(max_digits=14, decimal_places=3)
    unit_cost = models.DecimalField(max_digits=14, decimal_places=4)
    line_total = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))

    class Meta:
        unique_together = ("order", "line_no")
        ordering = ["line_no"]

    def __str__(self):
        return f"{self.line_no}: {self.quantity} x {self.product or self.description}"

    @property
    def is_goods(self) -> bool:
        return self.product_id is not None

    def save(self, *args, **kwargs):
        if self.pk is not None and not self._state.adding:
            raise ValueError("Purchase order lines cannot be changed after creation.")

        if not self.line_no:
            last = (
                PurchaseOrderLine.objects
                .filter(order_id=self.order_id)
                .order_by("-line_no")
                .values_list("line_no", flat=True)
                .first()
            )
            self.line_no = (last or 0) + 10

        if not self.description and self.product_id:
            self.description = self.product.name

        self.line_total = (self.quantity * self.unit_cost).quantize(Decimal("0.01"))
        super().save(*args, **kwargs)
