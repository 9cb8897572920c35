from django.db import models
from django.utils import timezone
from django_fsm import FSMField, transition
from simple_history.models import HistoricalRecords
from django_fsm_log.decorators import fsm_log_by
from decimal import Decimal


class SalesOrder(models.Model):
    """Sales order with state machine.

    DRAFT -> CONFIRMED -> SHIPPED -> INVOICED -> PAID, and DRAFT -> CANCELLED.

    The transitions only flip the status and stamp the *_at field. Stock
    movements and ledger postings are done by documents.services.orders in the
    same transaction, so a transition never exists without its posting.
    """

    class Status(models.TextChoices):
        DRAFT = "DRAFT", "Draft"
        CONFIRMED = "CONFIRMED", "Confirmed"
        SHIPPED = "SHIPPED", "Shipped"
        INVOICED = "INVOICED", "Invoiced"
        PAID = "PAID", "Paid"
        CANCELLED = "CANCELLED", "Cancelled"

    entity = models.ForeignKey("core.Entity", on_delete=models.CASCADE, related_name="sales_orders")
    customer = models.ForeignKey("masterdata.Customer", on_delete=models.PROTECT, related_name="sales_orders")
    status = FSMField(default=Status.DRAFT, choices=Status.choices, protected=True)

    order_date = models.DateField()
    currency = models.CharField(max_length=3)
    exchange_rate = models.DecimalField(max_digits=20, decimal_places=10, default=Decimal("1"))

    total_tx = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))
    total_base = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))
    notes = models.TextField(blank=True, default="")

    # lifecycle numbers
    order_number = models.CharField(max_length=50, blank=True, default="")
    order_document = models.OneToOneField("core.Document", null=True, blank=True, on_delete=models.PROTECT, related_name="+")
    invoice_number = models.CharField(max_length=50, blank=True, default="")
    invoice_document = models.OneToOneField("core.Document", null=True, blank=True, on_delete=models.PROTECT, related_name="+")

    created_at = models.DateTimeField(auto_now_add=True)
    confirmed_at = models.DateTimeField(null=True, blank=True)
    shipped_at = models.DateTimeField(null=True, blank=True)
    invoiced_at = models.DateTimeField(null=True, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)

    history = HistoricalRecords()

    class Meta:
        ordering = ("-order_date", "-id")
        indexes = [
            models.Index(fields=["entity", "status", "order_date"]),
            models.Index(fields=["entity", "order_number"]),
        ]

    def __str__(self):
        return f"{self.get_status_display()} {self.order_number or self.pk}"

    @property
    def display_no(self) -> str:
        return self.invoice_number or self.order_number or str(self.pk)

    @fsm_log_by
    @transition(field=status, source=Status.DRAFT, target=Status.CONFIRMED)
    def confirm(self, by=None):
        self.confirmed_at = timezone.now()

    @fsm_log_by
    @transition(field=status, source=Status.CONFIRMED, target=Status.SHIPPED)
    def ship(self, by=None):
        self.shipped_at = timezone.now()

    @fsm_log_by
    @transition(field=status, source=Status.SHIPPED, target=Status.INVOICED)
    def invoice(self, by=None):
        self.invoiced_at = timezone.now()

    @fsm_log_by
    @transition(field=status, source=Status.INVOICED, target=Status.PAID)
    def mark_paid(self, by=None):
        self.paid_at = timezone.now()

    @fsm_log_by
    @transition(field=status, source=Status.DRAFT, target=Status.CANCELLED)
    def cancel(self, by=None):
        self.cancelled_at = timezone.now()


class SalesOrderLine(models.Model):
    """Sales line. Written once together with its order and never changed."""
    order = models.ForeignKey(SalesOrder, on_delete=models.CASCADE, related_name="lines")

    line_no = models.IntegerField()

    product = models.ForeignKey("masterdata.Product", on_delete=models.PROTECT, related_name="+")
    quantity = models.DecimalField(max_digits=14, decimal_places=3)
    unit_price = models.DecimalField(max_digits=14, decimal_places=2)
    line_total = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))

    class Meta:
        unique_together = ("order", "line_no")
        ordering = ["line_no"]

    def __str__(self):
        return f"{self.line_no}: {self.quantity} x {self.product}"

    def save(self, *args, **kwargs):
        if self.pk is not None and not self._state.adding:
            raise ValueError("Order lines cannot be changed after creation.")

        if not self.line_no:
            last = (
                SalesOrderLine.objects
                .filter(order_id=self.order_id)
                .order_by("-line_no")
                .values_list("line_no", flat=True)
                .first()
            )
            self.line_no = (last or 0) + 10  # ERP-style spacing

        self.line_total = (self.quantity * self.unit_price).quantize(Decimal("0.01"))
        super().save(*args, **kwargs)
