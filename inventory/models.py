from django.db import models
from decimal import Decimal


class Warehouse(models.Model):
    entity = models.ForeignKey("core.Entity", on_delete=models.CASCADE, related_name="warehouses")

    code = models.CharField(max_length=20)
    name = models.CharField(max_length=255)
    is_default = models.BooleanField(default=False)
    is_active = models.BooleanField(default=True)

    class Meta:
        unique_together = ("entity", "code")
        ordering = ["code"]

    def __str__(self):
        return f"{self.code} {self.name}"


class InventoryItem(models.Model):
    """Stock position of one product in one warehouse.

    unit_cost is the running weighted average, recomputed on every receipt
    while the row is locked. qty_reserved is stock promised to confirmed
    orders that have not shipped yet.
    """
    entity = models.ForeignKey("core.Entity", on_delete=models.CASCADE, related_name="inventory_items")
    product = models.ForeignKey("masterdata.Product", on_delete=models.PROTECT, related_name="inventory_items")
    warehouse = models.ForeignKey(Warehouse, on_delete=models.PROTECT, related_name="items")

    qty_on_hand = models.DecimalField(max_digits=14, decimal_places=3, default=Decimal("0.000"))
    qty_reserved = models.DecimalField(max_digits=14, decimal_places=3, default=Decimal("0.000"))
    unit_cost = models.DecimalField(max_digits=14, decimal_places=4, default=Decimal("0.0000"))

    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["entity", "product", "warehouse"], name="inventory_item_unique"),
        ]
        ordering = ["warehouse", "product"]

    def __str__(self):
        return f"{self.product} @ {self.warehouse}: {self.qty_on_hand}"

    @property
    def qty_available(self) -> Decimal:
        return self.qty_on_hand - self.qty_reserved


class StockMove(models.Model):
    """Audit trail for stock movements. Append-only."""

    class Kind(models.TextChoices):
        RECEIPT = "RECEIPT", "Receipt"
        RESERVATION = "RESERVATION", "Reservation"
        RESERVATION_CANCEL = "RESERVATION_CANCEL", "Reservation cancelled"
        SHIPMENT = "SHIPMENT", "Shipment"

    entity = models.ForeignKey("core.Entity", on_delete=models.CASCADE, related_name="stock_moves")
    product = models.ForeignKey("masterdata.Product", on_delete=models.PROTECT, related_name="stock_moves")
    warehouse = models.ForeignKey(Warehouse, on_delete=models.PROTECT, related_name="stock_moves")

    kind = models.CharField(max_length=30, choices=Kind.choices)
    date = models.DateField()
    # signed: receipts positive, shipments negative
    qty = models.DecimalField(max_digits=14, decimal_places=3)
    unit_cost = models.DecimalField(max_digits=14, decimal_places=4, default=Decimal("0.0000"))
    total_cost = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))

    sales_order = models.ForeignKey("documents.SalesOrder", null=True, blank=True, on_delete=models.PROTECT, related_name="stock_moves")
    purchase_line = models.ForeignKey("documents.PurchaseOrderLine", null=True, blank=True, on_delete=models.PROTECT, related_name="stock_moves")
    journal_entry = models.ForeignKey("ledger.JournalEntry", null=True, blank=True, on_delete=models.PROTECT, related_name="stock_moves")

    reference = models.CharField(max_length=255, blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ("-date", "-id")
        indexes = [models.Index(fields=["entity", "product", "date"])]

    def __str__(self):
        return f"{self.get_kind_display()} {self.qty} {self.product}"
