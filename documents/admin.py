from django.contrib import admin, messages
from django_object_actions import DjangoObjectActions, action
from simple_history.admin import SimpleHistoryAdmin

from documents.models import PurchaseOrder, PurchaseOrderLine, SalesOrder, SalesOrderLine
from documents.services.orders import cancel_order, confirm_order, invoice_order, record_payment, ship_order
from documents.services.purchasing import approve_po, pay_vendor


class ReadOnlyLineInline(admin.TabularInline):
    extra = 0
    can_delete = False

    def get_readonly_fields(self, request, obj=None):
        return self.fields

    def has_add_permission(self, request, obj=None):
        return False


class SalesOrderLineInline(ReadOnlyLineInline):
    model = SalesOrderLine
    fields = ("line_no", "product", "quantity", "unit_price", "line_total")


class PurchaseOrderLineInline(ReadOnlyLineInline):
    model = PurchaseOrderLine
    fields = ("line_no", "product", "expense_account", "description", "quantity", "unit_cost", "line_total")


class WorkflowAdmin(DjangoObjectActions, SimpleHistoryAdmin):
    """Orders are created through the services; the admin only drives the lifecycle."""

    # status -> actions shown on the change form
    actions_by_status = {}

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

    def get_change_actions(self, request, object_id, form_url):
        obj = self.get_object(request, object_id)
        if not obj:
            return ()
        return self.actions_by_status.get(obj.status, ())

    def run_step(self, request, label, func, *args, **kwargs):
        try:
            result = func(*args, **kwargs)
        except ValueError as e:
            self.message_user(request, f"{label} failed: {e}", level=messages.ERROR)
            return None
        self.message_user(request, f"{label}: done.", level=messages.SUCCESS)
        return result


@admin.register(SalesOrder)
class SalesOrderAdmin(WorkflowAdmin):
    inlines = [SalesOrderLineInline]
    list_display = ("id", "order_number", "customer", "order_date", "currency", "total_tx", "status", "invoice_number")
    list_filter = ("entity", "status", "currency")
    search_fields = ("order_number", "invoice_number", "customer__code", "customer__name")
    readonly_fields = (
        "entity", "customer", "order_date", "currency", "exchange_rate", "total_tx", "total_base",
        "status", "order_number", "order_document", "invoice_number", "invoice_document",
        "confirmed_at", "shipped_at", "invoiced_at", "paid_at", "cancelled_at",
    )

    change_actions = ("confirm_action", "ship_action", "invoice_action", "pay_action", "cancel_action")
    actions_by_status = {
        SalesOrder.Status.DRAFT: ("confirm_action", "cancel_action"),
        SalesOrder.Status.CONFIRMED: ("ship_action",),
        SalesOrder.Status.SHIPPED: ("invoice_action",),
        SalesOrder.Status.INVOICED: ("pay_action",),
    }

    @action(label="Confirm", description="Reserve stock and assign the order number")
    def confirm_action(self, request, obj):
        self.run_step(request, "Confirm", confirm_order, obj.entity.code, obj.pk)

    @action(label="Ship", description="Issue stock and book cost of goods sold")
    def ship_action(self, request, obj):
        self.run_step(request, "Ship", ship_order, obj.entity.code, obj.pk)

    @action(label="Invoice", description="Post the sales invoice")
    def invoice_action(self, request, obj):
        self.run_step(request, "Invoice", invoice_order, obj.entity.code, obj.pk)

    @action(label="Record payment", description="Book the payment to the default bank account")
    def pay_action(self, request, obj):
        self.run_step(request, "Payment", record_payment, obj.entity.code, obj.pk)

    @action(label="Cancel", description="Cancel the draft order")
    def cancel_action(self, request, obj):
        self.run_step(request, "Cancel", cancel_order, obj.entity.code, obj.pk)


@admin.register(PurchaseOrder)
class PurchaseOrderAdmin(WorkflowAdmin):
    inlines = [PurchaseOrderLineInline]
    list_display = ("id", "po_number", "vendor", "po_date", "currency", "total_tx", "status", "invoice_number")
    list_filter = ("entity", "status", "currency")
    search_fields = ("po_number", "invoice_number", "vendor__code", "vendor__name")
    readonly_fields = (
        "entity", "vendor", "po_date", "currency", "exchange_rate", "total_tx", "total_base",
        "status", "po_number", "po_document", "invoice_number", "invoice_date", "invoice_amount",
        "pi_document", "approved_at", "received_at", "invoiced_at", "paid_at",
    )

    change_actions = ("approve_action", "pay_action")
    actions_by_status = {
        PurchaseOrder.Status.DRAFT: ("approve_action",),
        PurchaseOrder.Status.INVOICED: ("pay_action",),
    }

    @action(label="Approve", description="Assign the PO number")
    def approve_action(self, request, obj):
        self.run_step(request, "Approve", approve_po, obj.entity.code, obj.pk)

    @action(label="Pay vendor", description="Pay the invoiced amount from the default bank account")
    def pay_action(self, request, obj):
        self.run_step(request, "Payment", pay_vendor, obj.entity.code, obj.pk)
