from django.contrib import admin

from inventory.models import InventoryItem, StockMove, Warehouse


@admin.register(Warehouse)
class WarehouseAdmin(admin.ModelAdmin):
    list_display = ("entity", "code", "name", "is_default", "is_active")
    list_filter = ("entity", "is_active")
    search_fields = ("code", "name")


@admin.register(InventoryItem)
class InventoryItemAdmin(admin.ModelAdmin):
    list_display = ("entity", "product", "warehouse", "qty_on_hand", "qty_reserved", "unit_cost")
    list_filter = ("entity", "warehouse")
    search_fields = ("product__code", "product__name")

    def has_change_permission(self, request, obj=None):
        return False


@admin.register(StockMove)
class StockMoveAdmin(admin.ModelAdmin):
    list_display = ("entity", "date", "kind", "product", "warehouse", "qty", "unit_cost", "journal_entry")
    list_filter = ("entity", "kind", "warehouse")
    search_fields = ("product__code", "reference")

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False
