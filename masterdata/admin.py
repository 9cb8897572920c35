from django.contrib import admin

from masterdata.models import Customer, Product, Vendor


@admin.register(Customer)
class CustomerAdmin(admin.ModelAdmin):
    list_display = ("entity", "code", "name", "email", "is_active")
    list_filter = ("entity", "is_active")
    search_fields = ("code", "name")


@admin.register(Vendor)
class VendorAdmin(admin.ModelAdmin):
    list_display = ("entity", "code", "name", "payment_terms_days", "ap_account")
    list_filter = ("entity", "is_active")
    search_fields = ("code", "name")


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ("entity", "code", "name", "is_stock_item", "unit_price", "revenue_account")
    list_filter = ("entity", "is_stock_item", "is_active")
    search_fields = ("code", "name")
