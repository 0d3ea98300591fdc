from django.contrib import admin

from apps.purchase_returns.models import PurchaseReturn, PurchaseReturnItem


class PurchaseReturnItemInline(admin.TabularInline):
    model = PurchaseReturnItem
    extra = 0
    readonly_fields = ("line_total",)


@admin.register(PurchaseReturn)
class PurchaseReturnAdmin(admin.ModelAdmin):
    list_display = ("return_no", "purchase_order", "supplier", "status", "total", "refund_to_supplier", "created_at")
    list_filter = ("status", "refund_to_supplier", "warehouse")
    search_fields = ("return_no", "purchase_order__po_no", "supplier__name")
    readonly_fields = ("total", "approved_at", "processed_at", "refunded_at")
    inlines = [PurchaseReturnItemInline]
