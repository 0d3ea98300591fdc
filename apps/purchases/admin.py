from django.contrib import admin

from apps.purchases.models import PurchaseOrder, PurchaseOrderItem


class PurchaseOrderItemInline(admin.TabularInline):
    model = PurchaseOrderItem
    extra = 0
    readonly_fields = ("quantity_received", "total_price")


@admin.register(PurchaseOrder)
class PurchaseOrderAdmin(admin.ModelAdmin):
    list_display = (
        "po_no",
        "supplier",
        "warehouse",
        "status",
        "total_amount",
        "paid_amount",
        "due_amount",
        "is_active",
        "created_at",
    )
    list_filter = ("status", "is_active", "warehouse")
    search_fields = ("po_no", "supplier__name", "supplier__code")
    readonly_fields = ("subtotal", "tax_amount", "total_amount", "due_amount", "sent_date", "approved_date", "received_date")
    inlines = [PurchaseOrderItemInline]
