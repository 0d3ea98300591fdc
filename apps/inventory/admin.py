from django.contrib import admin

from apps.inventory.models import InventoryBatch, StockMovement


@admin.register(InventoryBatch)
class InventoryBatchAdmin(admin.ModelAdmin):
    list_display = ("batch_no", "product", "warehouse", "quantity", "purchase_price", "supplier_name", "updated_at")
    list_filter = ("warehouse",)
    search_fields = ("batch_no", "product__sku", "product__name", "supplier_name")


@admin.register(StockMovement)
class StockMovementAdmin(admin.ModelAdmin):
    list_display = (
        "product",
        "warehouse",
        "movement_type",
        "quantity",
        "reference_type",
        "reference_id",
        "created_by",
        "created_at",
    )
    list_filter = ("movement_type", "warehouse")
    search_fields = ("product__sku", "product__name", "reference_type", "reference_id", "note")
