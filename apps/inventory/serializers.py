from rest_framework import serializers

from apps.inventory.models import InventoryBatch, StockMovement


class InventoryBatchSerializer(serializers.ModelSerializer):
    product_sku = serializers.CharField(source="product.sku", read_only=True)
    product_name = serializers.CharField(source="product.name", read_only=True)
    warehouse_code = serializers.CharField(source="warehouse.code", read_only=True)

    class Meta:
        model = InventoryBatch
        fields = [
            "id",
            "batch_no",
            "product",
            "product_sku",
            "product_name",
            "warehouse",
            "warehouse_code",
            "quantity",
            "purchase_price",
            "supplier_name",
            "purchase_order_item",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class StockMovementSerializer(serializers.ModelSerializer):
    product_sku = serializers.CharField(source="product.sku", read_only=True)
    warehouse_code = serializers.CharField(source="warehouse.code", read_only=True)
    created_by_username = serializers.CharField(source="created_by.username", read_only=True, default=None)

    class Meta:
        model = StockMovement
        fields = [
            "id",
            "product",
            "product_sku",
            "warehouse",
            "warehouse_code",
            "movement_type",
            "quantity",
            "note",
            "reference_type",
            "reference_id",
            "created_by",
            "created_by_username",
            "created_at",
        ]
        read_only_fields = fields
