from rest_framework import serializers

from apps.purchases.models import PaymentTerm, PurchaseOrder, PurchaseOrderItem, PurchaseOrderStatus


class PurchaseOrderItemSerializer(serializers.ModelSerializer):
    product_sku = serializers.CharField(source="product.sku", read_only=True)
    product_name = serializers.CharField(source="product.name", read_only=True)

    class Meta:
        model = PurchaseOrderItem
        fields = [
            "id",
            "product",
            "product_sku",
            "product_name",
            "quantity",
            "quantity_received",
            "unit_price",
            "discount_per_unit",
            "tax_rate",
            "total_price",
        ]
        read_only_fields = fields


class PurchaseOrderSerializer(serializers.ModelSerializer):
    items = PurchaseOrderItemSerializer(many=True, read_only=True)
    supplier_name = serializers.CharField(source="supplier.name", read_only=True)
    warehouse_name = serializers.CharField(source="warehouse.name", read_only=True)
    created_by_username = serializers.CharField(source="created_by.username", read_only=True, default=None)

    class Meta:
        model = PurchaseOrder
        fields = [
            "id",
            "po_no",
            "supplier",
            "supplier_name",
            "warehouse",
            "warehouse_name",
            "created_by",
            "created_by_username",
            "status",
            "expected_delivery_date",
            "payment_term",
            "custom_payment_days",
            "terms_and_conditions",
            "notes",
            "subtotal",
            "tax_amount",
            "discount_amount",
            "total_amount",
            "paid_amount",
            "due_amount",
            "sent_date",
            "approved_date",
            "received_date",
            "metadata",
            "created_at",
            "updated_at",
            "items",
        ]
        read_only_fields = fields


class PurchaseOrderItemInputSerializer(serializers.Serializer):
    product_id = serializers.IntegerField(min_value=1)
    quantity = serializers.IntegerField(min_value=1)
    unit_price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0)
    discount_per_unit = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False, default=0)
    tax_rate = serializers.DecimalField(max_digits=5, decimal_places=2, min_value=0, max_value=100, required=False, default=0)

    def validate(self, attrs):
        if attrs.get("discount_per_unit", 0) > attrs["unit_price"]:
            raise serializers.ValidationError({"discount_per_unit": "discount_per_unit cannot exceed unit_price"})
        return attrs


class PurchaseOrderWriteSerializer(serializers.Serializer):
    po_no = serializers.CharField(max_length=32, required=False, allow_blank=True)
    supplier_id = serializers.IntegerField(min_value=1)
    warehouse_id = serializers.IntegerField(min_value=1)
    expected_delivery_date = serializers.DateField(required=False, allow_null=True)
    payment_term = serializers.ChoiceField(choices=PaymentTerm.choices, required=False)
    custom_payment_days = serializers.IntegerField(min_value=0, required=False, allow_null=True)
    terms_and_conditions = serializers.CharField(required=False, allow_blank=True)
    notes = serializers.CharField(required=False, allow_blank=True)
    tax_amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False, allow_null=True)
    discount_amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False)
    paid_amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False)
    metadata = serializers.DictField(required=False)
    items = PurchaseOrderItemInputSerializer(many=True, required=False, allow_empty=False)

    def validate(self, attrs):
        if not self.partial and not attrs.get("items"):
            raise serializers.ValidationError({"items": "At least one item is required"})
        if attrs.get("payment_term") == PaymentTerm.CUSTOM and attrs.get("custom_payment_days") is None and not self.partial:
            raise serializers.ValidationError({"custom_payment_days": "Required for custom payment terms"})
        return attrs


class PurchaseOrderStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=PurchaseOrderStatus.choices)
    reason = serializers.CharField(required=False, allow_blank=True)


class ReceiveItemSerializer(serializers.Serializer):
    item_id = serializers.IntegerField(min_value=1)
    quantity = serializers.IntegerField(min_value=1)


class ReceiveItemsSerializer(serializers.Serializer):
    items = ReceiveItemSerializer(many=True, allow_empty=False)
