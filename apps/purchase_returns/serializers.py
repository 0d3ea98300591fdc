from rest_framework import serializers

from apps.purchase_returns.models import PurchaseReturn, PurchaseReturnItem
from apps.purchase_returns.services import refund_history


class PurchaseReturnItemSerializer(serializers.ModelSerializer):
    product_sku = serializers.CharField(source="product.sku", read_only=True)
    product_name = serializers.CharField(source="product.name", read_only=True)

    class Meta:
        model = PurchaseReturnItem
        fields = [
            "id",
            "purchase_order_item",
            "product",
            "product_sku",
            "product_name",
            "returned_quantity",
            "price",
            "line_total",
        ]
        read_only_fields = fields


class RefundRecordSerializer(serializers.Serializer):
    id = serializers.IntegerField()
    amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    method = serializers.CharField()
    note = serializers.CharField()
    debit_account_code = serializers.CharField(allow_null=True)
    credit_account_code = serializers.CharField(allow_null=True)
    created_at = serializers.DateTimeField()


class PurchaseReturnSerializer(serializers.ModelSerializer):
    items = PurchaseReturnItemSerializer(many=True, read_only=True)
    po_no = serializers.CharField(source="purchase_order.po_no", read_only=True)
    supplier_name = serializers.CharField(source="supplier.name", read_only=True)
    warehouse_name = serializers.CharField(source="warehouse.name", read_only=True)

    class Meta:
        model = PurchaseReturn
        fields = [
            "id",
            "return_no",
            "purchase_order",
            "po_no",
            "supplier",
            "supplier_name",
            "warehouse",
            "warehouse_name",
            "reason",
            "status",
            "total",
            "approved_at",
            "approved_by",
            "approval_notes",
            "processed_at",
            "processed_by",
            "processing_notes",
            "refund_to_supplier",
            "refund_amount",
            "refund_payment_method",
            "refund_reference",
            "refunded_at",
            "debit_account_code",
            "created_at",
            "updated_at",
            "items",
        ]
        read_only_fields = fields


class PurchaseReturnDetailSerializer(PurchaseReturnSerializer):
    refund_history = serializers.SerializerMethodField()

    class Meta(PurchaseReturnSerializer.Meta):
        fields = PurchaseReturnSerializer.Meta.fields + ["refund_history"]
        read_only_fields = fields

    def get_refund_history(self, obj):
        return RefundRecordSerializer(refund_history(obj), many=True).data


class PurchaseReturnItemInputSerializer(serializers.Serializer):
    product_id = serializers.IntegerField(min_value=1)
    purchase_order_item_id = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    returned_quantity = serializers.IntegerField(min_value=1)
    price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False, allow_null=True)


class PurchaseReturnWriteSerializer(serializers.Serializer):
    return_no = serializers.CharField(max_length=32, required=False, allow_blank=True)
    purchase_order_id = serializers.IntegerField(min_value=1)
    supplier_id = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    warehouse_id = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    reason = serializers.CharField(required=False, allow_blank=True)
    items = PurchaseReturnItemInputSerializer(many=True, required=False, allow_empty=False)

    def validate(self, attrs):
        if not self.partial and not attrs.get("items"):
            raise serializers.ValidationError({"items": "At least one item is required"})
        return attrs


class ApproveReturnSerializer(serializers.Serializer):
    approval_notes = serializers.CharField(required=False, allow_blank=True)


class ProcessReturnSerializer(serializers.Serializer):
    processing_notes = serializers.CharField(required=False, allow_blank=True)
    refund_to_supplier = serializers.BooleanField(required=False, default=False)
    refund_later = serializers.BooleanField(required=False, default=False)
    refund_amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False, allow_null=True)
    refund_payment_method = serializers.CharField(max_length=64, required=False, allow_blank=True)
    refund_reference = serializers.CharField(max_length=128, required=False, allow_blank=True)
    debit_account_code = serializers.CharField(max_length=64, required=False, allow_blank=True)


class ProcessRefundSerializer(serializers.Serializer):
    refund_amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False, allow_null=True)
    debit_account_code = serializers.CharField(max_length=64, required=False, allow_blank=True)
    payment_method = serializers.CharField(max_length=64, required=False, allow_blank=True)
    refund_reference = serializers.CharField(max_length=128, required=False, allow_blank=True)
    refund_notes = serializers.CharField(required=False, allow_blank=True)


class ProcessOutcomeSerializer(serializers.Serializer):
    message = serializers.CharField()
    return_id = serializers.IntegerField()
    total_amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    supplier_account = serializers.CharField()
    inventory_account = serializers.CharField()
    refund_processed = serializers.BooleanField()
    refund_later = serializers.BooleanField()
    refund_amount = serializers.DecimalField(max_digits=12, decimal_places=2, allow_null=True)
    refund_payment_method = serializers.CharField(allow_blank=True)
    refund_reference = serializers.CharField(allow_blank=True)
    debit_account_code = serializers.CharField(allow_blank=True)


class RefundOutcomeSerializer(serializers.Serializer):
    message = serializers.CharField()
    return_id = serializers.IntegerField()
    refund_amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    debit_account = serializers.CharField()
    supplier_account = serializers.CharField()
    payment_method = serializers.CharField(allow_blank=True)
    reference = serializers.CharField(allow_blank=True)
