from django.db import models


class PurchaseReturnStatus(models.TextChoices):
    DRAFT = "DRAFT", "Draft"
    APPROVED = "APPROVED", "Approved"
    PROCESSED = "PROCESSED", "Processed"
    CANCELLED = "CANCELLED", "Cancelled"


PURCHASE_RETURN_TRANSITIONS = {
    PurchaseReturnStatus.DRAFT: frozenset({PurchaseReturnStatus.APPROVED, PurchaseReturnStatus.CANCELLED}),
    PurchaseReturnStatus.APPROVED: frozenset({PurchaseReturnStatus.PROCESSED, PurchaseReturnStatus.CANCELLED}),
    PurchaseReturnStatus.PROCESSED: frozenset(),
    PurchaseReturnStatus.CANCELLED: frozenset(),
}

# Returns whose quantities count against what is still returnable.
COMMITTED_STATUSES = frozenset({PurchaseReturnStatus.APPROVED, PurchaseReturnStatus.PROCESSED})


class PurchaseReturn(models.Model):
    return_no = models.CharField(max_length=32, unique=True)
    purchase_order = models.ForeignKey("purchases.PurchaseOrder", on_delete=models.PROTECT, related_name="returns")
    supplier = models.ForeignKey("suppliers.Supplier", on_delete=models.PROTECT, related_name="purchase_returns")
    warehouse = models.ForeignKey("warehouses.Warehouse", on_delete=models.PROTECT, related_name="purchase_returns")
    reason = models.TextField(blank=True)
    status = models.CharField(max_length=16, choices=PurchaseReturnStatus.choices, default=PurchaseReturnStatus.DRAFT)
    total = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    approved_at = models.DateTimeField(null=True, blank=True)
    approved_by = models.ForeignKey(
        "accounts.User",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="approved_purchase_returns",
    )
    approval_notes = models.TextField(blank=True)
    processed_at = models.DateTimeField(null=True, blank=True)
    processed_by = models.ForeignKey(
        "accounts.User",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="processed_purchase_returns",
    )
    processing_notes = models.TextField(blank=True)
    refund_to_supplier = models.BooleanField(null=True, blank=True)
    refund_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    refund_payment_method = models.CharField(max_length=64, blank=True)
    refund_reference = models.CharField(max_length=128, blank=True)
    refunded_at = models.DateTimeField(null=True, blank=True)
    debit_account_code = models.CharField(max_length=64, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at", "-id"]

    def __str__(self):
        return self.return_no


class PurchaseReturnItem(models.Model):
    purchase_return = models.ForeignKey(PurchaseReturn, on_delete=models.CASCADE, related_name="items")
    purchase_order_item = models.ForeignKey(
        "purchases.PurchaseOrderItem",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="return_items",
    )
    product = models.ForeignKey("catalog.Product", on_delete=models.PROTECT, related_name="purchase_return_items")
    returned_quantity = models.PositiveIntegerField()
    price = models.DecimalField(max_digits=12, decimal_places=2)
    line_total = models.DecimalField(max_digits=12, decimal_places=2)

    class Meta:
        ordering = ["id"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(returned_quantity__gt=0),
                name="purchase_return_item_quantity_gt_zero",
            ),
        ]

    def __str__(self):
        return f"{self.purchase_return_id}:{self.product_id} x {self.returned_quantity}"
