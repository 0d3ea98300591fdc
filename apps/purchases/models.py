from django.db import models


class PurchaseOrderStatus(models.TextChoices):
    DRAFT = "DRAFT", "Draft"
    SENT = "SENT", "Sent"
    APPROVED = "APPROVED", "Approved"
    REJECTED = "REJECTED", "Rejected"
    PARTIAL_RECEIVED = "PARTIAL_RECEIVED", "Partial received"
    FULLY_RECEIVED = "FULLY_RECEIVED", "Fully received"
    CANCELLED = "CANCELLED", "Cancelled"
    CLOSED = "CLOSED", "Closed"


PURCHASE_ORDER_TRANSITIONS = {
    PurchaseOrderStatus.DRAFT: frozenset({PurchaseOrderStatus.SENT, PurchaseOrderStatus.CANCELLED}),
    PurchaseOrderStatus.SENT: frozenset(
        {PurchaseOrderStatus.APPROVED, PurchaseOrderStatus.REJECTED, PurchaseOrderStatus.CANCELLED}
    ),
    PurchaseOrderStatus.APPROVED: frozenset(
        {PurchaseOrderStatus.PARTIAL_RECEIVED, PurchaseOrderStatus.FULLY_RECEIVED, PurchaseOrderStatus.CANCELLED}
    ),
    PurchaseOrderStatus.REJECTED: frozenset({PurchaseOrderStatus.DRAFT, PurchaseOrderStatus.CANCELLED}),
    PurchaseOrderStatus.PARTIAL_RECEIVED: frozenset({PurchaseOrderStatus.FULLY_RECEIVED, PurchaseOrderStatus.CLOSED}),
    PurchaseOrderStatus.FULLY_RECEIVED: frozenset({PurchaseOrderStatus.CLOSED}),
    PurchaseOrderStatus.CANCELLED: frozenset(),
    PurchaseOrderStatus.CLOSED: frozenset(),
}

RECEIVABLE_STATUSES = frozenset({PurchaseOrderStatus.APPROVED, PurchaseOrderStatus.PARTIAL_RECEIVED})


class PaymentTerm(models.TextChoices):
    IMMEDIATE = "IMMEDIATE", "Immediate"
    NET_15 = "NET_15", "Net 15"
    NET_30 = "NET_30", "Net 30"
    NET_60 = "NET_60", "Net 60"
    CUSTOM = "CUSTOM", "Custom"


class PurchaseOrder(models.Model):
    po_no = models.CharField(max_length=32, unique=True)
    supplier = models.ForeignKey("suppliers.Supplier", on_delete=models.PROTECT, related_name="purchase_orders")
    warehouse = models.ForeignKey("warehouses.Warehouse", on_delete=models.PROTECT, related_name="purchase_orders")
    created_by = models.ForeignKey(
        "accounts.User",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="purchase_orders",
    )
    expected_delivery_date = models.DateField(null=True, blank=True)
    payment_term = models.CharField(max_length=16, choices=PaymentTerm.choices, default=PaymentTerm.NET_30)
    custom_payment_days = models.PositiveIntegerField(null=True, blank=True)
    terms_and_conditions = models.TextField(blank=True)
    notes = models.TextField(blank=True)
    status = models.CharField(max_length=20, choices=PurchaseOrderStatus.choices, default=PurchaseOrderStatus.DRAFT)
    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    tax_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    discount_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    total_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    paid_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    due_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    sent_date = models.DateTimeField(null=True, blank=True)
    approved_date = models.DateTimeField(null=True, blank=True)
    received_date = models.DateTimeField(null=True, blank=True)
    metadata = models.JSONField(default=dict, blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["status", "is_active"], name="purchase_order_status_idx"),
        ]

    def __str__(self):
        return self.po_no


class PurchaseOrderItem(models.Model):
    purchase_order = models.ForeignKey(PurchaseOrder, on_delete=models.CASCADE, related_name="items")
    product = models.ForeignKey("catalog.Product", on_delete=models.PROTECT, related_name="purchase_order_items")
    quantity = models.PositiveIntegerField()
    quantity_received = models.PositiveIntegerField(default=0)
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)
    discount_per_unit = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    tax_rate = models.DecimalField(max_digits=5, decimal_places=2, default=0)
    total_price = models.DecimalField(max_digits=12, decimal_places=2, default=0)

    class Meta:
        ordering = ["id"]
        constraints = [
            models.CheckConstraint(condition=models.Q(quantity__gt=0), name="purchase_item_quantity_gt_zero"),
            models.CheckConstraint(
                condition=models.Q(quantity_received__gte=0, quantity_received__lte=models.F("quantity")),
                name="purchase_item_received_within_ordered",
            ),
            models.CheckConstraint(
                condition=models.Q(tax_rate__gte=0, tax_rate__lte=100),
                name="purchase_item_tax_rate_range",
            ),
        ]

    def __str__(self):
        return f"{self.purchase_order_id}:{self.product_id} x {self.quantity}"

    @property
    def remaining_quantity(self):
        return self.quantity - self.quantity_received
