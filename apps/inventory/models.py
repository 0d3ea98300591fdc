from django.db import models


class MovementType(models.TextChoices):
    IN = "IN", "In"
    OUT = "OUT", "Out"
    ADJUST = "ADJUST", "Adjust"
    TRANSFER = "TRANSFER", "Transfer"


class InventoryBatch(models.Model):
    product = models.ForeignKey("catalog.Product", on_delete=models.PROTECT, related_name="batches")
    warehouse = models.ForeignKey("warehouses.Warehouse", on_delete=models.PROTECT, related_name="batches")
    batch_no = models.CharField(max_length=64, unique=True)
    quantity = models.PositiveIntegerField(default=0)
    purchase_price = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    supplier_name = models.CharField(max_length=255, blank=True)
    purchase_order_item = models.ForeignKey(
        "purchases.PurchaseOrderItem",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="batches",
    )
    created_by = models.ForeignKey(
        "accounts.User",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="inventory_batches",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["id"]
        indexes = [
            models.Index(fields=["product", "warehouse"], name="inventory_batch_location_idx"),
        ]

    def __str__(self):
        return self.batch_no


class StockMovement(models.Model):
    product = models.ForeignKey("catalog.Product", on_delete=models.PROTECT, related_name="movements")
    warehouse = models.ForeignKey("warehouses.Warehouse", on_delete=models.PROTECT, related_name="movements")
    movement_type = models.CharField(max_length=16, choices=MovementType.choices)
    quantity = models.PositiveIntegerField()
    note = models.CharField(max_length=255, blank=True)
    reference_type = models.CharField(max_length=64, blank=True)
    reference_id = models.CharField(max_length=64, blank=True)
    created_by = models.ForeignKey(
        "accounts.User",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="stock_movements",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        constraints = [
            models.CheckConstraint(condition=models.Q(quantity__gt=0), name="stock_movement_quantity_gt_zero"),
        ]

    def __str__(self):
        return f"{self.movement_type} {self.quantity} x {self.product_id}@{self.warehouse_id}"
