import logging

from django.db import transaction
from django.db.models import Sum
from django.utils import timezone

from apps.common.exceptions import BadRequest
from apps.inventory.models import InventoryBatch, MovementType, StockMovement

logger = logging.getLogger(__name__)


def _actor(user):
    return user if user is not None and user.is_authenticated else None


def next_batch_number(product_id, warehouse_id, today=None):
    today = today or timezone.localdate()
    prefix = f"BATCH-{product_id}-{warehouse_id}-{today:%y%m%d}-"
    last = InventoryBatch.objects.filter(batch_no__startswith=prefix).order_by("-batch_no").first()
    sequence = 1
    if last is not None:
        tail = last.batch_no.rsplit("-", 1)[-1]
        sequence = (int(tail) if tail.isdigit() else 0) + 1
    return f"{prefix}{sequence:03d}"


def find_batch(product, warehouse, *, lock=False):
    queryset = InventoryBatch.objects.filter(product=product, warehouse=warehouse).order_by("id")
    if lock:
        queryset = queryset.select_for_update()
    return queryset.first()


@transaction.atomic
def receive_stock(
    product,
    warehouse,
    quantity,
    unit_price,
    user,
    note,
    reference_type,
    reference_id,
    supplier_name=None,
    purchase_order_item=None,
):
    batch = find_batch(product, warehouse, lock=True)
    if batch is not None:
        batch.quantity += quantity
        batch.purchase_price = unit_price
        batch.save(update_fields=["quantity", "purchase_price", "updated_at"])
    else:
        batch = InventoryBatch.objects.create(
            product=product,
            warehouse=warehouse,
            batch_no=next_batch_number(product.id, warehouse.id),
            quantity=quantity,
            purchase_price=unit_price,
            supplier_name=supplier_name or "",
            purchase_order_item=purchase_order_item,
            created_by=_actor(user),
        )

    StockMovement.objects.create(
        product=product,
        warehouse=warehouse,
        movement_type=MovementType.IN,
        quantity=quantity,
        note=note[:255],
        reference_type=reference_type,
        reference_id=str(reference_id),
        created_by=_actor(user),
    )
    logger.info("Received %s units of %s into warehouse %s (%s)", quantity, product.sku, warehouse.code, batch.batch_no)
    return batch


@transaction.atomic
def issue_stock(product, warehouse, quantity, user, note, reference_type, reference_id):
    batch = find_batch(product, warehouse, lock=True)
    available = batch.quantity if batch is not None else 0
    if batch is None or available < quantity:
        raise BadRequest(
            f"Insufficient inventory for product ID {product.id}. Available: {available}, Required: {quantity}",
            code="insufficient_inventory",
            fields={"product_id": product.id, "available": available, "required": quantity},
        )

    batch.quantity -= quantity
    batch.save(update_fields=["quantity", "updated_at"])
    StockMovement.objects.create(
        product=product,
        warehouse=warehouse,
        movement_type=MovementType.OUT,
        quantity=quantity,
        note=note[:255],
        reference_type=reference_type,
        reference_id=str(reference_id),
        created_by=_actor(user),
    )
    logger.info("Issued %s units of %s from warehouse %s", quantity, product.sku, warehouse.code)
    return batch


def stock_on_hand(product, warehouse=None):
    queryset = InventoryBatch.objects.filter(product=product)
    if warehouse is not None:
        queryset = queryset.filter(warehouse=warehouse)
    return queryset.aggregate(total=Sum("quantity"))["total"] or 0
