import logging
import re

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from apps.audit.services import record_audit
from apps.catalog.models import Product
from apps.common.exceptions import BadRequest, NotFound, get_object_or_not_found
from apps.common.transitions import ensure_transition
from apps.inventory.services import receive_stock
from apps.ledger.services import cash_account, create_transaction, get_or_create_supplier_account, inventory_account
from apps.purchases.models import (
    PURCHASE_ORDER_TRANSITIONS,
    RECEIVABLE_STATUSES,
    PurchaseOrder,
    PurchaseOrderItem,
    PurchaseOrderStatus,
)
from apps.purchases.pricing import ZERO, compute_line, compute_order_totals, settlement_amount, to_money
from apps.suppliers.models import Supplier
from apps.warehouses.models import Warehouse

logger = logging.getLogger(__name__)

PO_NUMBER_PATTERN = re.compile(r"^PO-(\d{4})-(\d+)$")

SCALAR_FIELDS = (
    "expected_delivery_date",
    "payment_term",
    "custom_payment_days",
    "terms_and_conditions",
    "notes",
)

STATUS_DATE_FIELDS = {
    PurchaseOrderStatus.SENT: "sent_date",
    PurchaseOrderStatus.APPROVED: "approved_date",
    PurchaseOrderStatus.PARTIAL_RECEIVED: "received_date",
    PurchaseOrderStatus.FULLY_RECEIVED: "received_date",
}


def _actor(user):
    return user if user is not None and user.is_authenticated else None


def _lock(order):
    queryset = PurchaseOrder.objects.select_for_update().filter(is_active=True)
    return get_object_or_not_found(queryset, order.pk, "Purchase order")


def next_po_number(today=None):
    year = (today or timezone.localdate()).year
    prefix = f"PO-{year}-"
    sequence = 0
    for po_no in PurchaseOrder.objects.filter(po_no__startswith=prefix).values_list("po_no", flat=True):
        match = PO_NUMBER_PATTERN.match(po_no)
        if match:
            sequence = max(sequence, int(match.group(2)))
    return f"{prefix}{sequence + 1:03d}"


def _ensure_unique_po_no(po_no, exclude_pk=None):
    queryset = PurchaseOrder.objects.filter(po_no=po_no)
    if exclude_pk is not None:
        queryset = queryset.exclude(pk=exclude_pk)
    if queryset.exists():
        raise BadRequest(f'Purchase order number "{po_no}" already exists', code="duplicate_po_no", fields={"po_no": po_no})


def _tax_override(data):
    if settings.PURCHASES_TAX_OVERRIDE_ENABLED and data.get("tax_amount") is not None:
        return data["tax_amount"]
    return None


def _price_items(items):
    if not items:
        raise BadRequest("A purchase order needs at least one item", fields={"items": "required"})
    priced = []
    for item in items:
        product = get_object_or_not_found(Product, item["product_id"], "Product")
        amounts = compute_line(
            item["quantity"],
            item.get("unit_price"),
            item.get("discount_per_unit"),
            item.get("tax_rate"),
        )
        priced.append((product, item, amounts))
    return priced


def _create_items(order, priced):
    PurchaseOrderItem.objects.bulk_create(
        [
            PurchaseOrderItem(
                purchase_order=order,
                product=product,
                quantity=item["quantity"],
                quantity_received=0,
                unit_price=to_money(item.get("unit_price")),
                discount_per_unit=to_money(item.get("discount_per_unit")),
                tax_rate=item.get("tax_rate") or 0,
                total_price=amounts.total,
            )
            for product, item, amounts in priced
        ]
    )


def _check_totals(totals):
    if totals.total_amount < 0:
        raise BadRequest(
            f"Discount amount {totals.discount_amount} exceeds the order value",
            fields={"discount_amount": str(totals.discount_amount)},
        )
    if totals.due_amount < 0:
        raise BadRequest(
            f"Paid amount {totals.paid_amount} cannot exceed total amount {totals.total_amount}",
            fields={"paid_amount": str(totals.paid_amount)},
        )


def _totals_payload(order):
    return {
        "po_no": order.po_no,
        "status": order.status,
        "subtotal": order.subtotal,
        "tax_amount": order.tax_amount,
        "discount_amount": order.discount_amount,
        "total_amount": order.total_amount,
        "paid_amount": order.paid_amount,
        "due_amount": order.due_amount,
    }


@transaction.atomic
def create_purchase_order(data, user):
    po_no = (data.get("po_no") or "").strip() or next_po_number()
    _ensure_unique_po_no(po_no)
    supplier = get_object_or_not_found(Supplier, data["supplier_id"], "Supplier")
    warehouse = get_object_or_not_found(Warehouse, data["warehouse_id"], "Warehouse")

    priced = _price_items(data.get("items"))
    totals = compute_order_totals(
        [amounts for _, _, amounts in priced],
        discount_amount=data.get("discount_amount"),
        paid_amount=data.get("paid_amount"),
        tax_override=_tax_override(data),
    )
    _check_totals(totals)

    order = PurchaseOrder.objects.create(
        po_no=po_no,
        supplier=supplier,
        warehouse=warehouse,
        created_by=_actor(user),
        metadata=data.get("metadata") or {},
        **{field: data[field] for field in SCALAR_FIELDS if data.get(field) is not None},
        **totals.as_fields(),
    )
    _create_items(order, priced)

    record_audit(
        actor=user,
        action="purchase_order.create",
        entity_type="purchase_order",
        entity_id=order.id,
        payload={**_totals_payload(order), "items": len(priced)},
    )
    logger.info("Purchase order %s created for supplier %s", order.po_no, supplier.code)
    return order


@transaction.atomic
def update_purchase_order(order, data, user=None):
    order = _lock(order)
    if order.status != PurchaseOrderStatus.DRAFT:
        raise BadRequest("Only draft purchase orders can be updated", code="invalid_state")

    po_no = (data.get("po_no") or "").strip()
    if po_no and po_no != order.po_no:
        _ensure_unique_po_no(po_no, exclude_pk=order.pk)
        order.po_no = po_no
    if "supplier_id" in data:
        order.supplier = get_object_or_not_found(Supplier, data["supplier_id"], "Supplier")
    if "warehouse_id" in data:
        order.warehouse = get_object_or_not_found(Warehouse, data["warehouse_id"], "Warehouse")
    for field in SCALAR_FIELDS:
        if field in data:
            setattr(order, field, data[field])
    if data.get("metadata"):
        order.metadata = {**(order.metadata or {}), **data["metadata"]}

    items = data.get("items")
    tax_override = _tax_override(data)
    if items is not None:
        priced = _price_items(items)
        lines = [amounts for _, _, amounts in priced]
    else:
        lines = [
            compute_line(item.quantity, item.unit_price, item.discount_per_unit, item.tax_rate)
            for item in order.items.all()
        ]
        if tax_override is None:
            tax_override = order.tax_amount

    totals = compute_order_totals(
        lines,
        discount_amount=data.get("discount_amount", order.discount_amount),
        paid_amount=data.get("paid_amount", order.paid_amount),
        tax_override=tax_override,
    )
    _check_totals(totals)

    if items is not None:
        order.items.all().delete()
        _create_items(order, priced)
    for field, value in totals.as_fields().items():
        setattr(order, field, value)
    order.save()

    record_audit(
        actor=user,
        action="purchase_order.update",
        entity_type="purchase_order",
        entity_id=order.id,
        payload={**_totals_payload(order), "items_replaced": items is not None},
    )
    logger.info("Purchase order %s updated", order.po_no)
    return order


@transaction.atomic
def update_purchase_order_status(order, status, reason=None, user=None):
    order = _lock(order)
    previous = order.status
    ensure_transition(
        PURCHASE_ORDER_TRANSITIONS,
        previous,
        status,
        detail=f"Cannot change purchase order status from {previous} to {status}",
    )

    now = timezone.now()
    order.status = status
    date_field = STATUS_DATE_FIELDS.get(status)
    if date_field:
        setattr(order, date_field, now)
    if reason:
        order.metadata = {
            **(order.metadata or {}),
            "status_change_reason": reason,
            "status_changed_at": now.isoformat(),
        }
    order.save()

    record_audit(
        actor=user,
        action="purchase_order.status",
        entity_type="purchase_order",
        entity_id=order.id,
        payload={"po_no": order.po_no, "from": previous, "to": status, "reason": reason or ""},
    )
    logger.info("Purchase order %s status updated to %s", order.po_no, status)
    return order


def _payable_account(supplier):
    if supplier.account_id is not None:
        return supplier.account
    account = get_or_create_supplier_account(supplier.id, supplier.name)
    supplier.account = account
    supplier.save(update_fields=["account", "updated_at"])
    return account


def _post_receipt(order, value_received):
    payable = _payable_account(order.supplier)
    inventory = inventory_account()
    create_transaction(
        "purchase_receive",
        order.id,
        [
            {
                "account_code": inventory.code,
                "debit": value_received,
                "credit": ZERO,
                "narration": f"Inventory received for PO {order.po_no}",
            },
            {
                "account_code": payable.code,
                "debit": ZERO,
                "credit": value_received,
                "narration": f"Accounts payable for {order.po_no}",
            },
        ],
    )

    settled = settlement_amount(order.paid_amount, value_received, order.total_amount)
    if settled <= 0:
        return ZERO
    cash = cash_account()
    create_transaction(
        "purchase_payment",
        order.id,
        [
            {
                "account_code": payable.code,
                "debit": settled,
                "credit": ZERO,
                "narration": f"Payment to supplier for PO {order.po_no}",
            },
            {
                "account_code": cash.code,
                "debit": ZERO,
                "credit": settled,
                "narration": f"Cash paid for PO {order.po_no}",
            },
        ],
    )
    return settled


@transaction.atomic
def receive_items(order, items, user):
    order = _lock(order)
    if order.status not in RECEIVABLE_STATUSES:
        raise BadRequest("Only approved purchase orders can receive items", code="invalid_state")
    if not items:
        raise BadRequest("Nothing to receive", fields={"items": "required"})

    lines = {line.id: line for line in order.items.select_related("product").select_for_update()}
    value_received = ZERO
    received = []
    for entry in items:
        line = lines.get(entry["item_id"])
        if line is None:
            raise NotFound(f"Item with ID {entry['item_id']} not found in purchase order {order.po_no}")
        quantity = entry["quantity"]
        if quantity <= 0:
            raise BadRequest("Received quantity must be greater than zero", fields={"item_id": line.id})
        if line.quantity_received + quantity > line.quantity:
            raise BadRequest(
                f"Cannot receive more than ordered quantity for item {line.product.name}",
                code="over_receipt",
                fields={
                    "item_id": line.id,
                    "ordered": line.quantity,
                    "already_received": line.quantity_received,
                    "requested": quantity,
                },
            )

        value_received += quantity * line.unit_price
        line.quantity_received += quantity
        line.save(update_fields=["quantity_received"])
        receive_stock(
            line.product,
            order.warehouse,
            quantity,
            line.unit_price,
            user,
            f"Stock received from Purchase Order {order.po_no}",
            "purchase_order",
            order.id,
            supplier_name=order.supplier.name,
            purchase_order_item=line,
        )
        received.append({"item_id": line.id, "product_id": line.product_id, "quantity": quantity})

    fully_received = all(line.quantity_received == line.quantity for line in lines.values())
    order.status = PurchaseOrderStatus.FULLY_RECEIVED if fully_received else PurchaseOrderStatus.PARTIAL_RECEIVED
    order.received_date = timezone.now()
    order.save(update_fields=["status", "received_date", "updated_at"])

    value_received = to_money(value_received)
    settled = ZERO
    if value_received > 0:
        settled = _post_receipt(order, value_received)

    record_audit(
        actor=user,
        action="purchase_order.receive",
        entity_type="purchase_order",
        entity_id=order.id,
        payload={
            "po_no": order.po_no,
            "status": order.status,
            "value_received": value_received,
            "settled": settled,
            "items": received,
        },
    )
    logger.info("Purchase order %s received %s worth %s", order.po_no, order.status, value_received)
    return order


def receive_all_items(order, user):
    if order.status != PurchaseOrderStatus.APPROVED:
        raise BadRequest("Only approved purchase orders can be received", code="invalid_state")
    items = [
        {"item_id": item.id, "quantity": item.remaining_quantity}
        for item in order.items.all()
        if item.remaining_quantity > 0
    ]
    return receive_items(order, items, user)


@transaction.atomic
def remove_purchase_order(order, user=None):
    order = _lock(order)
    if order.status != PurchaseOrderStatus.DRAFT:
        raise BadRequest("Only draft purchase orders can be deleted", code="invalid_state")

    order.is_active = False
    order.save(update_fields=["is_active", "updated_at"])
    record_audit(
        actor=user,
        action="purchase_order.delete",
        entity_type="purchase_order",
        entity_id=order.id,
        payload={"po_no": order.po_no},
    )
    logger.info("Purchase order %s deleted", order.po_no)
    return order
