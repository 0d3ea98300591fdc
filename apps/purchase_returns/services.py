import logging
from collections import defaultdict

from django.conf import settings
from django.db import transaction
from django.db.models import Sum
from django.utils import timezone

from apps.audit.services import record_audit
from apps.common.exceptions import BadRequest, get_object_or_not_found
from apps.common.transitions import ensure_transition
from apps.inventory.services import issue_stock
from apps.ledger.models import AccountType
from apps.ledger.services import create_transaction, find_account_by_code, inventory_account, transactions_for
from apps.purchase_returns.models import (
    COMMITTED_STATUSES,
    PURCHASE_RETURN_TRANSITIONS,
    PurchaseReturn,
    PurchaseReturnItem,
    PurchaseReturnStatus,
)
from apps.purchase_returns.results import ProcessOutcome, RefundOutcome, RefundRecord
from apps.purchases.models import PurchaseOrder, PurchaseOrderStatus
from apps.purchases.pricing import ZERO, to_money
from apps.suppliers.models import Supplier
from apps.warehouses.models import Warehouse

logger = logging.getLogger(__name__)


def _actor(user):
    return user if user is not None and user.is_authenticated else None


def _lock(purchase_return):
    return get_object_or_not_found(
        PurchaseReturn.objects.select_for_update(),
        purchase_return.pk,
        "Purchase return",
    )


def next_return_number(today=None):
    year = (today or timezone.localdate()).year
    sequence = PurchaseReturn.objects.filter(created_at__year=year).count() + 1
    return_no = f"PR-{year}-{sequence:03d}"
    while PurchaseReturn.objects.filter(return_no=return_no).exists():
        sequence += 1
        return_no = f"PR-{year}-{sequence:03d}"
    return return_no


def _ensure_unique_return_no(return_no, exclude_pk=None):
    queryset = PurchaseReturn.objects.filter(return_no=return_no)
    if exclude_pk is not None:
        queryset = queryset.exclude(pk=exclude_pk)
    if queryset.exists():
        raise BadRequest(
            f'Return Number "{return_no}" already exists',
            code="duplicate_return_no",
            fields={"return_no": return_no},
        )


def returned_quantity(purchase_order, product_id, exclude_return=None):
    queryset = PurchaseReturnItem.objects.filter(
        purchase_return__purchase_order=purchase_order,
        purchase_return__status__in=COMMITTED_STATUSES,
        product_id=product_id,
    )
    if exclude_return is not None:
        queryset = queryset.exclude(purchase_return=exclude_return)
    return queryset.aggregate(total=Sum("returned_quantity"))["total"] or 0


def _check_returnable(purchase_order, requested, exclude_return=None):
    purchased = defaultdict(int)
    for line in purchase_order.items.all():
        purchased[line.product_id] += line.quantity

    for product_id, quantity in requested.items():
        if product_id not in purchased:
            raise BadRequest(
                f"Product ID {product_id} not found in original purchase",
                fields={"product_id": product_id},
            )
        already = returned_quantity(purchase_order, product_id, exclude_return=exclude_return)
        if already + quantity > purchased[product_id]:
            raise BadRequest(
                f"Cannot return {quantity} units of product {product_id}. "
                f"Original purchase: {purchased[product_id]}, Already returned: {already}",
                code="return_quantity_exceeded",
                fields={
                    "product_id": product_id,
                    "purchased": purchased[product_id],
                    "already_returned": already,
                    "requested": quantity,
                },
            )


def _prepare_items(purchase_order, items, exclude_return=None):
    if not items:
        raise BadRequest("A purchase return needs at least one item", fields={"items": "required"})

    order_lines = list(purchase_order.items.all())
    by_id = {line.id: line for line in order_lines}
    requested = defaultdict(int)
    prepared = []
    for item in items:
        product_id = item["product_id"]
        order_line = None
        if item.get("purchase_order_item_id"):
            order_line = by_id.get(item["purchase_order_item_id"])
            if order_line is None or order_line.product_id != product_id:
                raise BadRequest(
                    f"Item with ID {item['purchase_order_item_id']} does not belong to purchase order "
                    f"{purchase_order.po_no} for product {product_id}",
                    fields={"purchase_order_item_id": item["purchase_order_item_id"]},
                )
        else:
            order_line = next((line for line in order_lines if line.product_id == product_id), None)

        price = item.get("price")
        if price is None and order_line is not None:
            price = order_line.unit_price
        price = to_money(price)
        quantity = item["returned_quantity"]
        requested[product_id] += quantity
        prepared.append(
            {
                "product_id": product_id,
                "purchase_order_item": order_line,
                "returned_quantity": quantity,
                "price": price,
                "line_total": to_money(price * quantity),
            }
        )

    _check_returnable(purchase_order, requested, exclude_return=exclude_return)
    return prepared


def _create_items(purchase_return, prepared):
    PurchaseReturnItem.objects.bulk_create(
        [PurchaseReturnItem(purchase_return=purchase_return, **item) for item in prepared]
    )
    return sum((item["line_total"] for item in prepared), ZERO)


@transaction.atomic
def create_purchase_return(data, user=None):
    return_no = (data.get("return_no") or "").strip()
    if return_no:
        _ensure_unique_return_no(return_no)

    purchase_order = get_object_or_not_found(
        PurchaseOrder.objects.filter(is_active=True),
        data["purchase_order_id"],
        "Purchase order",
    )
    if purchase_order.status != PurchaseOrderStatus.FULLY_RECEIVED:
        raise BadRequest("Can only return from fully received purchase orders", code="invalid_state")

    supplier = get_object_or_not_found(Supplier, data.get("supplier_id") or purchase_order.supplier_id, "Supplier")
    warehouse = get_object_or_not_found(Warehouse, data.get("warehouse_id") or purchase_order.warehouse_id, "Warehouse")
    prepared = _prepare_items(purchase_order, data.get("items"))

    purchase_return = PurchaseReturn.objects.create(
        return_no=return_no or next_return_number(),
        purchase_order=purchase_order,
        supplier=supplier,
        warehouse=warehouse,
        reason=data.get("reason") or "",
        total=sum((item["line_total"] for item in prepared), ZERO),
    )
    _create_items(purchase_return, prepared)

    record_audit(
        actor=user,
        action="purchase_return.create",
        entity_type="purchase_return",
        entity_id=purchase_return.id,
        payload={
            "return_no": purchase_return.return_no,
            "purchase_order": purchase_order.po_no,
            "total": purchase_return.total,
        },
    )
    logger.info("Purchase return %s created against %s", purchase_return.return_no, purchase_order.po_no)
    return purchase_return


@transaction.atomic
def update_purchase_return(purchase_return, data, user=None):
    purchase_return = _lock(purchase_return)
    if purchase_return.status != PurchaseReturnStatus.DRAFT:
        raise BadRequest("Can only update draft returns", code="invalid_state")

    return_no = (data.get("return_no") or "").strip()
    if return_no and return_no != purchase_return.return_no:
        _ensure_unique_return_no(return_no, exclude_pk=purchase_return.pk)
        purchase_return.return_no = return_no
    if data.get("supplier_id"):
        purchase_return.supplier = get_object_or_not_found(Supplier, data["supplier_id"], "Supplier")
    if data.get("warehouse_id"):
        purchase_return.warehouse = get_object_or_not_found(Warehouse, data["warehouse_id"], "Warehouse")
    if "reason" in data:
        purchase_return.reason = data["reason"] or ""

    items = data.get("items")
    if items is not None:
        prepared = _prepare_items(purchase_return.purchase_order, items, exclude_return=purchase_return)
        purchase_return.items.all().delete()
        purchase_return.total = _create_items(purchase_return, prepared)
    purchase_return.save()

    record_audit(
        actor=user,
        action="purchase_return.update",
        entity_type="purchase_return",
        entity_id=purchase_return.id,
        payload={
            "return_no": purchase_return.return_no,
            "total": purchase_return.total,
            "items_replaced": items is not None,
        },
    )
    return purchase_return


@transaction.atomic
def approve_return(purchase_return, notes, user):
    purchase_return = _lock(purchase_return)
    ensure_transition(
        PURCHASE_RETURN_TRANSITIONS,
        purchase_return.status,
        PurchaseReturnStatus.APPROVED,
        detail=f"Cannot approve return with status: {purchase_return.status}. Only draft returns can be approved.",
    )

    requested = defaultdict(int)
    for item in purchase_return.items.all():
        requested[item.product_id] += item.returned_quantity
    _check_returnable(purchase_return.purchase_order, requested, exclude_return=purchase_return)

    purchase_return.status = PurchaseReturnStatus.APPROVED
    purchase_return.approved_at = timezone.now()
    purchase_return.approved_by = _actor(user)
    purchase_return.approval_notes = notes or ""
    purchase_return.save()

    record_audit(
        actor=user,
        action="purchase_return.approve",
        entity_type="purchase_return",
        entity_id=purchase_return.id,
        payload={"return_no": purchase_return.return_no, "notes": purchase_return.approval_notes},
    )
    logger.info("Purchase return %s approved", purchase_return.return_no)
    return purchase_return


def _payable_account(purchase_return):
    supplier = purchase_return.supplier
    if supplier.account_id is None:
        raise BadRequest(
            f'Supplier "{supplier.name}" has no chart of account assigned.',
            code="missing_supplier_account",
        )
    return supplier.account


def _post_refund(purchase_return, payable, amount, debit_account_code):
    amount = to_money(amount) if amount else purchase_return.total
    if amount > purchase_return.total:
        raise BadRequest(
            f"Refund amount {amount} cannot exceed purchase return total {purchase_return.total}",
            code="refund_exceeds_total",
            fields={"refund_amount": str(amount), "total": str(purchase_return.total)},
        )

    code = debit_account_code or settings.LEDGER_CASH_ACCOUNT_CODE
    debit_account = find_account_by_code(code)
    if debit_account is None:
        raise BadRequest(
            f'Debit account with code "{code}" not found. Please select a valid account.',
            code="invalid_debit_account",
            fields={"debit_account_code": code},
        )
    if debit_account.account_type != AccountType.ASSET:
        raise BadRequest(
            f'Debit account must be an asset type account. Selected account "{debit_account.code}" '
            f'is of type "{debit_account.account_type}".',
            code="invalid_debit_account",
            fields={"debit_account_code": code},
        )

    if amount <= 0:
        # Zero refunds are recorded on the return only.
        return amount, debit_account

    create_transaction(
        "supplier_refund",
        purchase_return.id,
        [
            {
                "account_code": payable.code,
                "debit": ZERO,
                "credit": amount,
                "narration": f"Money refund to supplier for Purchase Return #{purchase_return.id}",
            },
            {
                "account_code": debit_account.code,
                "debit": amount,
                "credit": ZERO,
                "narration": f"{debit_account.name} outflow for supplier refund - Purchase Return #{purchase_return.id}",
            },
        ],
    )
    return amount, debit_account


@transaction.atomic
def process_return(purchase_return, data, user):
    purchase_return = _lock(purchase_return)
    ensure_transition(
        PURCHASE_RETURN_TRANSITIONS,
        purchase_return.status,
        PurchaseReturnStatus.PROCESSED,
        detail=f"Cannot process return with status: {purchase_return.status}. Only approved returns can be processed.",
    )
    payable = _payable_account(purchase_return)
    inventory = inventory_account()

    note = f"Stock returned to supplier - Purchase Return {purchase_return.return_no}"
    for item in purchase_return.items.select_related("product"):
        issue_stock(
            item.product,
            purchase_return.warehouse,
            item.returned_quantity,
            user,
            note,
            "purchase_return",
            purchase_return.id,
        )

    now = timezone.now()
    refund_to_supplier = bool(data.get("refund_to_supplier"))
    refund_later = bool(data.get("refund_later"))
    processing_notes = data.get("processing_notes") or ""
    message = "Purchase return successfully processed and inventory updated."
    refund = {}

    if refund_to_supplier and not refund_later:
        amount, debit_account = _post_refund(
            purchase_return,
            payable,
            data.get("refund_amount"),
            data.get("debit_account_code"),
        )
        purchase_return.refund_to_supplier = True
        purchase_return.refund_amount = amount
        purchase_return.refund_payment_method = data.get("refund_payment_method") or ""
        purchase_return.refund_reference = data.get("refund_reference") or ""
        purchase_return.debit_account_code = debit_account.code
        purchase_return.refunded_at = now
        refund = {
            "refund_amount": amount,
            "refund_payment_method": purchase_return.refund_payment_method,
            "refund_reference": purchase_return.refund_reference,
            "debit_account_code": debit_account.code,
        }
        message += f" Money refund of {amount} processed from {debit_account.code}."
    elif refund_later:
        purchase_return.refund_to_supplier = False
        processing_notes = (
            f"{processing_notes}\n(Refund to be processed later)" if processing_notes else "Refund to be processed later"
        )
        message += " Refund to be processed later."
    else:
        purchase_return.refund_to_supplier = False
        message += " No money refund processed."

    if purchase_return.total > 0:
        create_transaction(
            "purchase_return",
            purchase_return.id,
            [
                {
                    "account_code": payable.code,
                    "debit": purchase_return.total,
                    "credit": ZERO,
                    "narration": f"Supplier payable reduction for Purchase Return #{purchase_return.id}",
                },
                {
                    "account_code": inventory.code,
                    "debit": ZERO,
                    "credit": purchase_return.total,
                    "narration": f"Inventory reduction for Purchase Return #{purchase_return.id}",
                },
            ],
        )

    purchase_return.status = PurchaseReturnStatus.PROCESSED
    purchase_return.processed_at = now
    purchase_return.processed_by = _actor(user)
    purchase_return.processing_notes = processing_notes
    purchase_return.save()

    record_audit(
        actor=user,
        action="purchase_return.process",
        entity_type="purchase_return",
        entity_id=purchase_return.id,
        payload={
            "return_no": purchase_return.return_no,
            "total": purchase_return.total,
            "refund_processed": bool(refund),
            "refund_later": refund_later,
            **refund,
        },
    )
    logger.info("Purchase return %s processed", purchase_return.return_no)
    return ProcessOutcome(
        message=message,
        return_id=purchase_return.id,
        total_amount=purchase_return.total,
        supplier_account=payable.code,
        inventory_account=inventory.code,
        refund_processed=bool(refund),
        refund_later=refund_later,
        **refund,
    )


@transaction.atomic
def cancel_return(purchase_return, user=None):
    purchase_return = _lock(purchase_return)
    previous = purchase_return.status
    ensure_transition(
        PURCHASE_RETURN_TRANSITIONS,
        previous,
        PurchaseReturnStatus.CANCELLED,
        detail=f"Cannot cancel return with status: {previous}. Only draft or approved returns can be cancelled.",
    )
    purchase_return.status = PurchaseReturnStatus.CANCELLED
    purchase_return.save(update_fields=["status", "updated_at"])

    record_audit(
        actor=user,
        action="purchase_return.cancel",
        entity_type="purchase_return",
        entity_id=purchase_return.id,
        payload={"return_no": purchase_return.return_no, "from": previous},
    )
    logger.info("Purchase return %s cancelled", purchase_return.return_no)
    return purchase_return


@transaction.atomic
def process_refund(purchase_return, data, user):
    purchase_return = _lock(purchase_return)
    if purchase_return.status != PurchaseReturnStatus.PROCESSED:
        raise BadRequest(
            f"Can only process refund for processed purchase returns. Current status: {purchase_return.status}",
            code="invalid_state",
        )
    if purchase_return.refund_to_supplier:
        raise BadRequest(
            f"Refund already processed for Purchase Return #{purchase_return.id}",
            code="already_refunded",
        )

    payable = _payable_account(purchase_return)
    amount, debit_account = _post_refund(
        purchase_return,
        payable,
        data.get("refund_amount"),
        data.get("debit_account_code"),
    )

    note = data.get("refund_notes") or "Refund processed later"
    purchase_return.refund_to_supplier = True
    purchase_return.refund_amount = amount
    purchase_return.refund_payment_method = data.get("payment_method") or ""
    purchase_return.refund_reference = data.get("refund_reference") or ""
    purchase_return.debit_account_code = debit_account.code
    purchase_return.refunded_at = timezone.now()
    purchase_return.processing_notes = (
        f"{purchase_return.processing_notes}\n{note}" if purchase_return.processing_notes else note
    )
    purchase_return.save()

    record_audit(
        actor=user,
        action="purchase_return.refund",
        entity_type="purchase_return",
        entity_id=purchase_return.id,
        payload={
            "return_no": purchase_return.return_no,
            "refund_amount": amount,
            "debit_account_code": debit_account.code,
        },
    )
    logger.info("Refund of %s booked for purchase return %s", amount, purchase_return.return_no)
    return RefundOutcome(
        message=f"Refund of {amount} successfully processed from {debit_account.name}",
        return_id=purchase_return.id,
        refund_amount=amount,
        debit_account=debit_account.code,
        supplier_account=payable.code,
        payment_method=purchase_return.refund_payment_method,
        reference=purchase_return.refund_reference,
    )


def refund_history(purchase_return):
    records = []
    for ledger_transaction in transactions_for("supplier_refund", purchase_return.id):
        entries = list(ledger_transaction.entries.all())
        debit = next((entry for entry in entries if entry.debit > 0), None)
        credit = next((entry for entry in entries if entry.credit > 0), None)
        if debit is not None:
            amount = debit.debit
        elif credit is not None:
            amount = credit.credit
        else:
            amount = ZERO
        records.append(
            RefundRecord(
                id=ledger_transaction.id,
                amount=amount,
                method=debit.account.name if debit is not None else "Unknown",
                note=(debit and debit.narration) or (credit and credit.narration) or "Refund transaction",
                debit_account_code=debit.account.code if debit is not None else None,
                credit_account_code=credit.account.code if credit is not None else None,
                created_at=ledger_transaction.created_at,
            )
        )
    return records
