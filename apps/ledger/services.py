import logging
from decimal import ROUND_HALF_UP, Decimal

from django.conf import settings
from django.db import transaction
from django.db.models import DecimalField, Sum
from django.db.models.functions import Coalesce

from apps.common.exceptions import BadRequest, NotFound
from apps.ledger.models import Account, AccountType, LedgerEntry, LedgerTransaction

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
SUPPLIER_ACCOUNT_PREFIX = "LIABILITY.SUPPLIER."
FIRST_SUPPLIER_ACCOUNT_NUMBER = 2002


def _quantize(amount):
    return Decimal(amount or 0).quantize(CENT, rounding=ROUND_HALF_UP)


def find_account_by_code(code):
    return Account.objects.filter(code=code).first()


def ensure_account(*, code, name, account_type, account_number="", is_cash=False, is_bank=False):
    account, created = Account.objects.get_or_create(
        code=code,
        defaults={
            "name": name,
            "account_type": account_type,
            "account_number": account_number,
            "is_cash": is_cash,
            "is_bank": is_bank,
        },
    )
    if created:
        logger.info("Created ledger account %s", code)
    return account


def inventory_account():
    return ensure_account(
        code=settings.LEDGER_INVENTORY_ACCOUNT_CODE,
        name="Inventory Stock",
        account_type=AccountType.ASSET,
        account_number="1010",
    )


def cash_account():
    return ensure_account(
        code=settings.LEDGER_CASH_ACCOUNT_CODE,
        name="Cash",
        account_type=AccountType.ASSET,
        account_number="1001",
        is_cash=True,
    )


def _next_supplier_account_number():
    numbers = [
        int(value)
        for value in Account.objects.filter(account_type=AccountType.LIABILITY).values_list("account_number", flat=True)
        if value and value.isdigit() and int(value) >= FIRST_SUPPLIER_ACCOUNT_NUMBER
    ]
    return str(max(numbers) + 1) if numbers else str(FIRST_SUPPLIER_ACCOUNT_NUMBER)


def get_or_create_supplier_account(supplier_id, display_name):
    code = f"{SUPPLIER_ACCOUNT_PREFIX}{supplier_id}"
    account = find_account_by_code(code)
    if account is not None:
        return account
    return ensure_account(
        code=code,
        name=f"Supplier - {display_name}",
        account_type=AccountType.LIABILITY,
        account_number=_next_supplier_account_number(),
    )


def create_transaction(reference_type, reference_id, entries):
    """Post a balanced set of debit/credit lines.

    ``entries`` is a list of dicts with ``account_code``, ``debit``, ``credit``
    and an optional ``narration``. Every account must already exist.
    """
    if not entries:
        raise BadRequest("A ledger transaction needs at least one entry", code="unbalanced_transaction")

    resolved = []
    total_debit = Decimal("0.00")
    total_credit = Decimal("0.00")
    for entry in entries:
        account = find_account_by_code(entry["account_code"])
        if account is None:
            raise NotFound(f"Account not found: {entry['account_code']}")
        debit = _quantize(entry.get("debit"))
        credit = _quantize(entry.get("credit"))
        if debit < 0 or credit < 0:
            raise BadRequest("Ledger amounts cannot be negative", code="unbalanced_transaction")
        total_debit += debit
        total_credit += credit
        resolved.append((account, debit, credit, entry.get("narration") or ""))

    if total_debit != total_credit or total_debit == 0:
        raise BadRequest(
            f"Transaction not balanced. Debit ({total_debit}) != Credit ({total_credit})",
            code="unbalanced_transaction",
            fields={"debit": str(total_debit), "credit": str(total_credit)},
        )

    with transaction.atomic():
        ledger_transaction = LedgerTransaction.objects.create(
            reference_type=reference_type,
            reference_id=str(reference_id),
        )
        LedgerEntry.objects.bulk_create(
            [
                LedgerEntry(
                    transaction=ledger_transaction,
                    account=account,
                    debit=debit,
                    credit=credit,
                    narration=narration[:255],
                )
                for account, debit, credit, narration in resolved
            ]
        )

    logger.info("Posted %s#%s for %s", reference_type, reference_id, total_debit)
    return ledger_transaction


def transactions_for(reference_type, reference_id):
    return (
        LedgerTransaction.objects.filter(reference_type=reference_type, reference_id=str(reference_id))
        .prefetch_related("entries__account")
        .order_by("-created_at", "-id")
    )


def account_balance(account):
    totals = account.entries.aggregate(
        debit=Coalesce(Sum("debit"), 0, output_field=DecimalField(max_digits=12, decimal_places=2)),
        credit=Coalesce(Sum("credit"), 0, output_field=DecimalField(max_digits=12, decimal_places=2)),
    )
    return _quantize(totals["debit"] - totals["credit"])
