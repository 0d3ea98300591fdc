import logging
import re

from django.db import transaction

from apps.audit.services import record_audit
from apps.ledger.services import get_or_create_supplier_account
from apps.suppliers.models import Supplier

logger = logging.getLogger(__name__)

SUPPLIER_CODE_PATTERN = re.compile(r"^SUP-(\d+)$")


def next_supplier_code():
    last = Supplier.objects.filter(code__startswith="SUP-").order_by("-id").first()
    sequence = 1
    if last is not None:
        match = SUPPLIER_CODE_PATTERN.match(last.code)
        if match:
            sequence = int(match.group(1)) + 1
    code = f"SUP-{sequence:03d}"
    while Supplier.objects.filter(code=code).exists():
        sequence += 1
        code = f"SUP-{sequence:03d}"
    return code


@transaction.atomic
def create_supplier(data, user=None):
    payload = dict(data)
    if not payload.get("code"):
        payload["code"] = next_supplier_code()
    supplier = Supplier.objects.create(**payload)
    supplier.account = get_or_create_supplier_account(supplier.id, supplier.name)
    supplier.save(update_fields=["account", "updated_at"])

    record_audit(
        actor=user,
        action="supplier.create",
        entity_type="supplier",
        entity_id=supplier.id,
        payload={"code": supplier.code, "name": supplier.name, "account_code": supplier.account.code},
    )
    logger.info("Supplier %s created with account %s", supplier.code, supplier.account.code)
    return supplier
