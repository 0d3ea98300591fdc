from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal


@dataclass(frozen=True)
class RefundRecord:
    id: int
    amount: Decimal
    method: str
    note: str
    debit_account_code: str | None
    credit_account_code: str | None
    created_at: datetime


@dataclass(frozen=True)
class ProcessOutcome:
    message: str
    return_id: int
    total_amount: Decimal
    supplier_account: str
    inventory_account: str
    refund_processed: bool
    refund_later: bool
    refund_amount: Decimal | None = None
    refund_payment_method: str = ""
    refund_reference: str = ""
    debit_account_code: str = ""


@dataclass(frozen=True)
class RefundOutcome:
    message: str
    return_id: int
    refund_amount: Decimal
    debit_account: str
    supplier_account: str
    payment_method: str
    reference: str
