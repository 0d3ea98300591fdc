from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value) -> Decimal:
    if value is None or value == "":
        return ZERO
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class LineAmounts:
    taxable: Decimal
    tax: Decimal
    total: Decimal


@dataclass(frozen=True)
class OrderTotals:
    subtotal: Decimal
    tax_amount: Decimal
    discount_amount: Decimal
    total_amount: Decimal
    paid_amount: Decimal
    due_amount: Decimal

    def as_fields(self):
        return {
            "subtotal": self.subtotal,
            "tax_amount": self.tax_amount,
            "discount_amount": self.discount_amount,
            "total_amount": self.total_amount,
            "paid_amount": self.paid_amount,
            "due_amount": self.due_amount,
        }


def compute_line(quantity, unit_price, discount_per_unit=0, tax_rate=0) -> LineAmounts:
    quantity = Decimal(quantity)
    taxable = to_money(quantity * to_money(unit_price) - quantity * to_money(discount_per_unit))
    tax = to_money(taxable * Decimal(str(tax_rate or 0)) / Decimal("100"))
    return LineAmounts(taxable=taxable, tax=tax, total=taxable + tax)


def compute_order_totals(lines, discount_amount=0, paid_amount=0, tax_override=None) -> OrderTotals:
    subtotal = sum((line.taxable for line in lines), ZERO)
    tax_amount = sum((line.tax for line in lines), ZERO) if tax_override is None else to_money(tax_override)
    discount_amount = to_money(discount_amount)
    paid_amount = to_money(paid_amount)
    total_amount = subtotal + tax_amount - discount_amount
    return OrderTotals(
        subtotal=subtotal,
        tax_amount=tax_amount,
        discount_amount=discount_amount,
        total_amount=total_amount,
        paid_amount=paid_amount,
        due_amount=total_amount - paid_amount,
    )


def settlement_amount(paid_amount, value_received, total_amount) -> Decimal:
    paid_amount = to_money(paid_amount)
    total_amount = to_money(total_amount)
    if paid_amount <= 0 or total_amount <= 0:
        return ZERO
    share = to_money(paid_amount * to_money(value_received) / total_amount)
    return min(share, paid_amount)
