from datetime import date
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import SimpleTestCase, TestCase, override_settings
from rest_framework.test import APITestCase

from apps.audit.models import AuditLog
from apps.catalog.models import Product
from apps.common.exceptions import BadRequest, NotFound
from apps.common.transitions import is_transition_valid
from apps.inventory.models import InventoryBatch, MovementType, StockMovement
from apps.ledger.models import LedgerTransaction
from apps.ledger.services import account_balance, transactions_for
from apps.purchases.models import (
    PURCHASE_ORDER_TRANSITIONS,
    PurchaseOrder,
    PurchaseOrderItem,
    PurchaseOrderStatus,
)
from apps.purchases.pricing import compute_line, compute_order_totals, settlement_amount
from apps.purchases.services import (
    create_purchase_order,
    next_po_number,
    receive_all_items,
    receive_items,
    remove_purchase_order,
    update_purchase_order,
    update_purchase_order_status,
)
from apps.suppliers.services import create_supplier
from apps.warehouses.models import Warehouse

User = get_user_model()


class PricingTests(SimpleTestCase):
    def test_line_amounts_apply_discount_before_tax(self):
        line = compute_line(10, Decimal("100"), Decimal("5"), Decimal("10"))
        self.assertEqual(line.taxable, Decimal("950.00"))
        self.assertEqual(line.tax, Decimal("95.00"))
        self.assertEqual(line.total, Decimal("1045.00"))

    def test_line_tax_rounds_half_up(self):
        line = compute_line(1, Decimal("0.05"), 0, Decimal("10"))
        self.assertEqual(line.tax, Decimal("0.01"))

    def test_order_totals_keep_invariants(self):
        lines = [compute_line(3, Decimal("19.99"), Decimal("1.50"), Decimal("16")), compute_line(1, Decimal("7.25"))]
        totals = compute_order_totals(lines, discount_amount=Decimal("2.00"), paid_amount=Decimal("10.00"))
        self.assertEqual(totals.total_amount, totals.subtotal + totals.tax_amount - totals.discount_amount)
        self.assertEqual(totals.due_amount, totals.total_amount - totals.paid_amount)

    def test_tax_override_replaces_line_tax(self):
        lines = [compute_line(10, Decimal("100"), Decimal("5"), Decimal("10"))]
        totals = compute_order_totals(lines, tax_override=Decimal("0"))
        self.assertEqual(totals.tax_amount, Decimal("0.00"))
        self.assertEqual(totals.total_amount, Decimal("950.00"))

    def test_settlement_is_proportional_and_capped(self):
        self.assertEqual(settlement_amount(Decimal("500"), Decimal("250"), Decimal("1000")), Decimal("125.00"))
        self.assertEqual(settlement_amount(Decimal("500"), Decimal("2000"), Decimal("1000")), Decimal("500.00"))

    def test_settlement_is_zero_without_payment_or_total(self):
        self.assertEqual(settlement_amount(0, Decimal("250"), Decimal("1000")), Decimal("0.00"))
        self.assertEqual(settlement_amount(Decimal("10"), Decimal("0"), Decimal("0")), Decimal("0.00"))


class PurchaseOrderTransitionTests(SimpleTestCase):
    def test_self_transitions_are_never_valid(self):
        for status in PurchaseOrderStatus:
            self.assertFalse(is_transition_valid(PURCHASE_ORDER_TRANSITIONS, status, status))

    def test_validity_matches_table(self):
        for source in PurchaseOrderStatus:
            for target in PurchaseOrderStatus:
                expected = target in PURCHASE_ORDER_TRANSITIONS[source]
                self.assertEqual(is_transition_valid(PURCHASE_ORDER_TRANSITIONS, source, target), expected)

    def test_terminal_states_have_no_exits(self):
        self.assertEqual(PURCHASE_ORDER_TRANSITIONS[PurchaseOrderStatus.CANCELLED], frozenset())
        self.assertEqual(PURCHASE_ORDER_TRANSITIONS[PurchaseOrderStatus.CLOSED], frozenset())


class PurchaseOrderFixtureMixin:
    def create_fixtures(self):
        self.user = User.objects.create_user(username="buyer", password="buyer123", role="ADMIN")
        self.supplier = create_supplier({"name": "Acme Parts"})
        self.warehouse = Warehouse.objects.create(code="WH-1", name="Main")
        self.bolt = Product.objects.create(sku="BOLT-10", name="Bolt")
        self.nut = Product.objects.create(sku="NUT-10", name="Nut")

    def order_payload(self, **overrides):
        payload = {
            "supplier_id": self.supplier.id,
            "warehouse_id": self.warehouse.id,
            "items": [
                {
                    "product_id": self.bolt.id,
                    "quantity": 10,
                    "unit_price": Decimal("100.00"),
                    "discount_per_unit": Decimal("5.00"),
                    "tax_rate": Decimal("10"),
                }
            ],
        }
        payload.update(overrides)
        return payload

    def approved_order(self, **overrides):
        order = create_purchase_order(self.order_payload(**overrides), self.user)
        update_purchase_order_status(order, PurchaseOrderStatus.SENT, user=self.user)
        return update_purchase_order_status(order, PurchaseOrderStatus.APPROVED, user=self.user)


class PurchaseOrderServiceTests(PurchaseOrderFixtureMixin, TestCase):
    def setUp(self):
        self.create_fixtures()

    def test_create_computes_totals(self):
        order = create_purchase_order(self.order_payload(), self.user)
        self.assertEqual(order.status, PurchaseOrderStatus.DRAFT)
        self.assertEqual(order.subtotal, Decimal("950.00"))
        self.assertEqual(order.tax_amount, Decimal("95.00"))
        self.assertEqual(order.total_amount, Decimal("1045.00"))
        self.assertEqual(order.due_amount, Decimal("1045.00"))
        item = order.items.get()
        self.assertEqual(item.total_price, Decimal("1045.00"))
        self.assertEqual(item.quantity_received, 0)
        self.assertEqual(order.created_by, self.user)
        self.assertTrue(AuditLog.objects.filter(action="purchase_order.create", entity_id=str(order.id)).exists())

    def test_create_applies_discount_and_payment(self):
        order = create_purchase_order(
            self.order_payload(discount_amount=Decimal("45.00"), paid_amount=Decimal("500.00")),
            self.user,
        )
        self.assertEqual(order.total_amount, Decimal("1000.00"))
        self.assertEqual(order.due_amount, Decimal("500.00"))

    def test_explicit_tax_amount_overrides_line_tax(self):
        order = create_purchase_order(self.order_payload(tax_amount=Decimal("0")), self.user)
        self.assertEqual(order.tax_amount, Decimal("0.00"))
        self.assertEqual(order.total_amount, Decimal("950.00"))

    @override_settings(PURCHASES_TAX_OVERRIDE_ENABLED=False)
    def test_tax_override_can_be_disabled(self):
        order = create_purchase_order(self.order_payload(tax_amount=Decimal("0")), self.user)
        self.assertEqual(order.tax_amount, Decimal("95.00"))
        self.assertEqual(order.total_amount, Decimal("1045.00"))

    def test_create_rejects_unknown_references(self):
        with self.assertRaises(NotFound) as ctx:
            create_purchase_order(self.order_payload(supplier_id=999), self.user)
        self.assertEqual(ctx.exception.detail, "Supplier with ID 999 not found")

        with self.assertRaises(NotFound):
            create_purchase_order(self.order_payload(warehouse_id=999), self.user)

        items = [{"product_id": 999, "quantity": 1, "unit_price": Decimal("1.00")}]
        with self.assertRaises(NotFound):
            create_purchase_order(self.order_payload(items=items), self.user)
        self.assertFalse(PurchaseOrder.objects.exists())

    def test_create_rejects_payment_above_total(self):
        with self.assertRaises(BadRequest):
            create_purchase_order(self.order_payload(paid_amount=Decimal("2000.00")), self.user)

    def test_po_numbers_follow_highest_sequence_of_the_year(self):
        self.assertEqual(next_po_number(date(2026, 5, 1)), "PO-2026-001")
        create_purchase_order(self.order_payload(po_no="PO-2026-007"), self.user)
        create_purchase_order(self.order_payload(po_no="PO-2025-050"), self.user)
        self.assertEqual(next_po_number(date(2026, 5, 1)), "PO-2026-008")
        self.assertEqual(next_po_number(date(2027, 1, 2)), "PO-2027-001")

    def test_generated_numbers_do_not_repeat(self):
        first = create_purchase_order(self.order_payload(), self.user)
        second = create_purchase_order(self.order_payload(), self.user)
        self.assertNotEqual(first.po_no, second.po_no)
        self.assertTrue(second.po_no.endswith("-002"))

    def test_duplicate_po_number_is_rejected(self):
        create_purchase_order(self.order_payload(po_no="PO-X-1"), self.user)
        with self.assertRaises(BadRequest):
            create_purchase_order(self.order_payload(po_no="PO-X-1"), self.user)

    def test_update_replaces_items_and_recomputes(self):
        order = create_purchase_order(self.order_payload(), self.user)
        old_item_id = order.items.get().id
        items = [
            {"product_id": self.nut.id, "quantity": 4, "unit_price": Decimal("2.50"), "tax_rate": Decimal("0")},
            {"product_id": self.bolt.id, "quantity": 2, "unit_price": Decimal("10.00"), "tax_rate": Decimal("16")},
        ]
        order = update_purchase_order(order, {"items": items, "notes": "Revised"}, user=self.user)
        self.assertFalse(PurchaseOrderItem.objects.filter(pk=old_item_id).exists())
        self.assertEqual(order.items.count(), 2)
        self.assertEqual(order.subtotal, Decimal("30.00"))
        self.assertEqual(order.tax_amount, Decimal("3.20"))
        self.assertEqual(order.total_amount, Decimal("33.20"))
        self.assertEqual(order.notes, "Revised")

    def test_update_scalar_fields_keeps_totals_consistent(self):
        order = create_purchase_order(self.order_payload(), self.user)
        order = update_purchase_order(order, {"paid_amount": Decimal("45.00")})
        self.assertEqual(order.total_amount, Decimal("1045.00"))
        self.assertEqual(order.due_amount, Decimal("1000.00"))

    def test_update_outside_draft_is_rejected(self):
        order = create_purchase_order(self.order_payload(), self.user)
        update_purchase_order_status(order, PurchaseOrderStatus.SENT)
        with self.assertRaises(BadRequest) as ctx:
            update_purchase_order(order, {"notes": "late"})
        self.assertIn("draft", ctx.exception.detail)

    def test_draft_cannot_jump_to_approved(self):
        order = create_purchase_order(self.order_payload(), self.user)
        with self.assertRaises(BadRequest) as ctx:
            update_purchase_order_status(order, PurchaseOrderStatus.APPROVED)
        self.assertEqual(ctx.exception.code, "invalid_transition")
        self.assertIn("DRAFT", ctx.exception.detail)
        self.assertIn("APPROVED", ctx.exception.detail)
        order.refresh_from_db()
        self.assertEqual(order.status, PurchaseOrderStatus.DRAFT)

    def test_status_changes_stamp_dates_and_reason(self):
        order = create_purchase_order(self.order_payload(), self.user)
        order = update_purchase_order_status(order, PurchaseOrderStatus.SENT, reason="Emailed")
        self.assertIsNotNone(order.sent_date)
        self.assertEqual(order.metadata["status_change_reason"], "Emailed")
        self.assertIn("status_changed_at", order.metadata)
        order = update_purchase_order_status(order, PurchaseOrderStatus.APPROVED)
        self.assertIsNotNone(order.approved_date)

    def test_full_receipt_books_stock_and_ledger(self):
        order = self.approved_order()
        item = order.items.get()
        order = receive_items(order, [{"item_id": item.id, "quantity": 10}], self.user)

        self.assertEqual(order.status, PurchaseOrderStatus.FULLY_RECEIVED)
        self.assertIsNotNone(order.received_date)
        batch = InventoryBatch.objects.get(product=self.bolt, warehouse=self.warehouse)
        self.assertEqual(batch.quantity, 10)
        self.assertEqual(batch.purchase_price, Decimal("100.00"))
        movement = StockMovement.objects.get(movement_type=MovementType.IN)
        self.assertIn(order.po_no, movement.note)

        transactions = list(transactions_for("purchase_receive", order.id))
        self.assertEqual(len(transactions), 1)
        entries = list(transactions[0].entries.all())
        self.assertEqual(sum(e.debit for e in entries), Decimal("1000.00"))
        self.assertEqual(sum(e.credit for e in entries), Decimal("1000.00"))
        self.assertFalse(transactions_for("purchase_payment", order.id).exists())
        self.supplier.refresh_from_db()
        self.assertEqual(account_balance(self.supplier.account), Decimal("-1000.00"))

    def test_partial_receipts_accumulate(self):
        order = self.approved_order()
        item = order.items.get()
        order = receive_items(order, [{"item_id": item.id, "quantity": 4}], self.user)
        self.assertEqual(order.status, PurchaseOrderStatus.PARTIAL_RECEIVED)
        order = receive_items(order, [{"item_id": item.id, "quantity": 6}], self.user)
        self.assertEqual(order.status, PurchaseOrderStatus.FULLY_RECEIVED)
        self.assertEqual(InventoryBatch.objects.get().quantity, 10)
        self.assertEqual(LedgerTransaction.objects.filter(reference_type="purchase_receive").count(), 2)

    def test_over_receipt_rolls_back_everything(self):
        order = self.approved_order(
            items=[
                {"product_id": self.bolt.id, "quantity": 5, "unit_price": Decimal("1.00")},
                {"product_id": self.nut.id, "quantity": 2, "unit_price": Decimal("1.00")},
            ]
        )
        bolt_line, nut_line = order.items.order_by("id")
        with self.assertRaises(BadRequest) as ctx:
            receive_items(
                order,
                [{"item_id": bolt_line.id, "quantity": 5}, {"item_id": nut_line.id, "quantity": 3}],
                self.user,
            )
        self.assertIn("Nut", ctx.exception.detail)
        bolt_line.refresh_from_db()
        order.refresh_from_db()
        self.assertEqual(bolt_line.quantity_received, 0)
        self.assertEqual(order.status, PurchaseOrderStatus.APPROVED)
        self.assertFalse(InventoryBatch.objects.exists())
        self.assertFalse(StockMovement.objects.exists())
        self.assertFalse(LedgerTransaction.objects.exists())

    def test_unknown_item_is_not_found(self):
        order = self.approved_order()
        with self.assertRaises(NotFound):
            receive_items(order, [{"item_id": 999, "quantity": 1}], self.user)

    def test_receiving_requires_approval(self):
        order = create_purchase_order(self.order_payload(), self.user)
        with self.assertRaises(BadRequest):
            receive_items(order, [{"item_id": order.items.get().id, "quantity": 1}], self.user)

    def test_prepaid_order_posts_proportional_settlement(self):
        order = self.approved_order(paid_amount=Decimal("500.00"))
        item = order.items.get()
        receive_items(order, [{"item_id": item.id, "quantity": 5}], self.user)

        payment = transactions_for("purchase_payment", order.id).get()
        credited = sum(entry.credit for entry in payment.entries.all())
        # 500 * 500 / 1045
        self.assertEqual(credited, Decimal("239.23"))

    def test_receive_all_takes_remaining_quantities(self):
        order = self.approved_order(
            items=[
                {"product_id": self.bolt.id, "quantity": 5, "unit_price": Decimal("1.00")},
                {"product_id": self.nut.id, "quantity": 2, "unit_price": Decimal("3.00")},
            ]
        )
        order = receive_all_items(order, self.user)
        self.assertEqual(order.status, PurchaseOrderStatus.FULLY_RECEIVED)
        self.assertTrue(all(item.quantity_received == item.quantity for item in order.items.all()))
        self.assertEqual(StockMovement.objects.count(), 2)

    def test_remove_soft_deletes_drafts_only(self):
        order = create_purchase_order(self.order_payload(), self.user)
        remove_purchase_order(order, self.user)
        order.refresh_from_db()
        self.assertFalse(order.is_active)

        other = self.approved_order()
        with self.assertRaises(BadRequest):
            remove_purchase_order(other, self.user)


class PurchaseOrderApiTests(PurchaseOrderFixtureMixin, APITestCase):
    def setUp(self):
        self.create_fixtures()
        User.objects.create_user(username="storekeeper", password="store123", role="WAREHOUSE")
        User.objects.create_user(username="purchaser", password="purch123", role="PURCHASING")

    def auth_as(self, username, password):
        response = self.client.post(
            "/api/v1/auth/token/",
            {"username": username, "password": password},
            format="json",
        )
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['access']}")

    def api_payload(self, **overrides):
        payload = {
            "supplier_id": self.supplier.id,
            "warehouse_id": self.warehouse.id,
            "items": [
                {
                    "product_id": self.bolt.id,
                    "quantity": 10,
                    "unit_price": "100.00",
                    "discount_per_unit": "5.00",
                    "tax_rate": "10",
                }
            ],
        }
        payload.update(overrides)
        return payload

    def test_create_and_retrieve(self):
        self.auth_as("buyer", "buyer123")
        response = self.client.post("/api/v1/purchase-orders/", self.api_payload(), format="json")
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["total_amount"], "1045.00")
        self.assertEqual(response.data["supplier_name"], "Acme Parts")
        self.assertEqual(len(response.data["items"]), 1)

        detail = self.client.get(f"/api/v1/purchase-orders/{response.data['id']}/")
        self.assertEqual(detail.status_code, 200)
        self.assertEqual(detail.data["po_no"], response.data["po_no"])

    def test_create_with_unknown_supplier_returns_404_envelope(self):
        self.auth_as("buyer", "buyer123")
        response = self.client.post("/api/v1/purchase-orders/", self.api_payload(supplier_id=999), format="json")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.data["code"], "not_found")
        self.assertEqual(response.data["detail"], "Supplier with ID 999 not found")

    def test_create_requires_items(self):
        self.auth_as("buyer", "buyer123")
        response = self.client.post("/api/v1/purchase-orders/", self.api_payload(items=[]), format="json")
        self.assertEqual(response.status_code, 400)
        self.assertIn("items", response.data["fields"])

    def test_list_filters_by_status(self):
        create_purchase_order(self.order_payload(), self.user)
        self.approved_order()
        self.auth_as("buyer", "buyer123")
        response = self.client.get("/api/v1/purchase-orders/?status=approved")
        self.assertEqual(response.data["count"], 1)
        self.assertEqual(response.data["results"][0]["status"], PurchaseOrderStatus.APPROVED)

    def test_invalid_transition_returns_400(self):
        order = create_purchase_order(self.order_payload(), self.user)
        self.auth_as("buyer", "buyer123")
        response = self.client.post(f"/api/v1/purchase-orders/{order.id}/status/", {"status": "APPROVED"}, format="json")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["code"], "invalid_transition")

    def test_purchasing_role_cannot_approve(self):
        order = create_purchase_order(self.order_payload(), self.user)
        self.auth_as("purchaser", "purch123")
        response = self.client.post(f"/api/v1/purchase-orders/{order.id}/status/", {"status": "SENT"}, format="json")
        self.assertEqual(response.status_code, 200)
        response = self.client.post(f"/api/v1/purchase-orders/{order.id}/status/", {"status": "APPROVED"}, format="json")
        self.assertEqual(response.status_code, 403)

    def test_warehouse_receives_and_cannot_create(self):
        order = self.approved_order()
        item = order.items.get()
        self.auth_as("storekeeper", "store123")
        response = self.client.post("/api/v1/purchase-orders/", self.api_payload(), format="json")
        self.assertEqual(response.status_code, 403)

        response = self.client.post(
            f"/api/v1/purchase-orders/{order.id}/receive/",
            {"items": [{"item_id": item.id, "quantity": 10}]},
            format="json",
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["status"], PurchaseOrderStatus.FULLY_RECEIVED)
        self.assertEqual(response.data["items"][0]["quantity_received"], 10)

    def test_receive_all_endpoint(self):
        order = self.approved_order()
        self.auth_as("storekeeper", "store123")
        response = self.client.post(f"/api/v1/purchase-orders/{order.id}/receive-all/", {}, format="json")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["status"], PurchaseOrderStatus.FULLY_RECEIVED)

    def test_patch_and_delete_draft(self):
        order = create_purchase_order(self.order_payload(), self.user)
        self.auth_as("buyer", "buyer123")
        response = self.client.patch(
            f"/api/v1/purchase-orders/{order.id}/",
            {"discount_amount": "45.00"},
            format="json",
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["total_amount"], "1000.00")

        response = self.client.delete(f"/api/v1/purchase-orders/{order.id}/")
        self.assertEqual(response.status_code, 204)
        self.assertEqual(self.client.get(f"/api/v1/purchase-orders/{order.id}/").status_code, 404)

    def test_workflow_actions_ignore_list_filters(self):
        order = create_purchase_order(self.order_payload(), self.user)
        self.auth_as("buyer", "buyer123")
        response = self.client.post(
            f"/api/v1/purchase-orders/{order.id}/status/?status=draft&supplier=999",
            {"status": "SENT"},
            format="json",
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["status"], PurchaseOrderStatus.SENT)

        response = self.client.get(f"/api/v1/purchase-orders/{order.id}/?status=draft")
        self.assertEqual(response.status_code, 200)
