from datetime import date
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import SimpleTestCase, TestCase
from rest_framework.test import APITestCase

from apps.audit.models import AuditLog
from apps.catalog.models import Product
from apps.common.exceptions import BadRequest, NotFound
from apps.common.transitions import is_transition_valid
from apps.inventory.models import InventoryBatch, MovementType, StockMovement
from apps.ledger.models import LedgerTransaction
from apps.ledger.services import account_balance, cash_account, transactions_for
from apps.purchase_returns.models import (
    PURCHASE_RETURN_TRANSITIONS,
    PurchaseReturn,
    PurchaseReturnStatus,
)
from apps.purchase_returns.services import (
    approve_return,
    cancel_return,
    create_purchase_return,
    next_return_number,
    process_refund,
    process_return,
    refund_history,
    update_purchase_return,
)
from apps.purchases.models import PurchaseOrderStatus
from apps.purchases.services import create_purchase_order, receive_all_items, update_purchase_order_status
from apps.suppliers.models import Supplier
from apps.suppliers.services import create_supplier
from apps.warehouses.models import Warehouse

User = get_user_model()


class PurchaseReturnTransitionTests(SimpleTestCase):
    def test_validity_matches_table(self):
        for source in PurchaseReturnStatus:
            for target in PurchaseReturnStatus:
                expected = target in PURCHASE_RETURN_TRANSITIONS[source]
                self.assertEqual(is_transition_valid(PURCHASE_RETURN_TRANSITIONS, source, target), expected)

    def test_processed_and_cancelled_are_terminal(self):
        self.assertEqual(PURCHASE_RETURN_TRANSITIONS[PurchaseReturnStatus.PROCESSED], frozenset())
        self.assertEqual(PURCHASE_RETURN_TRANSITIONS[PurchaseReturnStatus.CANCELLED], frozenset())


class PurchaseReturnFixtureMixin:
    def create_fixtures(self):
        self.user = User.objects.create_user(username="manager", password="manager123", role="ADMIN")
        self.supplier = create_supplier({"name": "Acme Parts"})
        self.warehouse = Warehouse.objects.create(code="WH-1", name="Main")
        self.bolt = Product.objects.create(sku="BOLT-10", name="Bolt")
        self.nut = Product.objects.create(sku="NUT-10", name="Nut")
        self.cash = cash_account()

    def draft_order(self):
        return create_purchase_order(
            {
                "supplier_id": self.supplier.id,
                "warehouse_id": self.warehouse.id,
                "items": [
                    {"product_id": self.bolt.id, "quantity": 10, "unit_price": Decimal("100.00")},
                    {"product_id": self.nut.id, "quantity": 20, "unit_price": Decimal("2.50")},
                ],
            },
            self.user,
        )

    def approved_order(self):
        order = self.draft_order()
        update_purchase_order_status(order, PurchaseOrderStatus.SENT, user=self.user)
        return update_purchase_order_status(order, PurchaseOrderStatus.APPROVED, user=self.user)

    def received_order(self):
        return receive_all_items(self.approved_order(), self.user)

    def return_payload(self, order, **overrides):
        payload = {
            "purchase_order_id": order.id,
            "reason": "Damaged in transit",
            "items": [{"product_id": self.bolt.id, "returned_quantity": 4}],
        }
        payload.update(overrides)
        return payload

    def approved_return(self, order=None, **overrides):
        order = order or self.received_order()
        purchase_return = create_purchase_return(self.return_payload(order, **overrides), self.user)
        return approve_return(purchase_return, "ok", self.user)


class PurchaseReturnServiceTests(PurchaseReturnFixtureMixin, TestCase):
    def setUp(self):
        self.create_fixtures()

    def test_create_defaults_from_purchase_order(self):
        order = self.received_order()
        purchase_return = create_purchase_return(self.return_payload(order), self.user)
        self.assertEqual(purchase_return.status, PurchaseReturnStatus.DRAFT)
        self.assertEqual(purchase_return.supplier, self.supplier)
        self.assertEqual(purchase_return.warehouse, self.warehouse)
        self.assertEqual(purchase_return.total, Decimal("400.00"))
        item = purchase_return.items.get()
        self.assertEqual(item.price, Decimal("100.00"))
        self.assertEqual(item.purchase_order_item, order.items.get(product=self.bolt))
        self.assertTrue(
            AuditLog.objects.filter(action="purchase_return.create", entity_id=str(purchase_return.id)).exists()
        )

    def test_explicit_price_is_used_for_line_total(self):
        order = self.received_order()
        purchase_return = create_purchase_return(
            self.return_payload(
                order,
                items=[{"product_id": self.nut.id, "returned_quantity": 3, "price": Decimal("2.10")}],
            ),
            self.user,
        )
        self.assertEqual(purchase_return.total, Decimal("6.30"))

    def test_return_requires_fully_received_order(self):
        order = self.approved_order()
        with self.assertRaises(BadRequest):
            create_purchase_return(self.return_payload(order), self.user)
        self.assertFalse(PurchaseReturn.objects.exists())

    def test_return_against_unknown_order_is_not_found(self):
        with self.assertRaises(NotFound) as ctx:
            create_purchase_return({"purchase_order_id": 999, "items": []}, self.user)
        self.assertEqual(ctx.exception.detail, "Purchase order with ID 999 not found")

    def test_product_must_belong_to_purchase(self):
        order = self.received_order()
        other = Product.objects.create(sku="WASHER-1", name="Washer")
        with self.assertRaises(BadRequest) as ctx:
            create_purchase_return(
                self.return_payload(order, items=[{"product_id": other.id, "returned_quantity": 1}]),
                self.user,
            )
        self.assertEqual(ctx.exception.detail, f"Product ID {other.id} not found in original purchase")

    def test_cannot_return_more_than_purchased(self):
        order = self.received_order()
        with self.assertRaises(BadRequest) as ctx:
            create_purchase_return(
                self.return_payload(order, items=[{"product_id": self.bolt.id, "returned_quantity": 11}]),
                self.user,
            )
        self.assertEqual(ctx.exception.code, "return_quantity_exceeded")

    def test_committed_returns_reduce_returnable_quantity(self):
        order = self.received_order()
        self.approved_return(order, items=[{"product_id": self.bolt.id, "returned_quantity": 7}])
        with self.assertRaises(BadRequest) as ctx:
            create_purchase_return(
                self.return_payload(order, items=[{"product_id": self.bolt.id, "returned_quantity": 4}]),
                self.user,
            )
        self.assertEqual(
            ctx.exception.detail,
            f"Cannot return 4 units of product {self.bolt.id}. Original purchase: 10, Already returned: 7",
        )

    def test_approve_revalidates_competing_drafts(self):
        order = self.received_order()
        first = create_purchase_return(
            self.return_payload(order, items=[{"product_id": self.bolt.id, "returned_quantity": 6}]), self.user
        )
        second = create_purchase_return(
            self.return_payload(order, items=[{"product_id": self.bolt.id, "returned_quantity": 6}]), self.user
        )
        approve_return(first, "", self.user)
        with self.assertRaises(BadRequest):
            approve_return(second, "", self.user)
        second.refresh_from_db()
        self.assertEqual(second.status, PurchaseReturnStatus.DRAFT)

    def test_cancelled_returns_do_not_count(self):
        order = self.received_order()
        cancel_return(self.approved_return(order, items=[{"product_id": self.bolt.id, "returned_quantity": 10}]))
        purchase_return = create_purchase_return(
            self.return_payload(order, items=[{"product_id": self.bolt.id, "returned_quantity": 10}]), self.user
        )
        self.assertEqual(purchase_return.total, Decimal("1000.00"))

    def test_duplicate_return_number_is_rejected(self):
        order = self.received_order()
        create_purchase_return(self.return_payload(order, return_no="PR-X-1"), self.user)
        with self.assertRaises(BadRequest) as ctx:
            create_purchase_return(self.return_payload(order, return_no="PR-X-1"), self.user)
        self.assertEqual(ctx.exception.code, "duplicate_return_no")

    def test_return_numbers_count_this_year(self):
        year = date.today().year
        self.assertEqual(next_return_number(), f"PR-{year}-001")
        order = self.received_order()
        create_purchase_return(self.return_payload(order), self.user)
        create_purchase_return(self.return_payload(order, return_no=f"PR-{year}-003"), self.user)
        self.assertEqual(next_return_number(), f"PR-{year}-004")

    def test_update_replaces_items_in_draft(self):
        order = self.received_order()
        purchase_return = create_purchase_return(self.return_payload(order), self.user)
        purchase_return = update_purchase_return(
            purchase_return,
            {"reason": "Wrong size", "items": [{"product_id": self.nut.id, "returned_quantity": 8}]},
        )
        self.assertEqual(purchase_return.reason, "Wrong size")
        self.assertEqual(purchase_return.total, Decimal("20.00"))
        self.assertEqual(list(purchase_return.items.values_list("product_id", flat=True)), [self.nut.id])

    def test_update_outside_draft_is_rejected(self):
        purchase_return = self.approved_return()
        with self.assertRaises(BadRequest):
            update_purchase_return(purchase_return, {"reason": "late"})

    def test_approve_stamps_approver(self):
        purchase_return = self.approved_return()
        self.assertEqual(purchase_return.status, PurchaseReturnStatus.APPROVED)
        self.assertEqual(purchase_return.approved_by, self.user)
        self.assertEqual(purchase_return.approval_notes, "ok")
        self.assertIsNotNone(purchase_return.approved_at)

    def test_approving_twice_is_an_invalid_transition(self):
        purchase_return = self.approved_return()
        with self.assertRaises(BadRequest) as ctx:
            approve_return(purchase_return, "", self.user)
        self.assertEqual(ctx.exception.code, "invalid_transition")

    def test_process_with_immediate_refund(self):
        purchase_return = self.approved_return()
        payable = self.supplier_payable()
        outcome = process_return(
            purchase_return,
            {
                "refund_to_supplier": True,
                "refund_later": False,
                "refund_amount": Decimal("400.00"),
                "refund_payment_method": "bank transfer",
                "refund_reference": "TRX-1",
            },
            self.user,
        )
        purchase_return.refresh_from_db()
        self.assertEqual(purchase_return.status, PurchaseReturnStatus.PROCESSED)
        self.assertTrue(purchase_return.refund_to_supplier)
        self.assertEqual(purchase_return.refund_amount, Decimal("400.00"))
        self.assertEqual(purchase_return.debit_account_code, self.cash.code)
        self.assertEqual(purchase_return.processed_by, self.user)
        self.assertTrue(outcome.refund_processed)
        self.assertEqual(outcome.total_amount, Decimal("400.00"))
        self.assertEqual(outcome.supplier_account, payable.code)

        self.assertEqual(len(transactions_for("supplier_refund", purchase_return.id)), 1)
        reversal = transactions_for("purchase_return", purchase_return.id)
        self.assertEqual(len(reversal), 1)
        debit = reversal[0].entries.get(debit__gt=0)
        self.assertEqual(debit.account, payable)
        self.assertEqual(debit.debit, Decimal("400.00"))

        batch = InventoryBatch.objects.get(product=self.bolt, warehouse=self.warehouse)
        self.assertEqual(batch.quantity, 6)
        movement = StockMovement.objects.get(movement_type=MovementType.OUT, reference_type="purchase_return")
        self.assertEqual(movement.quantity, 4)
        self.assertEqual(movement.note, f"Stock returned to supplier - Purchase Return {purchase_return.return_no}")

    def test_process_without_refund_only_reverses_payable(self):
        purchase_return = self.approved_return()
        payable = self.supplier_payable()
        before = account_balance(payable)
        outcome = process_return(purchase_return, {}, self.user)
        purchase_return.refresh_from_db()
        self.assertFalse(purchase_return.refund_to_supplier)
        self.assertFalse(outcome.refund_processed)
        self.assertFalse(transactions_for("supplier_refund", purchase_return.id).exists())
        self.assertEqual(account_balance(payable), before + Decimal("400.00"))

    def test_insufficient_stock_rolls_back_processing(self):
        purchase_return = self.approved_return()
        InventoryBatch.objects.filter(product=self.bolt, warehouse=self.warehouse).update(quantity=2)
        transactions_before = LedgerTransaction.objects.count()
        with self.assertRaises(BadRequest) as ctx:
            process_return(
                purchase_return,
                {"refund_to_supplier": True, "refund_amount": Decimal("400.00")},
                self.user,
            )
        self.assertEqual(ctx.exception.code, "insufficient_inventory")
        purchase_return.refresh_from_db()
        self.assertEqual(purchase_return.status, PurchaseReturnStatus.APPROVED)
        self.assertEqual(InventoryBatch.objects.get(product=self.bolt, warehouse=self.warehouse).quantity, 2)
        self.assertFalse(StockMovement.objects.filter(movement_type=MovementType.OUT).exists())
        self.assertEqual(LedgerTransaction.objects.count(), transactions_before)

    def test_refund_cannot_exceed_total(self):
        purchase_return = self.approved_return()
        with self.assertRaises(BadRequest) as ctx:
            process_return(
                purchase_return,
                {"refund_to_supplier": True, "refund_amount": Decimal("400.01")},
                self.user,
            )
        self.assertEqual(ctx.exception.code, "refund_exceeds_total")
        self.assertEqual(InventoryBatch.objects.get(product=self.bolt, warehouse=self.warehouse).quantity, 10)

    def test_refund_debit_account_must_be_an_asset(self):
        purchase_return = self.approved_return()
        payable = self.supplier_payable()
        with self.assertRaises(BadRequest) as ctx:
            process_return(
                purchase_return,
                {"refund_to_supplier": True, "debit_account_code": payable.code},
                self.user,
            )
        self.assertEqual(ctx.exception.code, "invalid_debit_account")

        with self.assertRaises(BadRequest):
            process_return(
                purchase_return,
                {"refund_to_supplier": True, "debit_account_code": "ASSET.MISSING"},
                self.user,
            )

    def test_supplier_without_account_cannot_process(self):
        purchase_return = self.approved_return()
        Supplier.objects.filter(pk=self.supplier.pk).update(account=None)
        with self.assertRaises(BadRequest) as ctx:
            process_return(purchase_return, {}, self.user)
        self.assertEqual(ctx.exception.detail, 'Supplier "Acme Parts" has no chart of account assigned.')

    def test_deferred_refund_is_settled_once(self):
        purchase_return = self.approved_return()
        outcome = process_return(
            purchase_return,
            {"refund_to_supplier": True, "refund_later": True, "processing_notes": "Truck left"},
            self.user,
        )
        self.assertTrue(outcome.refund_later)
        self.assertFalse(outcome.refund_processed)
        purchase_return.refresh_from_db()
        self.assertFalse(purchase_return.refund_to_supplier)
        self.assertEqual(purchase_return.processing_notes, "Truck left\n(Refund to be processed later)")
        self.assertEqual(refund_history(purchase_return), [])

        refund = process_refund(
            purchase_return,
            {"refund_amount": Decimal("150.00"), "payment_method": "cash", "refund_reference": "R-9"},
            self.user,
        )
        self.assertEqual(refund.refund_amount, Decimal("150.00"))
        self.assertEqual(refund.debit_account, self.cash.code)
        purchase_return.refresh_from_db()
        self.assertTrue(purchase_return.refund_to_supplier)
        self.assertTrue(purchase_return.processing_notes.endswith("\nRefund processed later"))

        history = refund_history(purchase_return)
        self.assertEqual(len(history), 1)
        self.assertEqual(history[0].amount, Decimal("150.00"))
        self.assertEqual(history[0].debit_account_code, self.cash.code)
        self.assertEqual(history[0].credit_account_code, self.supplier_payable().code)

        with self.assertRaises(BadRequest) as ctx:
            process_refund(purchase_return, {}, self.user)
        self.assertEqual(ctx.exception.code, "already_refunded")

    def test_refund_requires_processed_return(self):
        purchase_return = self.approved_return()
        with self.assertRaises(BadRequest):
            process_refund(purchase_return, {}, self.user)

    def test_cancel_rules(self):
        draft = create_purchase_return(self.return_payload(self.received_order()), self.user)
        self.assertEqual(cancel_return(draft).status, PurchaseReturnStatus.CANCELLED)

        processed = self.approved_return()
        process_return(processed, {}, self.user)
        with self.assertRaises(BadRequest) as ctx:
            cancel_return(processed)
        self.assertEqual(ctx.exception.code, "invalid_transition")

    def test_zero_total_return_can_be_refunded_immediately(self):
        order = self.received_order()
        purchase_return = create_purchase_return(
            self.return_payload(
                order,
                items=[{"product_id": self.bolt.id, "returned_quantity": 1, "price": Decimal("0")}],
            ),
            self.user,
        )
        purchase_return = approve_return(purchase_return, "", self.user)
        outcome = process_return(purchase_return, {"refund_to_supplier": True, "refund_later": False}, self.user)
        self.assertEqual(outcome.refund_amount, Decimal("0.00"))
        purchase_return.refresh_from_db()
        self.assertEqual(purchase_return.status, PurchaseReturnStatus.PROCESSED)
        self.assertTrue(purchase_return.refund_to_supplier)
        self.assertEqual(purchase_return.refund_amount, Decimal("0.00"))
        self.assertFalse(transactions_for("supplier_refund", purchase_return.id).exists())
        self.assertFalse(transactions_for("purchase_return", purchase_return.id).exists())
        self.assertEqual(InventoryBatch.objects.get(product=self.bolt, warehouse=self.warehouse).quantity, 9)

    def test_deferred_refund_validates_amount_and_account(self):
        purchase_return = self.approved_return()
        process_return(purchase_return, {"refund_to_supplier": True, "refund_later": True}, self.user)

        with self.assertRaises(BadRequest) as ctx:
            process_refund(purchase_return, {"refund_amount": Decimal("400.01")}, self.user)
        self.assertEqual(ctx.exception.code, "refund_exceeds_total")

        with self.assertRaises(BadRequest) as ctx:
            process_refund(purchase_return, {"debit_account_code": self.supplier_payable().code}, self.user)
        self.assertEqual(ctx.exception.code, "invalid_debit_account")

        with self.assertRaises(BadRequest) as ctx:
            process_refund(purchase_return, {"debit_account_code": "ASSET.MISSING"}, self.user)
        self.assertEqual(ctx.exception.code, "invalid_debit_account")

        purchase_return.refresh_from_db()
        self.assertFalse(purchase_return.refund_to_supplier)
        self.assertFalse(transactions_for("supplier_refund", purchase_return.id).exists())

    def supplier_payable(self):
        self.supplier.refresh_from_db()
        return self.supplier.account


class PurchaseReturnApiTests(PurchaseReturnFixtureMixin, APITestCase):
    def setUp(self):
        self.create_fixtures()
        User.objects.create_user(username="storekeeper", password="store123", role="WAREHOUSE")
        User.objects.create_user(username="accountant", password="acct123", role="ACCOUNTANT")

    def auth_as(self, username, password):
        response = self.client.post(
            "/api/v1/auth/token/",
            {"username": username, "password": password},
            format="json",
        )
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['access']}")

    def api_payload(self, order):
        return {
            "purchase_order_id": order.id,
            "reason": "Damaged",
            "items": [{"product_id": self.bolt.id, "returned_quantity": 2}],
        }

    def test_create_and_retrieve(self):
        order = self.received_order()
        self.auth_as("manager", "manager123")
        response = self.client.post("/api/v1/purchase-returns/", self.api_payload(order), format="json")
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["total"], "200.00")
        self.assertEqual(response.data["po_no"], order.po_no)
        self.assertEqual(response.data["refund_history"], [])

        detail = self.client.get(f"/api/v1/purchase-returns/{response.data['id']}/")
        self.assertEqual(detail.status_code, 200)
        self.assertEqual(len(detail.data["items"]), 1)

    def test_create_against_open_order_returns_400(self):
        order = self.approved_order()
        self.auth_as("manager", "manager123")
        response = self.client.post("/api/v1/purchase-returns/", self.api_payload(order), format="json")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["code"], "invalid_state")

    def test_workflow_across_roles(self):
        order = self.received_order()
        purchase_return = create_purchase_return(self.api_payload(order), self.user)

        self.auth_as("storekeeper", "store123")
        response = self.client.post(f"/api/v1/purchase-returns/{purchase_return.id}/approve/", {}, format="json")
        self.assertEqual(response.status_code, 403)

        self.auth_as("accountant", "acct123")
        response = self.client.post(
            f"/api/v1/purchase-returns/{purchase_return.id}/approve/",
            {"approval_notes": "checked"},
            format="json",
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["status"], PurchaseReturnStatus.APPROVED)

        self.auth_as("storekeeper", "store123")
        response = self.client.post(
            f"/api/v1/purchase-returns/{purchase_return.id}/process/",
            {"refund_to_supplier": True, "refund_later": True},
            format="json",
        )
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.data["refund_later"])
        self.assertEqual(response.data["total_amount"], "200.00")

        self.auth_as("accountant", "acct123")
        response = self.client.post(
            f"/api/v1/purchase-returns/{purchase_return.id}/refund/",
            {"payment_method": "cash"},
            format="json",
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["refund_amount"], "200.00")

        detail = self.client.get(f"/api/v1/purchase-returns/{purchase_return.id}/")
        self.assertEqual(len(detail.data["refund_history"]), 1)
        self.assertEqual(detail.data["refund_history"][0]["amount"], "200.00")

    def test_list_filters_by_status(self):
        order = self.received_order()
        create_purchase_return(self.api_payload(order), self.user)
        self.approved_return(order)
        self.auth_as("manager", "manager123")
        response = self.client.get("/api/v1/purchase-returns/?status=approved")
        self.assertEqual(response.data["count"], 1)
        response = self.client.get(f"/api/v1/purchase-returns/?purchase_order={order.id}")
        self.assertEqual(response.data["count"], 2)

    def test_cancel_endpoint(self):
        purchase_return = create_purchase_return(self.api_payload(self.received_order()), self.user)
        self.auth_as("manager", "manager123")
        response = self.client.post(f"/api/v1/purchase-returns/{purchase_return.id}/cancel/", {}, format="json")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["status"], PurchaseReturnStatus.CANCELLED)

    def test_workflow_actions_ignore_list_filters(self):
        purchase_return = create_purchase_return(self.api_payload(self.received_order()), self.user)
        self.auth_as("manager", "manager123")
        response = self.client.post(
            f"/api/v1/purchase-returns/{purchase_return.id}/approve/?status=draft&purchase_order=999",
            {},
            format="json",
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["status"], PurchaseReturnStatus.APPROVED)

    def test_refund_history_is_only_on_detail(self):
        purchase_return = create_purchase_return(self.api_payload(self.received_order()), self.user)
        self.auth_as("manager", "manager123")
        response = self.client.get("/api/v1/purchase-returns/")
        self.assertNotIn("refund_history", response.data["results"][0])
        response = self.client.get(f"/api/v1/purchase-returns/{purchase_return.id}/")
        self.assertEqual(response.data["refund_history"], [])
