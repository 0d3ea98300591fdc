from datetime import date
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase
from rest_framework.test import APITestCase

from apps.catalog.models import Product
from apps.common.exceptions import BadRequest
from apps.inventory.models import InventoryBatch, MovementType, StockMovement
from apps.inventory.services import issue_stock, next_batch_number, receive_stock, stock_on_hand
from apps.warehouses.models import Warehouse

User = get_user_model()


class InventoryServiceTests(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(username="storekeeper", password="store123", role="WAREHOUSE")
        self.product = Product.objects.create(sku="BOLT-10", name="Bolt")
        self.warehouse = Warehouse.objects.create(code="WH-1", name="Main")

    def receive(self, quantity, price="2.50"):
        return receive_stock(
            self.product,
            self.warehouse,
            quantity,
            Decimal(price),
            self.user,
            "Stock received from Purchase Order PO-2026-001",
            "purchase_order",
            1,
            supplier_name="Acme",
        )

    def test_first_receipt_creates_numbered_batch(self):
        batch = self.receive(10)
        self.assertTrue(batch.batch_no.startswith(f"BATCH-{self.product.id}-{self.warehouse.id}-"))
        self.assertTrue(batch.batch_no.endswith("-001"))
        self.assertEqual(batch.supplier_name, "Acme")
        movement = StockMovement.objects.get()
        self.assertEqual(movement.movement_type, MovementType.IN)
        self.assertEqual(movement.quantity, 10)
        self.assertEqual(movement.created_by, self.user)

    def test_second_receipt_tops_up_batch_and_takes_latest_price(self):
        self.receive(10)
        batch = self.receive(5, price="3.00")
        self.assertEqual(InventoryBatch.objects.count(), 1)
        self.assertEqual(batch.quantity, 15)
        self.assertEqual(batch.purchase_price, Decimal("3.00"))
        self.assertEqual(stock_on_hand(self.product, self.warehouse), 15)

    def test_batch_numbers_advance_per_day(self):
        today = date(2026, 3, 4)
        prefix = f"BATCH-{self.product.id}-{self.warehouse.id}-260304-"
        self.assertEqual(next_batch_number(self.product.id, self.warehouse.id, today), f"{prefix}001")
        InventoryBatch.objects.create(product=self.product, warehouse=self.warehouse, batch_no=f"{prefix}001")
        InventoryBatch.objects.create(product=self.product, warehouse=self.warehouse, batch_no=f"{prefix}002")
        self.assertEqual(next_batch_number(self.product.id, self.warehouse.id, today), f"{prefix}003")
        self.assertEqual(
            next_batch_number(self.product.id, self.warehouse.id, date(2026, 3, 5)),
            f"BATCH-{self.product.id}-{self.warehouse.id}-260305-001",
        )

    def test_issue_stock_decrements_and_logs_out_movement(self):
        self.receive(10)
        batch = issue_stock(self.product, self.warehouse, 4, self.user, "Returned", "purchase_return", 9)
        self.assertEqual(batch.quantity, 6)
        self.assertTrue(StockMovement.objects.filter(movement_type=MovementType.OUT, quantity=4, reference_id="9").exists())

    def test_issue_stock_rejects_shortage(self):
        self.receive(3)
        with self.assertRaises(BadRequest) as ctx:
            issue_stock(self.product, self.warehouse, 4, self.user, "Returned", "purchase_return", 9)
        self.assertEqual(ctx.exception.code, "insufficient_inventory")
        self.assertEqual(stock_on_hand(self.product), 3)

    def test_issue_stock_without_batch_is_rejected(self):
        with self.assertRaises(BadRequest):
            issue_stock(self.product, self.warehouse, 1, None, "Returned", "purchase_return", 9)


class InventoryApiTests(APITestCase):
    def setUp(self):
        self.user = User.objects.create_user(username="storekeeper", password="store123", role="WAREHOUSE")
        self.product = Product.objects.create(sku="BOLT-10", name="Bolt")
        self.other = Product.objects.create(sku="NUT-10", name="Nut")
        self.warehouse = Warehouse.objects.create(code="WH-1", name="Main")
        receive_stock(self.product, self.warehouse, 7, Decimal("1.00"), self.user, "Initial", "manual", "init")
        receive_stock(self.other, self.warehouse, 2, Decimal("0.50"), self.user, "Initial", "manual", "init")
        token = self.client.post(
            "/api/v1/auth/token/",
            {"username": "storekeeper", "password": "store123"},
            format="json",
        ).data["access"]
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {token}")

    def test_batches_filter_by_product(self):
        response = self.client.get(f"/api/v1/inventory/batches/?product={self.product.id}")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["count"], 1)
        self.assertEqual(response.data["results"][0]["quantity"], 7)
        self.assertEqual(response.data["results"][0]["product_sku"], "BOLT-10")

    def test_movements_filter_by_type(self):
        response = self.client.get("/api/v1/inventory/movements/?type=in")
        self.assertEqual(response.data["count"], 2)
        response = self.client.get("/api/v1/inventory/movements/?type=OUT")
        self.assertEqual(response.data["count"], 0)

    def test_stock_summary_groups_by_location(self):
        response = self.client.get("/api/v1/inventory/stocks/")
        self.assertEqual(response.status_code, 200)
        stocks = {row["product_id"]: row["stock"] for row in response.data}
        self.assertEqual(stocks, {self.product.id: 7, self.other.id: 2})
