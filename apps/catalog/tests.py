from django.contrib.auth import get_user_model
from rest_framework.test import APITestCase

from apps.audit.models import AuditLog
from apps.catalog.models import Product

User = get_user_model()


class CatalogApiTests(APITestCase):
    def setUp(self):
        self.admin = User.objects.create_user(username="admin", password="admin123", role="ADMIN")
        self.warehouse = User.objects.create_user(username="storekeeper", password="store123", role="WAREHOUSE")

    def auth_as(self, username, password):
        response = self.client.post(
            "/api/v1/auth/token/",
            {"username": username, "password": password},
            format="json",
        )
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['access']}")

    def test_product_create_normalizes_sku_and_is_audited(self):
        self.auth_as("admin", "admin123")
        response = self.client.post("/api/v1/products/", {"sku": " cab-001 ", "name": "Cable"}, format="json")
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["sku"], "CAB-001")
        self.assertTrue(AuditLog.objects.filter(action="catalog.product.create", entity_id=str(response.data["id"])).exists())

    def test_duplicate_sku_is_rejected(self):
        Product.objects.create(sku="CAB-001", name="Cable")
        self.auth_as("admin", "admin123")
        response = self.client.post("/api/v1/products/", {"sku": "cab-001", "name": "Other"}, format="json")
        self.assertEqual(response.status_code, 400)
        self.assertIn("sku", response.data["fields"])

    def test_warehouse_role_can_list_but_not_create(self):
        Product.objects.create(sku="CAB-002", name="Cable largo")
        self.auth_as("storekeeper", "store123")
        self.assertEqual(self.client.get("/api/v1/products/?q=largo").data["count"], 1)
        response = self.client.post("/api/v1/products/", {"sku": "X-1", "name": "X"}, format="json")
        self.assertEqual(response.status_code, 403)
