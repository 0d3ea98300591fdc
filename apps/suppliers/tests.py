from django.contrib.auth import get_user_model
from rest_framework.test import APITestCase

from apps.audit.models import AuditLog
from apps.ledger.models import AccountType
from apps.suppliers.models import Supplier
from apps.suppliers.services import create_supplier, next_supplier_code

User = get_user_model()


class SupplierApiTests(APITestCase):
    def setUp(self):
        User.objects.create_user(username="buyer", password="buyer123", role="PURCHASING")
        User.objects.create_user(username="storekeeper", password="store123", role="WAREHOUSE")

    def auth_as(self, username, password):
        response = self.client.post(
            "/api/v1/auth/token/",
            {"username": username, "password": password},
            format="json",
        )
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['access']}")

    def test_create_provisions_payable_account(self):
        self.auth_as("buyer", "buyer123")
        response = self.client.post(
            "/api/v1/suppliers/",
            {"name": "Acme Parts", "contact_person": "Ana", "phone": "555-0101"},
            format="json",
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["code"], "SUP-001")

        supplier = Supplier.objects.get(pk=response.data["id"])
        self.assertEqual(supplier.account.code, f"LIABILITY.SUPPLIER.{supplier.id}")
        self.assertEqual(supplier.account.account_type, AccountType.LIABILITY)
        self.assertEqual(supplier.account.name, "Supplier - Acme Parts")
        self.assertEqual(response.data["account_code"], supplier.account.code)
        self.assertTrue(AuditLog.objects.filter(action="supplier.create", entity_id=str(supplier.id)).exists())

    def test_duplicate_name_is_rejected(self):
        create_supplier({"name": "Acme Parts"})
        self.auth_as("buyer", "buyer123")
        response = self.client.post("/api/v1/suppliers/", {"name": "acme parts"}, format="json")
        self.assertEqual(response.status_code, 400)
        self.assertIn("name", response.data["fields"])

    def test_warehouse_role_can_list_but_not_create(self):
        create_supplier({"name": "Acme Parts"})
        self.auth_as("storekeeper", "store123")
        self.assertEqual(self.client.get("/api/v1/suppliers/").data["count"], 1)
        response = self.client.post("/api/v1/suppliers/", {"name": "Globex"}, format="json")
        self.assertEqual(response.status_code, 403)

    def test_supplier_codes_increment(self):
        create_supplier({"name": "First"})
        create_supplier({"name": "Second", "code": "SUP-007"})
        self.assertEqual(next_supplier_code(), "SUP-008")
