from django.contrib.auth import get_user_model
from rest_framework.test import APITestCase

from apps.warehouses.models import Warehouse

User = get_user_model()


class WarehouseApiTests(APITestCase):
    def setUp(self):
        User.objects.create_user(username="storekeeper", password="store123", role="WAREHOUSE")
        token = self.client.post(
            "/api/v1/auth/token/",
            {"username": "storekeeper", "password": "store123"},
            format="json",
        ).data["access"]
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {token}")

    def test_list_hides_inactive_warehouses(self):
        Warehouse.objects.create(code="WH-A", name="Central")
        Warehouse.objects.create(code="WH-B", name="Closed", is_active=False)

        response = self.client.get("/api/v1/warehouses/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual([row["code"] for row in response.data["results"]], ["WH-A"])
