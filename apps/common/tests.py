from io import StringIO

from django.contrib.auth import get_user_model
from django.core.management import CommandError, call_command
from django.test import SimpleTestCase, TestCase
from rest_framework.test import APIRequestFactory

from apps.common.exceptions import BadRequest, NotFound, api_exception_handler, get_object_or_not_found
from apps.common.permissions import RolePermission, has_capabilities
from apps.common.transitions import ensure_transition, is_transition_valid
from apps.warehouses.models import Warehouse

User = get_user_model()

TABLE = {
    "A": frozenset({"B"}),
    "B": frozenset(),
}


class TransitionTests(SimpleTestCase):
    def test_self_transition_is_never_valid(self):
        self.assertFalse(is_transition_valid(TABLE, "A", "A"))
        self.assertFalse(is_transition_valid(TABLE, "B", "B"))

    def test_unknown_state_has_no_transitions(self):
        self.assertFalse(is_transition_valid(TABLE, "Z", "A"))

    def test_ensure_transition_names_both_states(self):
        with self.assertRaises(BadRequest) as ctx:
            ensure_transition(TABLE, "B", "A")
        self.assertEqual(ctx.exception.code, "invalid_transition")
        self.assertIn("B", ctx.exception.detail)
        self.assertIn("A", ctx.exception.detail)


class ExceptionHandlerTests(SimpleTestCase):
    def test_domain_errors_use_the_api_envelope(self):
        response = api_exception_handler(NotFound("Supplier with ID 9 not found"), {})
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.data, {"code": "not_found", "detail": "Supplier with ID 9 not found", "fields": {}})

        response = api_exception_handler(BadRequest("nope", code="insufficient_inventory", fields={"product_id": 3}), {})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["code"], "insufficient_inventory")
        self.assertEqual(response.data["fields"], {"product_id": 3})


class LookupTests(TestCase):
    def test_get_object_or_not_found(self):
        warehouse = Warehouse.objects.create(code="WH-1", name="Main")
        self.assertEqual(get_object_or_not_found(Warehouse, warehouse.id, "Warehouse"), warehouse)
        with self.assertRaises(NotFound) as ctx:
            get_object_or_not_found(Warehouse, warehouse.id + 100, "Warehouse")
        self.assertEqual(ctx.exception.detail, f"Warehouse with ID {warehouse.id + 100} not found")


class RolePermissionTests(TestCase):
    def test_capabilities_follow_role(self):
        factory = APIRequestFactory()
        warehouse_user = User.objects.create_user(username="wh", password="wh123", role="WAREHOUSE")

        class View:
            action = "approve"
            capability_map = {"approve": ["purchases.approve"], "receive": ["purchases.receive"]}

        request = factory.post("/")
        request.user = warehouse_user
        view = View()
        self.assertFalse(RolePermission().has_permission(request, view))
        view.action = "receive"
        self.assertTrue(RolePermission().has_permission(request, view))

    def test_group_membership_overrides_role_field(self):
        user = User.objects.create_user(username="acct", password="acct123", role="PURCHASING")
        call_command("seed_roles", "--assign", "acct", "accountant", stdout=StringIO())
        user.refresh_from_db()
        self.assertEqual(user.role, "ACCOUNTANT")
        self.assertTrue(has_capabilities(user, "returns.refund", "ledger.view"))
        self.assertFalse(has_capabilities(user, "purchases.manage"))

    def test_seed_roles_rejects_unknown_role(self):
        User.objects.create_user(username="someone", password="x12345")
        with self.assertRaises(CommandError):
            call_command("seed_roles", "--assign", "someone", "cashier", stdout=StringIO())
