from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.management import call_command
from django.test import TestCase
from rest_framework.test import APITestCase

from apps.common.exceptions import BadRequest, NotFound
from apps.ledger.models import Account, AccountType, LedgerTransaction
from apps.ledger.services import (
    account_balance,
    cash_account,
    create_transaction,
    get_or_create_supplier_account,
    inventory_account,
)

User = get_user_model()


class LedgerServiceTests(TestCase):
    def setUp(self):
        self.inventory = inventory_account()
        self.cash = cash_account()

    def test_balanced_transaction_is_posted(self):
        tx = create_transaction(
            "purchase_receive",
            12,
            [
                {"account_code": "ASSET.INVENTORY", "debit": Decimal("150.50"), "credit": 0},
                {"account_code": "ASSET.CASH", "debit": 0, "credit": Decimal("150.50")},
            ],
        )
        self.assertEqual(tx.reference_id, "12")
        self.assertEqual(tx.entries.count(), 2)
        self.assertEqual(account_balance(self.inventory), Decimal("150.50"))
        self.assertEqual(account_balance(self.cash), Decimal("-150.50"))

    def test_unbalanced_transaction_is_rejected(self):
        with self.assertRaises(BadRequest) as ctx:
            create_transaction(
                "purchase_receive",
                1,
                [
                    {"account_code": "ASSET.INVENTORY", "debit": 100, "credit": 0},
                    {"account_code": "ASSET.CASH", "debit": 0, "credit": 90},
                ],
            )
        self.assertEqual(ctx.exception.code, "unbalanced_transaction")
        self.assertEqual(LedgerTransaction.objects.count(), 0)

    def test_empty_and_negative_entries_are_rejected(self):
        with self.assertRaises(BadRequest):
            create_transaction("purchase_receive", 1, [])
        with self.assertRaises(BadRequest):
            create_transaction(
                "purchase_receive",
                1,
                [
                    {"account_code": "ASSET.INVENTORY", "debit": -5, "credit": 0},
                    {"account_code": "ASSET.CASH", "debit": 0, "credit": -5},
                ],
            )

    def test_missing_account_raises_not_found(self):
        with self.assertRaises(NotFound) as ctx:
            create_transaction(
                "purchase_receive",
                1,
                [
                    {"account_code": "ASSET.NOPE", "debit": 10, "credit": 0},
                    {"account_code": "ASSET.CASH", "debit": 0, "credit": 10},
                ],
            )
        self.assertIn("ASSET.NOPE", ctx.exception.detail)

    def test_supplier_accounts_are_numbered_from_2002(self):
        first = get_or_create_supplier_account(1, "Acme")
        second = get_or_create_supplier_account(2, "Globex")
        again = get_or_create_supplier_account(1, "Acme renamed")

        self.assertEqual(first.code, "LIABILITY.SUPPLIER.1")
        self.assertEqual(first.account_type, AccountType.LIABILITY)
        self.assertEqual(first.account_number, "2002")
        self.assertEqual(second.account_number, "2003")
        self.assertEqual(again.pk, first.pk)
        self.assertEqual(again.name, "Supplier - Acme")

    def test_seed_accounts_is_idempotent(self):
        call_command("seed_accounts")
        call_command("seed_accounts")
        self.assertEqual(Account.objects.filter(code__in=["ASSET.CASH", "ASSET.INVENTORY"]).count(), 2)


class LedgerApiTests(APITestCase):
    def setUp(self):
        User.objects.create_user(username="accountant", password="acc123", role="ACCOUNTANT")
        User.objects.create_user(username="storekeeper", password="store123", role="WAREHOUSE")
        inventory_account()
        cash_account()
        get_or_create_supplier_account(5, "Acme")
        create_transaction(
            "purchase_receive",
            3,
            [
                {"account_code": "ASSET.INVENTORY", "debit": 40, "credit": 0},
                {"account_code": "LIABILITY.SUPPLIER.5", "debit": 0, "credit": 40},
            ],
        )

    def auth_as(self, username, password):
        response = self.client.post(
            "/api/v1/auth/token/",
            {"username": username, "password": password},
            format="json",
        )
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['access']}")

    def test_accounts_filter_by_type_and_cash_flag(self):
        self.auth_as("accountant", "acc123")
        response = self.client.get("/api/v1/ledger/accounts/?type=liability")
        self.assertEqual(response.status_code, 200)
        self.assertEqual([row["code"] for row in response.data["results"]], ["LIABILITY.SUPPLIER.5"])

        response = self.client.get("/api/v1/ledger/accounts/?is_cash=true")
        self.assertEqual([row["code"] for row in response.data["results"]], ["ASSET.CASH"])

    def test_transactions_filter_by_reference_and_account(self):
        self.auth_as("accountant", "acc123")
        response = self.client.get("/api/v1/ledger/transactions/?reference_type=purchase_receive&reference_id=3")
        self.assertEqual(response.data["count"], 1)
        entries = response.data["results"][0]["entries"]
        self.assertEqual({entry["account_code"] for entry in entries}, {"ASSET.INVENTORY", "LIABILITY.SUPPLIER.5"})

        response = self.client.get("/api/v1/ledger/transactions/?account_code=ASSET.CASH")
        self.assertEqual(response.data["count"], 0)

    def test_warehouse_role_cannot_read_ledger(self):
        self.auth_as("storekeeper", "store123")
        self.assertEqual(self.client.get("/api/v1/ledger/accounts/").status_code, 403)
