from rest_framework import viewsets

from apps.common.permissions import RolePermission
from apps.ledger.models import Account, LedgerTransaction
from apps.ledger.serializers import AccountSerializer, LedgerTransactionSerializer

TRUTHY = {"1", "true", "yes"}


class AccountViewSet(viewsets.ReadOnlyModelViewSet):
    serializer_class = AccountSerializer
    permission_classes = [RolePermission]
    capability_map = {
        "list": ["ledger.view"],
        "retrieve": ["ledger.view"],
    }

    def get_queryset(self):
        queryset = Account.objects.filter(is_active=True)
        account_type = self.request.query_params.get("type")
        is_cash = self.request.query_params.get("is_cash")
        is_bank = self.request.query_params.get("is_bank")
        if account_type:
            queryset = queryset.filter(account_type=account_type)
        if is_cash is not None:
            queryset = queryset.filter(is_cash=is_cash.strip().lower() in TRUTHY)
        if is_bank is not None:
            queryset = queryset.filter(is_bank=is_bank.strip().lower() in TRUTHY)
        return queryset


class LedgerTransactionViewSet(viewsets.ReadOnlyModelViewSet):
    serializer_class = LedgerTransactionSerializer
    permission_classes = [RolePermission]
    capability_map = {
        "list": ["ledger.view"],
        "retrieve": ["ledger.view"],
    }

    def get_queryset(self):
        queryset = LedgerTransaction.objects.prefetch_related("entries__account")
        reference_type = self.request.query_params.get("reference_type")
        reference_id = self.request.query_params.get("reference_id")
        account_code = self.request.query_params.get("account_code")
        if reference_type:
            queryset = queryset.filter(reference_type=reference_type)
        if reference_id:
            queryset = queryset.filter(reference_id=reference_id)
        if account_code:
            queryset = queryset.filter(entries__account__code=account_code).distinct()
        return queryset
