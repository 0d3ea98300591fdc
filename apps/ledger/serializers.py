from rest_framework import serializers

from apps.ledger.models import Account, LedgerEntry, LedgerTransaction


class AccountSerializer(serializers.ModelSerializer):
    class Meta:
        model = Account
        fields = ["id", "code", "name", "account_type", "account_number", "is_cash", "is_bank", "is_active"]
        read_only_fields = fields


class LedgerEntrySerializer(serializers.ModelSerializer):
    account_code = serializers.CharField(source="account.code", read_only=True)
    account_name = serializers.CharField(source="account.name", read_only=True)

    class Meta:
        model = LedgerEntry
        fields = ["id", "account_code", "account_name", "debit", "credit", "narration"]
        read_only_fields = fields


class LedgerTransactionSerializer(serializers.ModelSerializer):
    entries = LedgerEntrySerializer(many=True, read_only=True)

    class Meta:
        model = LedgerTransaction
        fields = ["id", "reference_type", "reference_id", "created_at", "entries"]
        read_only_fields = fields
