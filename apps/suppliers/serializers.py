from rest_framework import serializers

from apps.suppliers.models import Supplier


class SupplierSerializer(serializers.ModelSerializer):
    code = serializers.CharField(max_length=32, required=False, allow_blank=True)
    account_code = serializers.CharField(source="account.code", read_only=True, default=None)

    class Meta:
        model = Supplier
        fields = [
            "id",
            "code",
            "name",
            "contact_person",
            "phone",
            "email",
            "address",
            "payment_terms",
            "account_code",
            "is_active",
            "created_at",
        ]
        read_only_fields = ["id", "account_code", "created_at"]

    def validate_code(self, value):
        value = (value or "").strip().upper()
        if value and Supplier.objects.filter(code=value).exists():
            raise serializers.ValidationError("Supplier code already exists.")
        return value

    def validate_name(self, value):
        value = value.strip()
        if Supplier.objects.filter(name__iexact=value).exists():
            raise serializers.ValidationError(f'Supplier with name "{value}" already exists.')
        return value
