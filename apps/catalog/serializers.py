from rest_framework import serializers

from apps.catalog.models import Product, normalize_sku


class ProductSerializer(serializers.ModelSerializer):
    class Meta:
        model = Product
        fields = ["id", "sku", "name", "unit", "is_active", "created_at", "updated_at"]
        read_only_fields = ["id", "created_at", "updated_at"]

    def validate_sku(self, value):
        normalized = normalize_sku(value)
        if not normalized:
            raise serializers.ValidationError("sku is required")
        queryset = Product.objects.filter(sku=normalized)
        if self.instance is not None:
            queryset = queryset.exclude(pk=self.instance.pk)
        if queryset.exists():
            raise serializers.ValidationError(f"Product with sku {normalized} already exists")
        return normalized
