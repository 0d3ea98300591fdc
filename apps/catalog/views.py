from django.db.models import Q
from rest_framework import viewsets

from apps.audit.services import record_audit
from apps.catalog.models import Product
from apps.catalog.serializers import ProductSerializer
from apps.common.permissions import RolePermission


class ProductViewSet(viewsets.ModelViewSet):
    serializer_class = ProductSerializer
    permission_classes = [RolePermission]
    http_method_names = ["get", "post", "patch", "head", "options"]
    capability_map = {
        "list": ["catalog.view"],
        "retrieve": ["catalog.view"],
        "create": ["catalog.manage"],
        "partial_update": ["catalog.manage"],
    }

    def get_queryset(self):
        queryset = Product.objects.all()
        query = self.request.query_params.get("q")
        if query:
            queryset = queryset.filter(Q(name__icontains=query) | Q(sku__icontains=query))
        active = self.request.query_params.get("is_active")
        if active is not None:
            queryset = queryset.filter(is_active=active.strip().lower() in {"1", "true", "yes"})
        return queryset

    def perform_create(self, serializer):
        product = serializer.save()
        record_audit(
            actor=self.request.user,
            action="catalog.product.create",
            entity_type="product",
            entity_id=product.id,
            payload={"sku": product.sku, "name": product.name},
        )

    def perform_update(self, serializer):
        product = serializer.save()
        record_audit(
            actor=self.request.user,
            action="catalog.product.update",
            entity_type="product",
            entity_id=product.id,
            payload={"sku": product.sku, "name": product.name, "is_active": product.is_active},
        )
