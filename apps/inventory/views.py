from django.db.models import Sum
from rest_framework import generics, viewsets
from rest_framework.response import Response

from apps.common.permissions import RolePermission
from apps.inventory.models import InventoryBatch, StockMovement
from apps.inventory.serializers import InventoryBatchSerializer, StockMovementSerializer


def _filter_location(queryset, params):
    product_id = params.get("product")
    warehouse_id = params.get("warehouse")
    if product_id:
        queryset = queryset.filter(product_id=product_id)
    if warehouse_id:
        queryset = queryset.filter(warehouse_id=warehouse_id)
    return queryset


class InventoryBatchViewSet(viewsets.ReadOnlyModelViewSet):
    serializer_class = InventoryBatchSerializer
    permission_classes = [RolePermission]
    capability_map = {
        "list": ["inventory.view"],
        "retrieve": ["inventory.view"],
    }

    def get_queryset(self):
        queryset = InventoryBatch.objects.select_related("product", "warehouse")
        return _filter_location(queryset, self.request.query_params)


class StockMovementViewSet(viewsets.ReadOnlyModelViewSet):
    serializer_class = StockMovementSerializer
    permission_classes = [RolePermission]
    capability_map = {
        "list": ["inventory.view"],
        "retrieve": ["inventory.view"],
    }

    def get_queryset(self):
        queryset = StockMovement.objects.select_related("product", "warehouse", "created_by")
        queryset = _filter_location(queryset, self.request.query_params)
        movement_type = self.request.query_params.get("type")
        if movement_type:
            queryset = queryset.filter(movement_type=movement_type.upper())
        return queryset


class InventoryStockView(generics.GenericAPIView):
    permission_classes = [RolePermission]
    capability_map = {"get": ["inventory.view"]}

    def get(self, request, *args, **kwargs):
        queryset = _filter_location(InventoryBatch.objects.all(), request.query_params)
        queryset = (
            queryset.values("product_id", "warehouse_id")
            .annotate(stock=Sum("quantity"))
            .order_by("product_id", "warehouse_id")
        )
        return Response(list(queryset))
