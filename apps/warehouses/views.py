from rest_framework import viewsets

from apps.common.permissions import RolePermission
from apps.warehouses.models import Warehouse
from apps.warehouses.serializers import WarehouseSerializer


class WarehouseViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = Warehouse.objects.filter(is_active=True).order_by("name")
    serializer_class = WarehouseSerializer
    permission_classes = [RolePermission]
    capability_map = {
        "list": ["inventory.view"],
        "retrieve": ["inventory.view"],
    }
