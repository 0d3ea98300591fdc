from rest_framework import mixins, status, viewsets
from rest_framework.response import Response

from apps.common.permissions import RolePermission
from apps.suppliers.models import Supplier
from apps.suppliers.serializers import SupplierSerializer
from apps.suppliers.services import create_supplier


class SupplierViewSet(mixins.CreateModelMixin, viewsets.ReadOnlyModelViewSet):
    serializer_class = SupplierSerializer
    permission_classes = [RolePermission]
    capability_map = {
        "list": ["suppliers.view"],
        "retrieve": ["suppliers.view"],
        "create": ["suppliers.manage"],
    }

    def get_queryset(self):
        queryset = Supplier.objects.filter(is_active=True).select_related("account")
        query = self.request.query_params.get("q")
        if query:
            queryset = queryset.filter(name__icontains=query)
        return queryset

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        supplier = create_supplier(serializer.validated_data, user=request.user)
        return Response(self.get_serializer(supplier).data, status=status.HTTP_201_CREATED)
