from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import PermissionDenied
from rest_framework.response import Response

from apps.common.permissions import RolePermission, has_capabilities
from apps.purchases.models import PurchaseOrder, PurchaseOrderStatus
from apps.purchases.serializers import (
    PurchaseOrderSerializer,
    PurchaseOrderStatusSerializer,
    PurchaseOrderWriteSerializer,
    ReceiveItemsSerializer,
)
from apps.purchases.services import (
    create_purchase_order,
    receive_all_items,
    receive_items,
    remove_purchase_order,
    update_purchase_order,
    update_purchase_order_status,
)

APPROVAL_STATUSES = {PurchaseOrderStatus.APPROVED, PurchaseOrderStatus.REJECTED}


class PurchaseOrderViewSet(viewsets.ModelViewSet):
    serializer_class = PurchaseOrderSerializer
    permission_classes = [RolePermission]
    http_method_names = ["get", "post", "patch", "delete", "head", "options"]
    capability_map = {
        "list": ["purchases.view"],
        "retrieve": ["purchases.view"],
        "create": ["purchases.manage"],
        "partial_update": ["purchases.manage"],
        "destroy": ["purchases.manage"],
        "change_status": ["purchases.view"],
        "receive": ["purchases.receive"],
        "receive_all": ["purchases.receive"],
    }

    def get_queryset(self):
        queryset = (
            PurchaseOrder.objects.filter(is_active=True)
            .select_related("supplier", "warehouse", "created_by")
            .prefetch_related("items__product")
        )
        if self.action != "list":
            return queryset
        status_filter = self.request.query_params.get("status")
        supplier_id = self.request.query_params.get("supplier")
        if status_filter:
            queryset = queryset.filter(status=status_filter.upper())
        if supplier_id:
            queryset = queryset.filter(supplier_id=supplier_id)
        return queryset

    def _render(self, order, code=status.HTTP_200_OK):
        order = self.get_queryset().get(pk=order.pk)
        return Response(PurchaseOrderSerializer(order, context=self.get_serializer_context()).data, status=code)

    def create(self, request, *args, **kwargs):
        serializer = PurchaseOrderWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = create_purchase_order(serializer.validated_data, request.user)
        return self._render(order, status.HTTP_201_CREATED)

    def partial_update(self, request, *args, **kwargs):
        order = self.get_object()
        serializer = PurchaseOrderWriteSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        order = update_purchase_order(order, serializer.validated_data, user=request.user)
        return self._render(order)

    def destroy(self, request, *args, **kwargs):
        remove_purchase_order(self.get_object(), user=request.user)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=["post"], url_path="status")
    def change_status(self, request, pk=None):
        order = self.get_object()
        serializer = PurchaseOrderStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        target = serializer.validated_data["status"]
        capability = "purchases.approve" if target in APPROVAL_STATUSES else "purchases.manage"
        if not has_capabilities(request.user, capability):
            raise PermissionDenied(f"Changing a purchase order to {target} requires {capability}.")
        order = update_purchase_order_status(
            order,
            target,
            reason=serializer.validated_data.get("reason"),
            user=request.user,
        )
        return self._render(order)

    @action(detail=True, methods=["post"])
    def receive(self, request, pk=None):
        order = self.get_object()
        serializer = ReceiveItemsSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = receive_items(order, serializer.validated_data["items"], request.user)
        return self._render(order)

    @action(detail=True, methods=["post"], url_path="receive-all")
    def receive_all(self, request, pk=None):
        order = receive_all_items(self.get_object(), request.user)
        return self._render(order)
