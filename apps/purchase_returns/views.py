from dataclasses import asdict

from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from apps.common.permissions import RolePermission
from apps.purchase_returns.models import PurchaseReturn
from apps.purchase_returns.serializers import (
    ApproveReturnSerializer,
    ProcessOutcomeSerializer,
    ProcessRefundSerializer,
    ProcessReturnSerializer,
    PurchaseReturnDetailSerializer,
    PurchaseReturnSerializer,
    PurchaseReturnWriteSerializer,
    RefundOutcomeSerializer,
)
from apps.purchase_returns.services import (
    approve_return,
    cancel_return,
    create_purchase_return,
    process_refund,
    process_return,
    update_purchase_return,
)


class PurchaseReturnViewSet(viewsets.ModelViewSet):
    serializer_class = PurchaseReturnSerializer
    permission_classes = [RolePermission]
    http_method_names = ["get", "post", "patch", "head", "options"]
    capability_map = {
        "list": ["returns.view"],
        "retrieve": ["returns.view"],
        "create": ["returns.manage"],
        "partial_update": ["returns.manage"],
        "approve": ["returns.approve"],
        "process": ["returns.process"],
        "cancel": ["returns.manage"],
        "refund": ["returns.refund"],
    }

    def get_serializer_class(self):
        if self.action == "list":
            return PurchaseReturnSerializer
        return PurchaseReturnDetailSerializer

    def get_queryset(self):
        queryset = PurchaseReturn.objects.select_related(
            "purchase_order", "supplier", "warehouse"
        ).prefetch_related("items__product")
        if self.action != "list":
            return queryset
        status_filter = self.request.query_params.get("status")
        supplier_id = self.request.query_params.get("supplier")
        purchase_order_id = self.request.query_params.get("purchase_order")
        if status_filter:
            queryset = queryset.filter(status=status_filter.upper())
        if supplier_id:
            queryset = queryset.filter(supplier_id=supplier_id)
        if purchase_order_id:
            queryset = queryset.filter(purchase_order_id=purchase_order_id)
        return queryset

    def _render(self, purchase_return, code=status.HTTP_200_OK):
        purchase_return = self.get_queryset().get(pk=purchase_return.pk)
        return Response(
            PurchaseReturnDetailSerializer(purchase_return, context=self.get_serializer_context()).data,
            status=code,
        )

    def create(self, request, *args, **kwargs):
        serializer = PurchaseReturnWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        purchase_return = create_purchase_return(serializer.validated_data, user=request.user)
        return self._render(purchase_return, status.HTTP_201_CREATED)

    def partial_update(self, request, *args, **kwargs):
        purchase_return = self.get_object()
        serializer = PurchaseReturnWriteSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        purchase_return = update_purchase_return(purchase_return, serializer.validated_data, user=request.user)
        return self._render(purchase_return)

    @action(detail=True, methods=["post"])
    def approve(self, request, pk=None):
        serializer = ApproveReturnSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        purchase_return = approve_return(
            self.get_object(),
            serializer.validated_data.get("approval_notes"),
            request.user,
        )
        return self._render(purchase_return)

    @action(detail=True, methods=["post"])
    def process(self, request, pk=None):
        serializer = ProcessReturnSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        outcome = process_return(self.get_object(), serializer.validated_data, request.user)
        return Response(ProcessOutcomeSerializer(asdict(outcome)).data)

    @action(detail=True, methods=["post"])
    def cancel(self, request, pk=None):
        purchase_return = cancel_return(self.get_object(), user=request.user)
        return self._render(purchase_return)

    @action(detail=True, methods=["post"])
    def refund(self, request, pk=None):
        serializer = ProcessRefundSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        outcome = process_refund(self.get_object(), serializer.validated_data, request.user)
        return Response(RefundOutcomeSerializer(asdict(outcome)).data)
