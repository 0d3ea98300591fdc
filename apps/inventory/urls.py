from django.urls import path
from rest_framework.routers import DefaultRouter

from apps.inventory.views import InventoryBatchViewSet, InventoryStockView, StockMovementViewSet

router = DefaultRouter()
router.register("batches", InventoryBatchViewSet, basename="inventory-batch")
router.register("movements", StockMovementViewSet, basename="inventory-movement")

urlpatterns = [
    path("stocks/", InventoryStockView.as_view(), name="inventory-stock"),
]
urlpatterns += router.urls
