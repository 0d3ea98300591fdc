from rest_framework.routers import DefaultRouter

from apps.purchase_returns.views import PurchaseReturnViewSet

router = DefaultRouter()
router.register("purchase-returns", PurchaseReturnViewSet, basename="purchase-return")

urlpatterns = router.urls
