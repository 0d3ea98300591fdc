from rest_framework.routers import DefaultRouter

from apps.ledger.views import AccountViewSet, LedgerTransactionViewSet

router = DefaultRouter()
router.register("accounts", AccountViewSet, basename="ledger-account")
router.register("transactions", LedgerTransactionViewSet, basename="ledger-transaction")

urlpatterns = router.urls
