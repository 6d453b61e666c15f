from django.urls import path
from rest_framework.routers import SimpleRouter

from .views import (
    HealthView,
    ProductViewSet,
    SalesAnalyticsCsvView,
    SalesAnalyticsView,
    TransactionViewSet,
)

router = SimpleRouter(trailing_slash=False)
router.register(r"products", ProductViewSet, basename="products")
router.register(r"transactions", TransactionViewSet, basename="transactions")

urlpatterns = [
    *router.urls,
    path("analytics/sales", SalesAnalyticsView.as_view(), name="analytics-sales"),
    path("analytics/sales/csv", SalesAnalyticsCsvView.as_view(), name="analytics-sales-csv"),
    path("health", HealthView.as_view(), name="health"),
]
