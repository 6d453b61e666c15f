from datetime import timedelta
import io
import logging

from django.contrib.auth import get_user_model
from django.db.models import Q
from django.http import HttpResponse
from django.utils import timezone
from django.utils.dateparse import parse_date
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

import qrcode

from users.permissions import IsCashierRole, IsManagerRole

from .models import (
    LOW_STOCK_THRESHOLD,
    PaymentMethod,
    Product,
    ProductCategory,
    StockStatus,
    Transaction,
    TransactionStatus,
)
from .serializers import (
    ProductSerializer,
    TransactionCreateSerializer,
    TransactionSerializer,
)
from .services import (
    get_cached_analytics,
    invalidate_sales_analytics,
    record_transaction,
    summarize_sales,
)
from .throttles import ReceiptQrRateThrottle, ReportsRateThrottle

logger = logging.getLogger(__name__)

RECENT_TRANSACTIONS = 5
PERIOD_DAYS = {"week": 7, "month": 30}


def _error(message, status_code=status.HTTP_400_BAD_REQUEST):
    return Response({"error": message}, status=status_code)


def _parse_date_range(request):
    start_param = request.query_params.get("from")
    end_param = request.query_params.get("to")
    try:
        start_date = parse_date(start_param) if start_param else None
    except ValueError:
        start_date = None
    try:
        end_date = parse_date(end_param) if end_param else None
    except ValueError:
        end_date = None
    if start_param and not start_date:
        return None, None, _error("Invalid from date")
    if end_param and not end_date:
        return None, None, _error("Invalid to date")
    return start_date, end_date, None


def _parse_id(value):
    value = value.strip()
    # str.isdigit also accepts superscripts and other non-decimal digits
    if not (value.isascii() and value.isdigit()) or len(value) > 18:
        return None
    return int(value)


def _is_truthy(value):
    return value in {"1", "true", "yes"}


class ProductViewSet(viewsets.ModelViewSet):
    queryset = Product.objects.select_related("created_by").all()
    serializer_class = ProductSerializer

    def get_permissions(self):
        if self.action in {"create", "update", "partial_update", "destroy"}:
            permission_classes = [IsManagerRole]
        else:
            permission_classes = [IsCashierRole]
        return [perm() for perm in permission_classes]

    def get_queryset(self):
        qs = super().get_queryset()
        params = self.request.query_params
        search = params.get("search")
        if search:
            qs = qs.filter(Q(name__icontains=search) | Q(description__icontains=search))
        category = params.get("category")
        if category and category != "all":
            qs = qs.filter(category=category)
        stock_status = params.get("stock_status")
        if stock_status == StockStatus.OUT_OF_STOCK:
            qs = qs.filter(stock=0)
        elif stock_status == StockStatus.LOW_STOCK:
            qs = qs.filter(stock__gt=0, stock__lte=LOW_STOCK_THRESHOLD)
        elif stock_status == StockStatus.IN_STOCK:
            qs = qs.filter(stock__gt=LOW_STOCK_THRESHOLD)
        return qs

    def list(self, request, *args, **kwargs):
        category = request.query_params.get("category")
        if category and category not in {"all", *ProductCategory.values}:
            return _error("Invalid category")
        stock_status = request.query_params.get("stock_status")
        if stock_status and stock_status not in {"all", *StockStatus.values}:
            return _error("Invalid stock_status")

        serializer = self.get_serializer(self.get_queryset(), many=True)
        return Response({"products": serializer.data})

    def retrieve(self, request, *args, **kwargs):
        return Response({"product": self.get_serializer(self.get_object()).data})

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        product = serializer.save(created_by=request.user)
        invalidate_sales_analytics()
        logger.info("User %s created product %s", request.user.pk, product.pk)
        return Response({"product": self.get_serializer(product).data}, status=status.HTTP_201_CREATED)

    def update(self, request, *args, **kwargs):
        partial = kwargs.pop("partial", False)
        product = self.get_object()
        serializer = self.get_serializer(product, data=request.data, partial=partial)
        serializer.is_valid(raise_exception=True)
        product = serializer.save()
        invalidate_sales_analytics()
        logger.info("User %s updated product %s", request.user.pk, product.pk)
        return Response({"product": self.get_serializer(product).data})

    def destroy(self, request, *args, **kwargs):
        product = self.get_object()
        product_id = product.pk
        product.delete()
        invalidate_sales_analytics()
        logger.info("User %s deleted product %s", request.user.pk, product_id)
        return Response({"success": True})


class TransactionViewSet(
    mixins.CreateModelMixin,
    mixins.RetrieveModelMixin,
    mixins.ListModelMixin,
    viewsets.GenericViewSet,
):
    queryset = Transaction.objects.prefetch_related("items").all()
    serializer_class = TransactionSerializer
    permission_classes = [IsCashierRole]

    def get_queryset(self):
        qs = super().get_queryset()
        if self.action != "list":
            return qs
        params = self.request.query_params

        search = params.get("search")
        if search:
            search = search.strip()
            condition = Q(cashier_name__icontains=search) | Q(items__name__icontains=search)
            search_id = _parse_id(search)
            if search_id is not None:
                condition |= Q(id=search_id)
            qs = qs.filter(condition).distinct()

        cashier = params.get("cashier")
        if cashier and cashier != "all":
            qs = qs.filter(cashier_id=_parse_id(cashier))
        payment_method = params.get("payment_method")
        if payment_method and payment_method != "all":
            qs = qs.filter(payment_method=payment_method)
        status_filter = params.get("status")
        if status_filter and status_filter != "all":
            qs = qs.filter(status=status_filter)

        period = params.get("period")
        if period == "today":
            qs = qs.filter(timestamp__date=timezone.localdate())
        elif period in PERIOD_DAYS:
            qs = qs.filter(timestamp__gte=timezone.now() - timedelta(days=PERIOD_DAYS[period]))
        return qs

    def list(self, request, *args, **kwargs):
        params = request.query_params
        period = params.get("period")
        if period and period not in {"all", "today", *PERIOD_DAYS}:
            return _error("Invalid period, use 'today', 'week' or 'month'")
        payment_method = params.get("payment_method")
        if payment_method and payment_method not in {"all", *PaymentMethod.values}:
            return _error("Invalid payment_method")
        status_filter = params.get("status")
        if status_filter and status_filter not in {"all", *TransactionStatus.values}:
            return _error("Invalid status")
        cashier = params.get("cashier")
        if cashier and cashier != "all" and _parse_id(cashier) is None:
            return _error("Invalid cashier")

        start_date, end_date, error_response = _parse_date_range(request)
        if error_response:
            return error_response

        qs = self.get_queryset()
        if start_date:
            qs = qs.filter(timestamp__date__gte=start_date)
        if end_date:
            qs = qs.filter(timestamp__date__lte=end_date)
        serializer = self.get_serializer(qs, many=True)
        return Response({"transactions": serializer.data})

    def retrieve(self, request, *args, **kwargs):
        return Response({"transaction": self.get_serializer(self.get_object()).data})

    def create(self, request, *args, **kwargs):
        serializer = TransactionCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        txn = record_transaction(
            cashier=request.user,
            items=data["items"],
            payment_method=data["payment_method"],
            total=data.get("total"),
        )
        invalidate_sales_analytics()
        logger.info(
            "Cashier %s recorded transaction %s total=%s",
            request.user.pk,
            txn.pk,
            txn.total,
        )
        txn = self.get_queryset().get(pk=txn.pk)
        return Response(
            {"transaction": self.get_serializer(txn).data},
            status=status.HTTP_201_CREATED,
        )

    @action(
        detail=True,
        methods=["get"],
        url_path="receipt-qr",
        throttle_classes=[ReceiptQrRateThrottle],
    )
    def receipt_qr(self, request, pk=None):
        txn = self.get_object()
        img = qrcode.make(str(txn.pk))
        buffer = io.BytesIO()
        img.save(buffer, format="PNG")
        return HttpResponse(buffer.getvalue(), content_type="image/png")


def _build_sales_payload():
    User = get_user_model()
    transactions = list(Transaction.objects.prefetch_related("items").all())
    payload = summarize_sales(transactions)
    low_stock = Product.objects.filter(stock__lte=LOW_STOCK_THRESHOLD).order_by("stock", "name")
    payload.update(
        {
            "totalProducts": Product.objects.count(),
            "totalUsers": User.objects.count(),
            "lowStockProducts": list(ProductSerializer(low_stock, many=True).data),
            "recentTransactions": list(
                TransactionSerializer(transactions[:RECENT_TRANSACTIONS], many=True).data
            ),
        }
    )
    return payload


class SalesAnalyticsView(APIView):
    permission_classes = [IsCashierRole]
    throttle_classes = [ReportsRateThrottle]

    def get(self, request):
        refresh = _is_truthy(request.query_params.get("refresh"))
        return Response(get_cached_analytics(_build_sales_payload, refresh=refresh))


class SalesAnalyticsCsvView(APIView):
    permission_classes = [IsCashierRole]
    throttle_classes = [ReportsRateThrottle]

    def get(self, request):
        period = request.query_params.get("period", "month")
        if period not in {"day", "month"}:
            return _error("Invalid period, use 'day' or 'month'")

        summary = summarize_sales(Transaction.objects.prefetch_related("items").all())
        if period == "day":
            lines = ["date,sales"]
            lines.extend(f"{day},{sales}" for day, sales in summary["dailySales"].items())
        else:
            lines = ["month,sales"]
            lines.extend(f"{row['month']},{row['sales']}" for row in summary["salesByMonth"])
        content = "\n".join(lines)
        response = HttpResponse(content, content_type="text/csv")
        response["Content-Disposition"] = f"attachment; filename=\"sales_by_{period}.csv\""
        return response


class HealthView(APIView):
    authentication_classes = []
    permission_classes = [AllowAny]

    def get(self, request):
        return Response({"status": "ok"})
