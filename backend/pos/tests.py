from datetime import datetime, timedelta
from decimal import Decimal
from unittest import mock

from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.test import SimpleTestCase, TestCase
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient

from users.models import UserRole

from .models import (
    PaymentMethod,
    Product,
    ProductCategory,
    StockStatus,
    Transaction,
    TransactionItem,
    TransactionStatus,
    stock_status_for,
)
from .services import record_transaction, summarize_sales


def make_user(email, role=UserRole.CASHIER, name=None):
    return get_user_model().objects.create_user(
        email=email,
        password="pass1234",
        name=name or email.split("@")[0].title(),
        role=role,
    )


def make_product(name="Beras Pandan Wangi", price="15000", stock=50, **extra):
    extra.setdefault("category", ProductCategory.KILOAN)
    extra.setdefault("unit", "kg")
    return Product.objects.create(name=name, price=Decimal(price), stock=stock, **extra)


def aware(year, month, day, hour=12):
    return timezone.make_aware(datetime(year, month, day, hour, 0))


class FakeItem:
    def __init__(self, name, quantity, price):
        self.name = name
        self.quantity = Decimal(quantity)
        self.price = Decimal(price)


class FakeItems(list):
    def all(self):
        return self


class FakeTransaction:
    def __init__(self, total, timestamp, cashier_name="Citra", items=()):
        self.total = Decimal(total)
        self.timestamp = timestamp
        self.cashier_name = cashier_name
        self.items = FakeItems(items)


class SummarizeSalesTests(SimpleTestCase):
    def test_empty_list(self):
        summary = summarize_sales([])
        self.assertEqual(summary["totalSales"], Decimal("0"))
        self.assertEqual(summary["totalTransactions"], 0)
        self.assertEqual(summary["salesByMonth"], [])
        self.assertEqual(summary["topProducts"], [])
        self.assertEqual(summary["topCashiers"], [])

    def test_monthly_sums_match_transaction_totals(self):
        transactions = [
            FakeTransaction("100", aware(2025, 3, 20)),
            FakeTransaction("250.50", aware(2025, 1, 5)),
            FakeTransaction("49.50", aware(2025, 1, 28)),
            FakeTransaction("300", aware(2025, 3, 2)),
        ]
        summary = summarize_sales(transactions)
        self.assertEqual(
            summary["salesByMonth"],
            [
                {"month": "2025-01", "sales": Decimal("300.00")},
                {"month": "2025-03", "sales": Decimal("400")},
            ],
        )
        self.assertEqual(summary["totalSales"], Decimal("700.00"))
        self.assertEqual(summary["totalTransactions"], 4)
        self.assertEqual(list(summary["dailySales"]), ["2025-01-05", "2025-01-28", "2025-03-02", "2025-03-20"])

    def test_top_products_sorted_desc_and_truncated(self):
        items = [FakeItem(f"Beras {n}", "1", str(n * 10)) for n in range(1, 8)]
        summary = summarize_sales([FakeTransaction("280", aware(2025, 2, 1), items=items)])
        revenues = [row["revenue"] for row in summary["topProducts"]]
        self.assertEqual(len(revenues), 5)
        self.assertEqual(revenues, sorted(revenues, reverse=True))
        self.assertEqual(summary["topProducts"][0]["name"], "Beras 7")

    def test_product_revenue_is_quantity_times_price(self):
        transactions = [
            FakeTransaction("0", aware(2025, 2, 1), items=[FakeItem("Minyak", "2", "18000")]),
            FakeTransaction("0", aware(2025, 2, 2), items=[FakeItem("Minyak", "1.5", "18000")]),
        ]
        top = summarize_sales(transactions)["topProducts"][0]
        self.assertEqual(top["revenue"], Decimal("63000"))
        self.assertEqual(top["quantity"], Decimal("3.5"))

    def test_top_cashiers_rank_and_ties_keep_first_seen(self):
        transactions = [
            FakeTransaction("100", aware(2025, 2, 1), cashier_name="Dewi"),
            FakeTransaction("500", aware(2025, 2, 1), cashier_name="Eka"),
            FakeTransaction("100", aware(2025, 2, 2), cashier_name="Fajar"),
            FakeTransaction("200", aware(2025, 2, 3), cashier_name="Eka"),
        ]
        cashiers = summarize_sales(transactions)["topCashiers"]
        self.assertEqual([c["name"] for c in cashiers], ["Eka", "Dewi", "Fajar"])
        self.assertEqual(cashiers[0]["sales"], Decimal("700"))
        self.assertEqual(cashiers[0]["transactions"], 2)

    def test_top_cashiers_truncated_to_five(self):
        transactions = [
            FakeTransaction(str(n), aware(2025, 2, 1), cashier_name=f"Kasir {n}") for n in range(1, 9)
        ]
        cashiers = summarize_sales(transactions)["topCashiers"]
        self.assertEqual([c["name"] for c in cashiers], [f"Kasir {n}" for n in range(8, 3, -1)])


class StockStatusTests(SimpleTestCase):
    def test_thresholds(self):
        self.assertEqual(stock_status_for(0), StockStatus.OUT_OF_STOCK)
        self.assertEqual(stock_status_for(10), StockStatus.LOW_STOCK)
        self.assertEqual(stock_status_for(11), StockStatus.IN_STOCK)


class RecordTransactionTests(TestCase):
    def setUp(self):
        self.cashier = make_user("cashier@riceshop.com", name="Citra Kasir")
        self.product = make_product(price="15000", stock=40)

    def test_snapshots_items_and_defaults_total(self):
        txn = record_transaction(
            self.cashier,
            [{"product": self.product, "quantity": Decimal("2.5")}],
            payment_method=PaymentMethod.CARD,
        )
        self.assertEqual(txn.total, Decimal("37500"))
        self.assertEqual(txn.cashier_name, "Citra Kasir")
        self.assertEqual(txn.status, TransactionStatus.COMPLETED)
        item = txn.items.get()
        self.assertEqual(item.name, self.product.name)
        self.assertEqual(item.unit, "kg")
        self.assertEqual(item.price, Decimal("15000"))

    def test_stock_is_not_decremented(self):
        record_transaction(self.cashier, [{"product": self.product, "quantity": Decimal("3")}])
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 40)

    def test_supplied_total_is_stored_as_given(self):
        txn = record_transaction(
            self.cashier,
            [{"product": self.product, "quantity": Decimal("1")}],
            total=Decimal("14000"),
        )
        self.assertEqual(txn.total, Decimal("14000"))

    def test_item_snapshot_survives_product_deletion(self):
        txn = record_transaction(self.cashier, [{"product": self.product, "quantity": Decimal("1")}])
        self.product.delete()
        item = TransactionItem.objects.get(transaction=txn)
        self.assertIsNone(item.product)
        self.assertEqual(item.name, "Beras Pandan Wangi")


class ProductApiTests(TestCase):
    def setUp(self):
        cache.clear()
        self.manager = make_user("manager@riceshop.com", UserRole.MANAGER)
        self.cashier = make_user("cashier@riceshop.com", UserRole.CASHIER)
        self.client = APIClient()

    def _payload(self, **overrides):
        data = {
            "name": "Beras Rojolele",
            "category": ProductCategory.KARUNGAN,
            "unit": "karung",
            "price": "250000",
            "stock": 12,
            "description": "Karung 25 kg",
        }
        data.update(overrides)
        return data

    def test_manager_creates_product(self):
        self.client.force_authenticate(self.manager)
        response = self.client.post(reverse("products-list"), data=self._payload(), format="json")
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        product = response.data["product"]
        self.assertEqual(product["createdBy"], self.manager.id)
        self.assertEqual(product["stockStatus"], StockStatus.IN_STOCK)

    def test_cashier_cannot_create_product(self):
        self.client.force_authenticate(self.cashier)
        response = self.client.post(reverse("products-list"), data=self._payload(), format="json")
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_invalid_category_rejected(self):
        self.client.force_authenticate(self.manager)
        response = self.client.post(
            reverse("products-list"), data=self._payload(category="gram"), format="json"
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("category", response.data["details"])

    def test_negative_stock_rejected(self):
        self.client.force_authenticate(self.manager)
        response = self.client.post(reverse("products-list"), data=self._payload(stock=-1), format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_cashier_lists_and_filters_products(self):
        make_product("Beras Merah", stock=5)
        make_product("Minyak Goreng", category=ProductCategory.LITER, unit="liter", stock=0)
        make_product("Beras Putih", stock=80, description="pulen")
        self.client.force_authenticate(self.cashier)

        response = self.client.get(reverse("products-list"))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data["products"]), 3)

        response = self.client.get(reverse("products-list"), data={"category": ProductCategory.LITER})
        self.assertEqual([p["name"] for p in response.data["products"]], ["Minyak Goreng"])

        response = self.client.get(reverse("products-list"), data={"search": "PULEN"})
        self.assertEqual([p["name"] for p in response.data["products"]], ["Beras Putih"])

        response = self.client.get(reverse("products-list"), data={"stock_status": StockStatus.LOW_STOCK})
        self.assertEqual([p["name"] for p in response.data["products"]], ["Beras Merah"])

    def test_update_and_delete_product(self):
        product = make_product()
        self.client.force_authenticate(self.manager)
        response = self.client.patch(
            reverse("products-detail", kwargs={"pk": product.id}),
            data={"stock": 3},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["product"]["stockStatus"], StockStatus.LOW_STOCK)

        response = self.client.delete(reverse("products-detail", kwargs={"pk": product.id}))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(Product.objects.filter(pk=product.id).exists())


class TransactionApiTests(TestCase):
    def setUp(self):
        cache.clear()
        self.cashier = make_user("cashier@riceshop.com", name="Citra Kasir")
        self.other = make_user("other@riceshop.com", name="Dodi Kasir")
        self.rice = make_product("Beras Pandan Wangi", price="15000")
        self.oil = make_product("Minyak Goreng", price="18000", category=ProductCategory.LITER, unit="liter")
        self.client = APIClient()
        self.client.force_authenticate(self.cashier)

    def test_create_transaction(self):
        response = self.client.post(
            reverse("transactions-list"),
            data={
                "items": [
                    {"productId": self.rice.id, "quantity": "2"},
                    {"productId": self.oil.id, "quantity": "1"},
                ],
                "paymentMethod": PaymentMethod.DIGITAL,
            },
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        txn = response.data["transaction"]
        self.assertEqual(txn["cashierId"], self.cashier.id)
        self.assertEqual(txn["cashierName"], "Citra Kasir")
        self.assertEqual(txn["total"], Decimal("48000"))
        self.assertEqual(txn["status"], TransactionStatus.COMPLETED)
        self.assertEqual(len(txn["items"]), 2)

    def test_empty_items_rejected(self):
        response = self.client.post(reverse("transactions-list"), data={"items": []}, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_unknown_product_rejected(self):
        response = self.client.post(
            reverse("transactions-list"),
            data={"items": [{"productId": 9999, "quantity": "1"}]},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["error"], "Product 9999 not found")

    def test_list_newest_first_with_filters(self):
        old = record_transaction(self.other, [{"product": self.oil, "quantity": Decimal("1")}])
        Transaction.objects.filter(pk=old.pk).update(timestamp=timezone.now() - timedelta(days=20))
        recent = record_transaction(
            self.cashier,
            [{"product": self.rice, "quantity": Decimal("1")}],
            payment_method=PaymentMethod.CARD,
        )

        response = self.client.get(reverse("transactions-list"))
        self.assertEqual([t["id"] for t in response.data["transactions"]], [recent.id, old.id])

        response = self.client.get(reverse("transactions-list"), data={"period": "week"})
        self.assertEqual([t["id"] for t in response.data["transactions"]], [recent.id])

        response = self.client.get(reverse("transactions-list"), data={"search": "minyak"})
        self.assertEqual([t["id"] for t in response.data["transactions"]], [old.id])

        response = self.client.get(reverse("transactions-list"), data={"search": str(recent.id)})
        self.assertIn(recent.id, [t["id"] for t in response.data["transactions"]])

        response = self.client.get(reverse("transactions-list"), data={"cashier": self.other.id})
        self.assertEqual([t["id"] for t in response.data["transactions"]], [old.id])

        response = self.client.get(
            reverse("transactions-list"), data={"payment_method": PaymentMethod.CARD}
        )
        self.assertEqual([t["id"] for t in response.data["transactions"]], [recent.id])

    def test_invalid_filters_rejected(self):
        response = self.client.get(reverse("transactions-list"), data={"period": "year"})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        response = self.client.get(reverse("transactions-list"), data={"from": "2025-99-99"})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["error"], "Invalid from date")

    def test_list_filters_by_date_range(self):
        early = record_transaction(self.cashier, [{"product": self.rice, "quantity": Decimal("1")}])
        late = record_transaction(self.other, [{"product": self.oil, "quantity": Decimal("1")}])
        Transaction.objects.filter(pk=early.pk).update(timestamp=aware(2025, 4, 1))
        Transaction.objects.filter(pk=late.pk).update(timestamp=aware(2025, 4, 20))

        response = self.client.get(reverse("transactions-list"), data={"from": "2025-04-10"})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([t["id"] for t in response.data["transactions"]], [late.id])

        response = self.client.get(reverse("transactions-list"), data={"to": "2025-04-10"})
        self.assertEqual([t["id"] for t in response.data["transactions"]], [early.id])

        response = self.client.get(
            reverse("transactions-list"), data={"from": "2025-04-01", "to": "2025-04-20"}
        )
        self.assertEqual([t["id"] for t in response.data["transactions"]], [late.id, early.id])

    def test_non_decimal_digits_in_filters(self):
        txn = record_transaction(self.cashier, [{"product": self.rice, "quantity": Decimal("1")}])

        response = self.client.get(reverse("transactions-list"), data={"search": "²"})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["transactions"], [])

        response = self.client.get(reverse("transactions-list"), data={"search": f" {txn.id} "})
        self.assertEqual([t["id"] for t in response.data["transactions"]], [txn.id])

        response = self.client.get(reverse("transactions-list"), data={"cashier": "²"})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["error"], "Invalid cashier")

    def test_oversized_item_total_rejected(self):
        sack = make_product("Beras Karung 50kg", price="250000", category=ProductCategory.KARUNGAN, unit="karung")
        response = self.client.post(
            reverse("transactions-list"),
            data={"items": [{"productId": sack.id, "quantity": "99999999"}]},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["error"], "Transaction total is too large")
        self.assertFalse(Transaction.objects.exists())

    def test_retrieve_transaction(self):
        txn = record_transaction(self.cashier, [{"product": self.rice, "quantity": Decimal("1")}])
        response = self.client.get(reverse("transactions-detail", kwargs={"pk": txn.id}))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["transaction"]["id"], txn.id)

    def test_receipt_qr_returns_png(self):
        txn = record_transaction(self.cashier, [{"product": self.rice, "quantity": Decimal("1")}])
        response = self.client.get(reverse("transactions-receipt-qr", kwargs={"pk": txn.id}))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response["Content-Type"], "image/png")

    def test_unauthenticated_request_returns_401(self):
        self.client.force_authenticate(None)
        response = self.client.get(reverse("transactions-list"))
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)


class SalesAnalyticsApiTests(TestCase):
    def setUp(self):
        cache.clear()
        self.cashier = make_user("cashier@riceshop.com", name="Citra Kasir")
        self.rice = make_product("Beras Pandan Wangi", price="15000", stock=4)
        self.client = APIClient()
        self.client.force_authenticate(self.cashier)

    def test_sales_analytics_payload(self):
        record_transaction(self.cashier, [{"product": self.rice, "quantity": Decimal("2")}])
        response = self.client.get(reverse("analytics-sales"))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["totalSales"], Decimal("30000"))
        self.assertEqual(response.data["totalTransactions"], 1)
        self.assertEqual(response.data["totalProducts"], 1)
        self.assertEqual(response.data["totalUsers"], 1)
        self.assertEqual(response.data["topCashiers"][0]["name"], "Citra Kasir")
        self.assertEqual(response.data["topProducts"][0]["name"], "Beras Pandan Wangi")
        self.assertEqual([p["id"] for p in response.data["lowStockProducts"]], [self.rice.id])
        self.assertEqual(len(response.data["recentTransactions"]), 1)

    def test_analytics_cached_until_refresh(self):
        with mock.patch("pos.views.summarize_sales", wraps=summarize_sales) as summarize:
            self.client.get(reverse("analytics-sales"))
            self.client.get(reverse("analytics-sales"))
            self.assertEqual(summarize.call_count, 1)
            self.client.get(reverse("analytics-sales"), data={"refresh": "true"})
            self.assertEqual(summarize.call_count, 2)

    def test_new_transaction_clears_cache(self):
        self.client.get(reverse("analytics-sales"))
        self.client.post(
            reverse("transactions-list"),
            data={"items": [{"productId": self.rice.id, "quantity": "1"}]},
            format="json",
        )
        response = self.client.get(reverse("analytics-sales"))
        self.assertEqual(response.data["totalTransactions"], 1)

    def test_product_change_clears_cache(self):
        manager = make_user("manager@riceshop.com", UserRole.MANAGER)
        response = self.client.get(reverse("analytics-sales"))
        self.assertEqual(response.data["totalProducts"], 1)

        self.client.force_authenticate(manager)
        self.client.post(
            reverse("products-list"),
            data={
                "name": "Beras Merah",
                "category": ProductCategory.KILOAN,
                "unit": "kg",
                "price": "20000",
                "stock": 2,
            },
            format="json",
        )
        response = self.client.get(reverse("analytics-sales"))
        self.assertEqual(response.data["totalProducts"], 2)

        self.client.patch(
            reverse("products-detail", kwargs={"pk": self.rice.id}),
            data={"stock": 40},
            format="json",
        )
        response = self.client.get(reverse("analytics-sales"))
        self.assertNotIn(self.rice.id, [p["id"] for p in response.data["lowStockProducts"]])

    def test_low_stock_products_ascending_by_stock(self):
        seven = make_product("Beras Rojolele", stock=7)
        empty = make_product("Beras Ketan", stock=0)
        three = make_product("Minyak Curah", stock=3, category=ProductCategory.LITER, unit="liter")
        make_product("Beras Setra Ramos", stock=50)

        response = self.client.get(reverse("analytics-sales"))
        self.assertEqual(
            [p["id"] for p in response.data["lowStockProducts"]],
            [empty.id, three.id, self.rice.id, seven.id],
        )

    def test_unexpected_error_returns_error_body(self):
        with mock.patch("pos.views.summarize_sales", side_effect=RuntimeError("boom")):
            with self.assertLogs("pos.exceptions", level="ERROR"):
                response = self.client.get(reverse("analytics-sales"))
        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertEqual(response.data, {"error": "Internal server error"})

    def test_sales_csv_by_month(self):
        txn = record_transaction(self.cashier, [{"product": self.rice, "quantity": Decimal("1")}])
        Transaction.objects.filter(pk=txn.pk).update(timestamp=aware(2025, 4, 15))
        response = self.client.get(reverse("analytics-sales-csv"))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response["Content-Type"], "text/csv")
        self.assertEqual(response.content.decode().splitlines(), ["month,sales", "2025-04,15000.00"])

    def test_sales_csv_by_day(self):
        first = record_transaction(self.cashier, [{"product": self.rice, "quantity": Decimal("1")}])
        second = record_transaction(self.cashier, [{"product": self.rice, "quantity": Decimal("2")}])
        third = record_transaction(self.cashier, [{"product": self.rice, "quantity": Decimal("1")}])
        Transaction.objects.filter(pk__in=[first.pk, second.pk]).update(timestamp=aware(2025, 4, 15))
        Transaction.objects.filter(pk=third.pk).update(timestamp=aware(2025, 4, 16))

        response = self.client.get(reverse("analytics-sales-csv"), data={"period": "day"})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(
            response.content.decode().splitlines(),
            ["date,sales", "2025-04-15,45000.00", "2025-04-16,15000.00"],
        )
        self.assertIn("sales_by_day.csv", response["Content-Disposition"])

    def test_sales_csv_invalid_period(self):
        response = self.client.get(reverse("analytics-sales-csv"), data={"period": "year"})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class HealthApiTests(TestCase):
    def test_health_is_public(self):
        response = APIClient().get(reverse("health"))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data, {"status": "ok"})
