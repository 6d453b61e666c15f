from decimal import Decimal

from django.conf import settings
from django.core.cache import cache
from django.db import transaction
from django.utils import timezone

from .models import PaymentMethod, Transaction, TransactionItem, TransactionStatus

TOP_N = 5
ANALYTICS_CACHE_KEY = "pos:analytics:sales"


def _local(value):
    if timezone.is_aware(value):
        return timezone.localtime(value)
    return value


def _rank(entries, key, limit):
    # sorted() keeps first-seen order between equal values
    return sorted(entries, key=lambda entry: entry[key], reverse=True)[:limit]


def summarize_sales(transactions, top_n: int = TOP_N) -> dict:
    """Aggregate revenue figures from ``transactions`` in a single pass.

    Returns total revenue and count, revenue per calendar month and per day
    (ascending), and the ``top_n`` products and cashiers by revenue.
    Product revenue is quantity times the snapshot price of each item;
    cashier revenue is the sum of transaction totals.
    """
    total_sales = Decimal("0")
    transaction_count = 0
    by_month = {}
    by_day = {}
    products = {}
    cashiers = {}

    for txn in transactions:
        transaction_count += 1
        total_sales += txn.total

        local_ts = _local(txn.timestamp)
        month_key = local_ts.strftime("%Y-%m")
        day_key = local_ts.strftime("%Y-%m-%d")
        by_month[month_key] = by_month.get(month_key, Decimal("0")) + txn.total
        by_day[day_key] = by_day.get(day_key, Decimal("0")) + txn.total

        cashier_name = txn.cashier_name or "Unknown Cashier"
        cashier = cashiers.setdefault(
            cashier_name,
            {"name": cashier_name, "sales": Decimal("0"), "transactions": 0},
        )
        cashier["sales"] += txn.total
        cashier["transactions"] += 1

        for item in txn.items.all():
            product = products.setdefault(
                item.name,
                {"name": item.name, "revenue": Decimal("0"), "quantity": Decimal("0")},
            )
            product["revenue"] += item.quantity * item.price
            product["quantity"] += item.quantity

    return {
        "totalSales": total_sales,
        "totalTransactions": transaction_count,
        "salesByMonth": [
            {"month": month, "sales": by_month[month]} for month in sorted(by_month)
        ],
        "dailySales": {day: by_day[day] for day in sorted(by_day)},
        "topProducts": _rank(products.values(), "revenue", top_n),
        "topCashiers": _rank(cashiers.values(), "sales", top_n),
    }


def get_cached_analytics(builder, refresh: bool = False) -> dict:
    """Return the cached analytics payload, rebuilding it when missing or on refresh."""
    if not refresh:
        payload = cache.get(ANALYTICS_CACHE_KEY)
        if payload is not None:
            return payload
    payload = builder()
    cache.set(ANALYTICS_CACHE_KEY, payload, settings.ANALYTICS_CACHE_SECONDS)
    return payload


def invalidate_sales_analytics() -> None:
    cache.delete(ANALYTICS_CACHE_KEY)


@transaction.atomic
def record_transaction(
    cashier,
    items,
    payment_method: str = PaymentMethod.CASH,
    total: Decimal | None = None,
) -> Transaction:
    """Store a completed sale with item name, price and unit copied from each product.

    ``items`` is a sequence of ``{"product": Product, "quantity": Decimal}``.
    Product stock is left untouched. ``total`` defaults to the sum of item
    subtotals when not supplied.
    """
    snapshots = [
        TransactionItem(
            product=entry["product"],
            name=entry["product"].name,
            quantity=entry["quantity"],
            price=entry["product"].price,
            unit=entry["product"].unit,
        )
        for entry in items
    ]
    if total is None:
        total = sum((snapshot.subtotal for snapshot in snapshots), Decimal("0"))

    txn = Transaction.objects.create(
        cashier=cashier,
        cashier_name=cashier.name or cashier.email,
        total=total,
        payment_method=payment_method,
        status=TransactionStatus.COMPLETED,
    )
    for snapshot in snapshots:
        snapshot.transaction = txn
    TransactionItem.objects.bulk_create(snapshots)
    return txn

