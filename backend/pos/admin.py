from django.contrib import admin

from .models import Product, Transaction, TransactionItem


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ("name", "category", "unit", "price", "stock", "created_by", "updated_at")
    search_fields = ("name", "description")
    list_filter = ("category",)


class TransactionItemInline(admin.TabularInline):
    model = TransactionItem
    extra = 0
    fields = ("product", "name", "quantity", "price", "unit")


@admin.register(Transaction)
class TransactionAdmin(admin.ModelAdmin):
    list_display = ("id", "cashier_name", "total", "payment_method", "status", "timestamp")
    search_fields = ("cashier_name", "items__name")
    list_filter = ("payment_method", "status", "timestamp")
    readonly_fields = ("items_total",)
    inlines = [TransactionItemInline]
