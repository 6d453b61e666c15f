from decimal import Decimal

from rest_framework import serializers

from .models import PaymentMethod, Product, Transaction, TransactionItem

MAX_TRANSACTION_TOTAL = Decimal("999999999999.99")


class ProductSerializer(serializers.ModelSerializer):
    stockStatus = serializers.CharField(source="stock_status", read_only=True)
    createdAt = serializers.DateTimeField(source="created_at", read_only=True)
    updatedAt = serializers.DateTimeField(source="updated_at", read_only=True)
    createdBy = serializers.PrimaryKeyRelatedField(source="created_by", read_only=True)

    class Meta:
        model = Product
        fields = [
            "id",
            "name",
            "category",
            "unit",
            "price",
            "stock",
            "stockStatus",
            "description",
            "createdAt",
            "updatedAt",
            "createdBy",
        ]
        extra_kwargs = {
            "description": {"required": False, "allow_blank": True},
        }


class TransactionItemSerializer(serializers.ModelSerializer):
    productId = serializers.PrimaryKeyRelatedField(source="product", read_only=True)
    subtotal = serializers.DecimalField(max_digits=14, decimal_places=2, read_only=True)

    class Meta:
        model = TransactionItem
        fields = ["productId", "name", "quantity", "price", "unit", "subtotal"]


class TransactionSerializer(serializers.ModelSerializer):
    cashierId = serializers.PrimaryKeyRelatedField(source="cashier", read_only=True)
    cashierName = serializers.CharField(source="cashier_name", read_only=True)
    paymentMethod = serializers.CharField(source="payment_method", read_only=True)
    items = TransactionItemSerializer(many=True, read_only=True)

    class Meta:
        model = Transaction
        fields = [
            "id",
            "cashierId",
            "cashierName",
            "items",
            "total",
            "paymentMethod",
            "timestamp",
            "status",
        ]


class SaleItemInputSerializer(serializers.Serializer):
    productId = serializers.PrimaryKeyRelatedField(
        source="product",
        queryset=Product.objects.all(),
        error_messages={"does_not_exist": "Product {pk_value} not found"},
    )
    quantity = serializers.DecimalField(
        max_digits=10,
        decimal_places=2,
        min_value=Decimal("0.01"),
    )


class TransactionCreateSerializer(serializers.Serializer):
    items = SaleItemInputSerializer(many=True, allow_empty=False)
    paymentMethod = serializers.ChoiceField(
        source="payment_method",
        choices=PaymentMethod.choices,
        default=PaymentMethod.CASH,
    )
    total = serializers.DecimalField(
        max_digits=14,
        decimal_places=2,
        min_value=Decimal("0"),
        required=False,
    )

    def validate(self, attrs):
        if "total" not in attrs:
            items_total = sum(
                (item["product"].price * item["quantity"] for item in attrs["items"]),
                Decimal("0"),
            )
            if items_total.quantize(Decimal("0.01")) > MAX_TRANSACTION_TOTAL:
                raise serializers.ValidationError({"total": "Transaction total is too large"})
        return attrs
