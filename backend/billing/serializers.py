from rest_framework import serializers

from payments.models import Payment

from .models import Bill, BillItem


class BillItemSerializer(serializers.ModelSerializer):
    line_total = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = BillItem
        fields = ['id', 'order', 'menu_item', 'name', 'quantity', 'price', 'line_total']
        read_only_fields = fields


class BillPaymentSerializer(serializers.ModelSerializer):
    class Meta:
        model = Payment
        fields = ['id', 'method', 'amount', 'status', 'reference', 'succeeded_at']
        read_only_fields = fields


class BillSerializer(serializers.ModelSerializer):
    items = BillItemSerializer(source='line_items', many=True, read_only=True)
    payments = BillPaymentSerializer(source='recorded_payments', many=True, read_only=True)

    class Meta:
        model = Bill
        fields = [
            'id',
            'bill_number',
            'table',
            'status',
            'tax_rate',
            'subtotal',
            'cgst',
            'sgst',
            'tax',
            'discount',
            'service_charge',
            'total',
            'paid_amount',
            'balance',
            'items',
            'payments',
            'created_at',
            'closed_at',
        ]
        read_only_fields = fields


class BillLineInputSerializer(serializers.Serializer):
    menu_item_id = serializers.UUIDField(required=False, allow_null=True)
    name = serializers.CharField(required=False, allow_blank=True, max_length=200)
    quantity = serializers.IntegerField(min_value=1, default=1)
    price = serializers.DecimalField(max_digits=10, decimal_places=2, required=False, min_value=0)

    def to_internal_value(self, data):
        value = super().to_internal_value(data)
        if value.get('menu_item_id') is not None:
            value['menu_item_id'] = str(value['menu_item_id'])
        return value


class BillCreateSerializer(serializers.Serializer):
    table_id = serializers.UUIDField(required=False, allow_null=True)
    tax_rate = serializers.DecimalField(max_digits=5, decimal_places=2, required=False, min_value=0, max_value=100)
    items = BillLineInputSerializer(many=True, required=False, default=list)


class BillFromOrderSerializer(serializers.Serializer):
    order_id = serializers.UUIDField()


class BillActionSerializer(serializers.Serializer):
    """PATCH body: one mutation per request."""

    ACTIONS = (
        'addItem',
        'removeItem',
        'updateDiscount',
        'updateServiceCharge',
        'close',
    )

    action = serializers.ChoiceField(choices=ACTIONS)
    item = BillLineInputSerializer(required=False)
    item_id = serializers.IntegerField(required=False, min_value=1)
    discount = serializers.DecimalField(max_digits=12, decimal_places=2, required=False)
    service_charge = serializers.DecimalField(max_digits=12, decimal_places=2, required=False)
    idempotency_key = serializers.CharField(required=False, max_length=128, allow_null=True)

    REQUIRED = {
        'addItem': 'item',
        'removeItem': 'item_id',
        'updateDiscount': 'discount',
        'updateServiceCharge': 'service_charge',
    }

    def validate(self, attrs):
        field = self.REQUIRED.get(attrs['action'])
        if field and attrs.get(field) is None:
            raise serializers.ValidationError({field: f"Required for {attrs['action']}"})
        request = self.context.get('request')
        header_key = request.headers.get('Idempotency-Key') if request is not None else None
        if header_key:
            attrs['idempotency_key'] = header_key
        return attrs
