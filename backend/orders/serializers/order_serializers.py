from rest_framework import serializers

from orders.models import Order, OrderItem


class OrderItemSerializer(serializers.ModelSerializer):
    line_total = serializers.DecimalField(max_digits=10, decimal_places=2, read_only=True)

    class Meta:
        model = OrderItem
        fields = [
            'id',
            'menu_item',
            'name_at_sale',
            'quantity',
            'price_at_sale',
            'line_total',
            'notes',
        ]
        read_only_fields = fields


class OrderSerializer(serializers.ModelSerializer):
    items = OrderItemSerializer(source='line_items', many=True, read_only=True)
    table_number = serializers.CharField(source='table.number', read_only=True)

    class Meta:
        model = Order
        fields = [
            'id',
            'table',
            'table_number',
            'status',
            'source',
            'total',
            'is_priority',
            'notes',
            'items',
            'created_at',
            'updated_at',
            'served_at',
            'cancelled_at',
        ]
        read_only_fields = fields


class OrderLineInputSerializer(serializers.Serializer):
    menu_item_id = serializers.UUIDField()
    quantity = serializers.IntegerField(min_value=1)
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class PublicOrderCreateSerializer(serializers.Serializer):
    """
    Input for QR ordering. Menu existence, availability and prices are
    validated by the creation service, not here.
    """

    items = OrderLineInputSerializer(many=True, allow_empty=False)
    notes = serializers.CharField(required=False, allow_blank=True, default='')
    is_priority = serializers.BooleanField(required=False, default=False)
    idempotency_key = serializers.CharField(required=False, max_length=128, allow_null=True)

    def validate(self, attrs):
        # Header takes precedence over the body so retries can reuse a stored request body
        request = self.context.get('request')
        header_key = request.headers.get('Idempotency-Key') if request is not None else None
        if header_key:
            attrs['idempotency_key'] = header_key
        attrs['items'] = [
            {'menu_item_id': str(line['menu_item_id']), 'quantity': line['quantity'], 'notes': line['notes']}
            for line in attrs['items']
        ]
        return attrs


class OrderCreateSerializer(PublicOrderCreateSerializer):
    table_id = serializers.UUIDField()
