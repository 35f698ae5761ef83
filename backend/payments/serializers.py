from rest_framework import serializers

from .models import Payment, Refund, Settlement, Tip


class PaymentSerializer(serializers.ModelSerializer):
    class Meta:
        model = Payment
        fields = [
            'id',
            'bill',
            'method',
            'amount',
            'status',
            'reference',
            'notes',
            'gateway_payment_id',
            'settlement',
            'succeeded_at',
            'failed_at',
            'failure_reason',
            'created_at',
        ]
        read_only_fields = fields


class PaymentCreateSerializer(serializers.Serializer):
    bill_id = serializers.UUIDField()
    method = serializers.ChoiceField(choices=Payment.PaymentMethod.choices)
    amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    reference = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=255)
    notes = serializers.CharField(required=False, allow_blank=True, default='')
    idempotency_key = serializers.CharField(required=False, max_length=128, allow_null=True)

    def validate(self, attrs):
        request = self.context.get('request')
        header_key = request.headers.get('Idempotency-Key') if request is not None else None
        if header_key:
            attrs['idempotency_key'] = header_key
        return attrs


class PaymentFailSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default='', max_length=255)


class RefundSerializer(serializers.ModelSerializer):
    class Meta:
        model = Refund
        fields = ['id', 'payment', 'amount', 'reason', 'status', 'succeeded_at', 'created_at']
        read_only_fields = fields


class RefundCreateSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    reason = serializers.CharField(required=False, allow_blank=True, default='', max_length=255)


class TipSerializer(serializers.ModelSerializer):
    class Meta:
        model = Tip
        fields = ['id', 'bill', 'payment', 'amount', 'percentage', 'created_at']
        read_only_fields = fields


class TipCreateSerializer(serializers.Serializer):
    bill_id = serializers.UUIDField()
    payment_id = serializers.UUIDField(required=False, allow_null=True)
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, required=False)
    percentage = serializers.DecimalField(max_digits=5, decimal_places=2, required=False)


class SettlementSerializer(serializers.ModelSerializer):
    expected_gateway_amount = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = Settlement
        fields = [
            'id',
            'date',
            'status',
            'total_sales',
            'cash',
            'upi',
            'card',
            'wallet',
            'qr',
            'netbanking',
            'refunds',
            'tips',
            'discounts',
            'gateway_amount',
            'gateway_fees',
            'gateway_reported',
            'expected_gateway_amount',
            'variance',
            'variance_notes',
            'transaction_count',
            'processed_at',
            'reconciled_at',
        ]
        read_only_fields = fields


class SettlementAggregateSerializer(serializers.Serializer):
    date = serializers.DateField()


class GatewayReportSerializer(serializers.Serializer):
    date = serializers.DateField()
    gateway_amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    gateway_fees = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, default=0)
    notes = serializers.CharField(required=False, allow_blank=True, default='')
