from rest_framework import serializers

from .models import Commission, RevenueShare


class CommissionSerializer(serializers.ModelSerializer):
    partner_name = serializers.CharField(source='partner.name', read_only=True)

    class Meta:
        model = Commission
        fields = ['id', 'order', 'partner', 'partner_name', 'amount', 'rate', 'status', 'created_at']
        read_only_fields = fields


class RevenueShareSerializer(serializers.ModelSerializer):
    class Meta:
        model = RevenueShare
        fields = [
            'id',
            'district',
            'reseller',
            'invoice_id',
            'amount_cents',
            'commission_cents',
            'commission_rate',
            'payout_status',
            'period_start',
            'period_end',
            'paid_at',
            'created_at',
        ]
        read_only_fields = fields
