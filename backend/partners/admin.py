from django.contrib import admin
from .models import Reseller, District, RevenueShare, AuditLog, Partner, Commission


@admin.register(Reseller)
class ResellerAdmin(admin.ModelAdmin):
    list_display = ['name', 'commission_rate', 'is_active']


@admin.register(District)
class DistrictAdmin(admin.ModelAdmin):
    list_display = ['name', 'reseller', 'subscription_status', 'plan_type', 'current_period_end']
    list_filter = ['subscription_status', 'plan_type']


@admin.register(RevenueShare)
class RevenueShareAdmin(admin.ModelAdmin):
    list_display = ['invoice_id', 'district', 'reseller', 'amount_cents', 'commission_cents', 'payout_status']
    list_filter = ['payout_status']
    search_fields = ['invoice_id']


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ['action', 'entity_type', 'entity_id', 'created_at']
    list_filter = ['action']


@admin.register(Partner)
class PartnerAdmin(admin.ModelAdmin):
    list_display = ['name', 'tenant', 'commission_rate', 'is_active']


@admin.register(Commission)
class CommissionAdmin(admin.ModelAdmin):
    list_display = ['order', 'partner', 'amount', 'rate', 'status']
