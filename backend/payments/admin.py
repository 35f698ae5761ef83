from django.contrib import admin
from .models import Payment, Refund, Settlement, Tip, WebhookAuditLog


class RefundInline(admin.TabularInline):
    model = Refund
    extra = 0
    readonly_fields = ("amount", "reason", "status", "succeeded_at")
    can_delete = False

    def get_queryset(self, request):
        """Use all_objects to bypass TenantManager, Django will filter by parent FK"""
        return Refund.all_objects.all()

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ("id", "bill", "method", "amount", "status", "reference", "succeeded_at")
    list_filter = ("status", "method", "tenant")
    search_fields = ("reference", "gateway_payment_id")
    readonly_fields = ("succeeded_at", "failed_at", "settlement", "gateway_payment_id")
    inlines = [RefundInline]

    def get_queryset(self, request):
        return Payment.all_objects.select_related("bill", "tenant")


@admin.register(Tip)
class TipAdmin(admin.ModelAdmin):
    list_display = ("bill", "amount", "percentage", "created_at")

    def get_queryset(self, request):
        return Tip.all_objects.select_related("bill")


@admin.register(Settlement)
class SettlementAdmin(admin.ModelAdmin):
    list_display = (
        "date", "tenant", "status", "total_sales", "transaction_count", "gateway_amount", "variance",
    )
    list_filter = ("status", "tenant")
    date_hierarchy = "date"

    def get_queryset(self, request):
        return Settlement.all_objects.select_related("tenant")


@admin.register(WebhookAuditLog)
class WebhookAuditLogAdmin(admin.ModelAdmin):
    list_display = ("gateway_payment_id", "event_type", "status", "reason", "attempts", "processed_at")
    list_filter = ("status", "event_type")
    search_fields = ("gateway_payment_id",)
    readonly_fields = ("payload", "error_message")
