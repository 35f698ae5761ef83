from django.contrib import admin
from .models import Order, OrderItem


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    readonly_fields = ("name_at_sale", "price_at_sale", "get_line_item_total")
    fields = ("name_at_sale", "quantity", "price_at_sale", "get_line_item_total")

    def get_line_item_total(self, obj):
        return f"{obj.line_total:,.2f}"

    get_line_item_total.short_description = "Line Item Total"

    def get_queryset(self, request):
        return OrderItem.all_objects.all()

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ("id", "tenant", "table", "status", "source", "total", "is_priority", "created_at")
    list_filter = ("status", "source", "is_priority", "tenant")
    readonly_fields = ("total", "created_at", "updated_at", "served_at", "cancelled_at")
    inlines = [OrderItemInline]

    def get_queryset(self, request):
        return Order.all_objects.select_related("tenant", "table")
