from django.contrib import admin
from .models import Bill, BillItem, BillSequence


class BillItemInline(admin.TabularInline):
    model = BillItem
    extra = 0
    fields = ("name", "quantity", "price", "order")
    readonly_fields = ("order",)

    def get_queryset(self, request):
        """Use all_objects to bypass TenantManager, Django will filter by parent FK"""
        return BillItem.all_objects.select_related("order")


@admin.register(Bill)
class BillAdmin(admin.ModelAdmin):
    list_display = ("bill_number", "tenant", "table", "status", "total", "balance", "closed_at")
    list_filter = ("status", "tenant")
    search_fields = ("bill_number",)
    readonly_fields = (
        "subtotal", "cgst", "sgst", "tax", "total", "paid_amount", "balance", "closed_at",
    )
    inlines = [BillItemInline]

    def get_queryset(self, request):
        return Bill.all_objects.select_related("tenant", "table")


@admin.register(BillSequence)
class BillSequenceAdmin(admin.ModelAdmin):
    list_display = ("tenant", "year", "last_number")
