from django.contrib import admin
from .models import IdempotencyRecord


@admin.register(IdempotencyRecord)
class IdempotencyRecordAdmin(admin.ModelAdmin):
    list_display = ['operation_type', 'caller_key', 'key', 'entity_id', 'created_at', 'expires_at']
    list_filter = ['operation_type', 'tenant']
    search_fields = ['key', 'caller_key']
    readonly_fields = ['result_data']
