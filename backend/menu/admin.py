from django.contrib import admin
from .models import MenuCategory, MenuItem, DiningTable


@admin.register(MenuCategory)
class MenuCategoryAdmin(admin.ModelAdmin):
    list_display = ['name', 'tenant', 'position']
    list_filter = ['tenant']


@admin.register(MenuItem)
class MenuItemAdmin(admin.ModelAdmin):
    list_display = ['name', 'tenant', 'category', 'price', 'is_available']
    list_filter = ['tenant', 'is_available']
    search_fields = ['name']


@admin.register(DiningTable)
class DiningTableAdmin(admin.ModelAdmin):
    list_display = ['number', 'tenant', 'is_active']
    list_filter = ['tenant', 'is_active']
    readonly_fields = ['qr_token']
