from django.contrib import admin

from .models import Shop, Warehouse


class WarehouseInline(admin.TabularInline):
    model = Warehouse
    extra = 0


@admin.register(Shop)
class ShopAdmin(admin.ModelAdmin):
    list_display = ("name", "owner", "is_active", "created_at")
    list_filter = ("is_active",)
    search_fields = ("name", "owner__username", "owner__email")
    inlines = [WarehouseInline]


@admin.register(Warehouse)
class WarehouseAdmin(admin.ModelAdmin):
    list_display = ("name", "shop", "location", "is_default", "is_active")
    list_filter = ("is_default", "is_active")
    search_fields = ("name", "shop__name")
