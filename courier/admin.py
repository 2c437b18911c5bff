from django.contrib import admin

from .models import (
    CourierCredential,
    CourierOrder,
    CourierProvider,
    CourierWebhookLog,
    ServiceableArea,
    TrackingHistory,
)


@admin.register(CourierProvider)
class CourierProviderAdmin(admin.ModelAdmin):
    list_display = ("name", "slug", "auth_type", "is_active", "is_preferred", "priority", "created_at")
    list_filter = ("is_active", "auth_type", "is_preferred")
    search_fields = ("name", "slug")


@admin.register(CourierCredential)
class CourierCredentialAdmin(admin.ModelAdmin):
    list_display = ("provider", "environment", "vendor", "is_active", "token_expires_at", "last_verified_at")
    list_filter = ("environment", "is_active", "provider")
    search_fields = ("provider__name", "vendor__name", "store_id")
    readonly_fields = ("access_token", "refresh_token", "token_expires_at", "last_verified_at")


@admin.register(ServiceableArea)
class ServiceableAreaAdmin(admin.ModelAdmin):
    list_display = ("provider", "location", "courier_area_id", "courier_area_name", "home_delivery_available", "pickup_available", "is_active")
    list_filter = ("provider", "is_active", "home_delivery_available", "pickup_available")
    search_fields = ("courier_area_name", "courier_zone_name", "courier_city_name", "location__name")


class TrackingHistoryInline(admin.TabularInline):
    model = TrackingHistory
    extra = 0
    can_delete = False
    readonly_fields = ("status", "courier_status", "message_en", "message_bn", "location", "timestamp")

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(CourierOrder)
class CourierOrderAdmin(admin.ModelAdmin):
    list_display = ("id", "order", "provider", "status", "courier_tracking_id", "total_charge", "updated_at")
    list_filter = ("status", "provider", "environment")
    search_fields = ("order__order_number", "courier_tracking_id", "courier_order_id")
    inlines = [TrackingHistoryInline]

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(CourierWebhookLog)
class CourierWebhookLogAdmin(admin.ModelAdmin):
    list_display = ("provider", "event_type", "reference", "processed", "created_at")
    list_filter = ("provider", "event_type", "processed")
    search_fields = ("reference",)
