from django.contrib import admin

from .models import Order, OrderItem


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ("order_number", "shop", "status", "total_amount", "delivery_method", "created_at")
    list_filter = ("status", "delivery_method")
    search_fields = ("order_number", "recipient_name", "recipient_phone")
    inlines = [OrderItemInline]
