import uuid
from datetime import timedelta

from django.db import models
from django.db.models import Q
from django.utils import timezone
from django.utils.text import slugify

from location.models import Location
from order.models import Order
from shop.models import Shop


class Environment(models.TextChoices):
    SANDBOX = "SANDBOX", "Sandbox"
    PRODUCTION = "PRODUCTION", "Production"


class CourierStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    READY_FOR_PICKUP = "READY_FOR_PICKUP", "Ready for Pickup"
    PICKED_UP = "PICKED_UP", "Picked Up"
    IN_TRANSIT = "IN_TRANSIT", "In Transit"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY", "Out for Delivery"
    DELIVERED = "DELIVERED", "Delivered"
    RETURNED = "RETURNED", "Returned"
    CANCELLED = "CANCELLED", "Cancelled"
    ON_HOLD = "ON_HOLD", "On Hold"
    FAILED = "FAILED", "Failed"
    UNKNOWN = "UNKNOWN", "Unknown"


TERMINAL_STATUSES = frozenset(
    status.value
    for status in (
        CourierStatus.DELIVERED,
        CourierStatus.RETURNED,
        CourierStatus.CANCELLED,
        CourierStatus.FAILED,
    )
)


def default_status_mappings():
    return {
        "PENDING": ["Pending", "Created", "Accepted"],
        "PICKED_UP": ["Picked Up", "Collected"],
        "IN_TRANSIT": ["In Transit", "On the way"],
        "OUT_FOR_DELIVERY": ["Out for Delivery"],
        "DELIVERED": ["Delivered", "Completed"],
        "RETURNED": ["Returned", "Return"],
        "CANCELLED": ["Cancelled", "Canceled"],
        "ON_HOLD": ["On Hold", "Held"],
    }


class CourierProvider(models.Model):
    class AuthType(models.TextChoices):
        OAUTH2 = "OAUTH2", "OAuth2"
        API_KEY = "API_KEY", "API Key"
        BEARER = "BEARER", "Bearer Token"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=120, unique=True)
    slug = models.SlugField(max_length=60, unique=True)  # adapter registry key, e.g. pathao
    display_name = models.CharField(max_length=120, blank=True)
    description = models.TextField(blank=True)
    logo = models.URLField(blank=True)

    sandbox_base_url = models.URLField(blank=True)
    production_base_url = models.URLField()
    auth_type = models.CharField(max_length=20, choices=AuthType.choices)

    supports_cod = models.BooleanField(default=True)
    supports_tracking = models.BooleanField(default=True)
    supports_bulk_order = models.BooleanField(default=False)
    supports_webhook = models.BooleanField(default=False)

    priority = models.PositiveIntegerField(default=100)
    is_preferred = models.BooleanField(default=False)
    is_active = models.BooleanField(default=True)

    status_mappings = models.JSONField(default=default_status_mappings, blank=True)
    webhook_secret = models.CharField(max_length=255, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-is_preferred", "priority", "name"]

    def __str__(self):
        return f"{self.name} ({self.slug})"

    def save(self, *args, **kwargs):
        if not self.slug and self.name:
            self.slug = slugify(self.name)
        if not self.display_name:
            self.display_name = self.name
        super().save(*args, **kwargs)

    def base_url_for(self, environment: str) -> str:
        if environment == Environment.SANDBOX:
            return (self.sandbox_base_url or self.production_base_url).rstrip("/")
        return self.production_base_url.rstrip("/")

    def has_open_orders(self) -> bool:
        return self.courier_orders.exclude(status__in=TERMINAL_STATUSES).exists()


class CourierCredential(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    provider = models.ForeignKey(CourierProvider, related_name="credentials", on_delete=models.CASCADE)
    vendor = models.ForeignKey(
        Shop,
        null=True,
        blank=True,
        related_name="courier_credentials",
        on_delete=models.CASCADE,
    )
    environment = models.CharField(max_length=20, choices=Environment.choices, default=Environment.PRODUCTION)

    client_id = models.CharField(max_length=255, blank=True)
    client_secret = models.CharField(max_length=255, blank=True)
    username = models.CharField(max_length=255, blank=True)
    password = models.CharField(max_length=255, blank=True)
    api_key = models.CharField(max_length=255, blank=True)
    bearer_token = models.TextField(blank=True)
    store_id = models.CharField(max_length=100, blank=True)
    merchant_id = models.CharField(max_length=100, blank=True)

    # OAuth token cache
    access_token = models.TextField(blank=True)
    refresh_token = models.TextField(blank=True)
    token_expires_at = models.DateTimeField(null=True, blank=True)

    is_active = models.BooleanField(default=True)
    last_verified_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["provider", "environment", "vendor"],
                condition=Q(is_active=True, vendor__isnull=False),
                name="courier_unique_active_vendor_credential",
            ),
            models.UniqueConstraint(
                fields=["provider", "environment"],
                condition=Q(is_active=True, vendor__isnull=True),
                name="courier_unique_active_platform_credential",
            ),
        ]

    def __str__(self):
        scope = self.vendor.name if self.vendor_id else "platform"
        return f"{self.provider.name} / {self.environment} / {scope}"

    @property
    def cache_key(self):
        return (str(self.provider_id), self.environment, str(self.vendor_id) if self.vendor_id else None)

    def token_is_fresh(self, buffer: timedelta) -> bool:
        if not self.access_token or not self.token_expires_at:
            return False
        return self.token_expires_at > timezone.now() + buffer


class ServiceableArea(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    provider = models.ForeignKey(CourierProvider, related_name="serviceable_areas", on_delete=models.CASCADE)
    location = models.ForeignKey(Location, related_name="courier_areas", on_delete=models.CASCADE)

    courier_city_id = models.CharField(max_length=50, blank=True)
    courier_zone_id = models.CharField(max_length=50, blank=True)
    courier_area_id = models.CharField(max_length=50)
    courier_city_name = models.CharField(max_length=150, blank=True)
    courier_zone_name = models.CharField(max_length=150, blank=True)
    courier_area_name = models.CharField(max_length=150)

    home_delivery_available = models.BooleanField(default=True)
    pickup_available = models.BooleanField(default=True)
    is_active = models.BooleanField(default=True)
    raw_data = models.JSONField(default=dict, blank=True)
    last_synced_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["-last_synced_at"]
        constraints = [
            models.UniqueConstraint(fields=["provider", "courier_area_id"], name="courier_unique_provider_area"),
        ]
        indexes = [
            models.Index(fields=["provider", "location"], name="courier_area_lookup_idx"),
        ]

    def __str__(self):
        return f"{self.provider.slug}:{self.courier_area_id} -> {self.location.name}"


class CourierOrder(models.Model):
    Status = CourierStatus

    class DeliveryType(models.TextChoices):
        NORMAL = "NORMAL", "Normal"
        EXPRESS = "EXPRESS", "Express"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order = models.ForeignKey(Order, related_name="courier_orders", on_delete=models.PROTECT)
    vendor = models.ForeignKey(Shop, related_name="courier_orders", on_delete=models.PROTECT)
    provider = models.ForeignKey(CourierProvider, related_name="courier_orders", on_delete=models.PROTECT)
    environment = models.CharField(max_length=20, choices=Environment.choices, default=Environment.PRODUCTION)

    courier_order_id = models.CharField(max_length=150, blank=True)
    courier_tracking_id = models.CharField(max_length=150, blank=True)
    consignment_id = models.CharField(max_length=150, blank=True)

    # Recipient snapshot
    recipient_name = models.CharField(max_length=150)
    recipient_phone = models.CharField(max_length=20)
    recipient_secondary_phone = models.CharField(max_length=20, blank=True)
    recipient_address = models.TextField()
    recipient_location = models.ForeignKey(
        Location, null=True, blank=True, related_name="courier_deliveries", on_delete=models.SET_NULL
    )

    # Pickup snapshot
    pickup_location = models.ForeignKey(
        Location, null=True, blank=True, related_name="courier_pickups", on_delete=models.SET_NULL
    )
    pickup_area = models.ForeignKey(
        ServiceableArea, null=True, blank=True, related_name="pickup_orders", on_delete=models.SET_NULL
    )
    delivery_area = models.ForeignKey(
        ServiceableArea, null=True, blank=True, related_name="delivery_orders", on_delete=models.SET_NULL
    )

    # Package
    item_description = models.CharField(max_length=255, blank=True)
    item_quantity = models.PositiveIntegerField(default=1)
    item_weight = models.DecimalField(max_digits=8, decimal_places=3)
    item_value = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    delivery_type = models.CharField(max_length=10, choices=DeliveryType.choices, default=DeliveryType.NORMAL)
    special_instructions = models.TextField(blank=True)

    # Pricing
    cod_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    delivery_charge = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    cod_charge = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    total_charge = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    estimated_delivery_days = models.PositiveSmallIntegerField(null=True, blank=True)

    status = models.CharField(max_length=30, choices=CourierStatus.choices, default=CourierStatus.PENDING)
    courier_status = models.CharField(max_length=150, blank=True)
    last_status_update = models.DateTimeField(default=timezone.now)
    # {"provider": <slug>, "kind": "create_order" | "error" | "tracking", "payload": {...}}
    raw_response = models.JSONField(default=dict, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status"], name="courier_order_status_idx"),
            models.Index(fields=["courier_tracking_id"], name="courier_order_tracking_idx"),
            models.Index(fields=["vendor", "order"], name="courier_order_vendor_idx"),
        ]

    def __str__(self):
        return f"{self.order.order_number} - {self.provider.slug} - {self.status}"

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class TrackingHistory(models.Model):
    courier_order = models.ForeignKey(CourierOrder, related_name="tracking_history", on_delete=models.PROTECT)
    status = models.CharField(max_length=30, choices=CourierStatus.choices)
    courier_status = models.CharField(max_length=150, blank=True)
    message_en = models.CharField(max_length=255, blank=True)
    message_bn = models.CharField(max_length=255, blank=True)
    location = models.CharField(max_length=150, blank=True)
    timestamp = models.DateTimeField(default=timezone.now)
    raw_data = models.JSONField(default=dict, blank=True)

    class Meta:
        ordering = ["timestamp", "id"]
        verbose_name_plural = "tracking history"

    def __str__(self):
        return f"{self.courier_order_id} {self.status} @ {self.timestamp:%Y-%m-%d %H:%M}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("Tracking history entries are append-only")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError("Tracking history entries cannot be deleted")


class CourierWebhookLog(models.Model):
    class EventType(models.TextChoices):
        RECEIVED = "RECEIVED", "Received"
        PROCESSED = "PROCESSED", "Processed"
        NOT_FOUND = "NOT_FOUND", "Not Found"
        IGNORED = "IGNORED", "Ignored"
        REJECTED = "REJECTED", "Rejected"
        FAILED = "FAILED", "Failed"

    provider = models.CharField(max_length=60)
    event_type = models.CharField(max_length=20, choices=EventType.choices, default=EventType.RECEIVED)
    reference = models.CharField(max_length=150, blank=True)
    payload = models.JSONField(default=dict, blank=True)
    detail = models.CharField(max_length=255, blank=True)
    processed = models.BooleanField(default=False)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["reference"], name="courier_webhook_ref_idx"),
            models.Index(fields=["processed"], name="courier_webhook_proc_idx"),
        ]
