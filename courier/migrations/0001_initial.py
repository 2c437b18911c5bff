from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone
import uuid

import courier.models


STATUS_CHOICES = [
    ("PENDING", "Pending"),
    ("READY_FOR_PICKUP", "Ready for Pickup"),
    ("PICKED_UP", "Picked Up"),
    ("IN_TRANSIT", "In Transit"),
    ("OUT_FOR_DELIVERY", "Out for Delivery"),
    ("DELIVERED", "Delivered"),
    ("RETURNED", "Returned"),
    ("CANCELLED", "Cancelled"),
    ("ON_HOLD", "On Hold"),
    ("FAILED", "Failed"),
    ("UNKNOWN", "Unknown"),
]
ENVIRONMENT_CHOICES = [("SANDBOX", "Sandbox"), ("PRODUCTION", "Production")]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("location", "0001_initial"),
        ("order", "0001_initial"),
        ("shop", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="CourierProvider",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=120, unique=True)),
                ("slug", models.SlugField(max_length=60, unique=True)),
                ("display_name", models.CharField(blank=True, max_length=120)),
                ("description", models.TextField(blank=True)),
                ("logo", models.URLField(blank=True)),
                ("sandbox_base_url", models.URLField(blank=True)),
                ("production_base_url", models.URLField()),
                ("auth_type", models.CharField(choices=[("OAUTH2", "OAuth2"), ("API_KEY", "API Key"), ("BEARER", "Bearer Token")], max_length=20)),
                ("supports_cod", models.BooleanField(default=True)),
                ("supports_tracking", models.BooleanField(default=True)),
                ("supports_bulk_order", models.BooleanField(default=False)),
                ("supports_webhook", models.BooleanField(default=False)),
                ("priority", models.PositiveIntegerField(default=100)),
                ("is_preferred", models.BooleanField(default=False)),
                ("is_active", models.BooleanField(default=True)),
                ("status_mappings", models.JSONField(blank=True, default=courier.models.default_status_mappings)),
                ("webhook_secret", models.CharField(blank=True, max_length=255)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={"ordering": ["-is_preferred", "priority", "name"]},
        ),
        migrations.CreateModel(
            name="CourierCredential",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("environment", models.CharField(choices=ENVIRONMENT_CHOICES, default="PRODUCTION", max_length=20)),
                ("client_id", models.CharField(blank=True, max_length=255)),
                ("client_secret", models.CharField(blank=True, max_length=255)),
                ("username", models.CharField(blank=True, max_length=255)),
                ("password", models.CharField(blank=True, max_length=255)),
                ("api_key", models.CharField(blank=True, max_length=255)),
                ("bearer_token", models.TextField(blank=True)),
                ("store_id", models.CharField(blank=True, max_length=100)),
                ("merchant_id", models.CharField(blank=True, max_length=100)),
                ("access_token", models.TextField(blank=True)),
                ("refresh_token", models.TextField(blank=True)),
                ("token_expires_at", models.DateTimeField(blank=True, null=True)),
                ("is_active", models.BooleanField(default=True)),
                ("last_verified_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("provider", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="credentials", to="courier.courierprovider")),
                ("vendor", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.CASCADE, related_name="courier_credentials", to="shop.shop")),
            ],
            options={"ordering": ["-created_at"]},
        ),
        migrations.CreateModel(
            name="ServiceableArea",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("courier_city_id", models.CharField(blank=True, max_length=50)),
                ("courier_zone_id", models.CharField(blank=True, max_length=50)),
                ("courier_area_id", models.CharField(max_length=50)),
                ("courier_city_name", models.CharField(blank=True, max_length=150)),
                ("courier_zone_name", models.CharField(blank=True, max_length=150)),
                ("courier_area_name", models.CharField(max_length=150)),
                ("home_delivery_available", models.BooleanField(default=True)),
                ("pickup_available", models.BooleanField(default=True)),
                ("is_active", models.BooleanField(default=True)),
                ("raw_data", models.JSONField(blank=True, default=dict)),
                ("last_synced_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("location", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="courier_areas", to="location.location")),
                ("provider", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="serviceable_areas", to="courier.courierprovider")),
            ],
            options={"ordering": ["-last_synced_at"]},
        ),
        migrations.CreateModel(
            name="CourierOrder",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("environment", models.CharField(choices=ENVIRONMENT_CHOICES, default="PRODUCTION", max_length=20)),
                ("courier_order_id", models.CharField(blank=True, max_length=150)),
                ("courier_tracking_id", models.CharField(blank=True, max_length=150)),
                ("consignment_id", models.CharField(blank=True, max_length=150)),
                ("recipient_name", models.CharField(max_length=150)),
                ("recipient_phone", models.CharField(max_length=20)),
                ("recipient_secondary_phone", models.CharField(blank=True, max_length=20)),
                ("recipient_address", models.TextField()),
                ("item_description", models.CharField(blank=True, max_length=255)),
                ("item_quantity", models.PositiveIntegerField(default=1)),
                ("item_weight", models.DecimalField(decimal_places=3, max_digits=8)),
                ("item_value", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ("delivery_type", models.CharField(choices=[("NORMAL", "Normal"), ("EXPRESS", "Express")], default="NORMAL", max_length=10)),
                ("special_instructions", models.TextField(blank=True)),
                ("cod_amount", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("delivery_charge", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("cod_charge", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("total_charge", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("estimated_delivery_days", models.PositiveSmallIntegerField(blank=True, null=True)),
                ("status", models.CharField(choices=STATUS_CHOICES, default="PENDING", max_length=30)),
                ("courier_status", models.CharField(blank=True, max_length=150)),
                ("last_status_update", models.DateTimeField(default=django.utils.timezone.now)),
                ("raw_response", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("delivery_area", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="delivery_orders", to="courier.serviceablearea")),
                ("order", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="courier_orders", to="order.order")),
                ("pickup_area", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="pickup_orders", to="courier.serviceablearea")),
                ("pickup_location", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="courier_pickups", to="location.location")),
                ("provider", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="courier_orders", to="courier.courierprovider")),
                ("recipient_location", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="courier_deliveries", to="location.location")),
                ("vendor", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="courier_orders", to="shop.shop")),
            ],
            options={"ordering": ["-created_at"]},
        ),
        migrations.CreateModel(
            name="TrackingHistory",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("status", models.CharField(choices=STATUS_CHOICES, max_length=30)),
                ("courier_status", models.CharField(blank=True, max_length=150)),
                ("message_en", models.CharField(blank=True, max_length=255)),
                ("message_bn", models.CharField(blank=True, max_length=255)),
                ("location", models.CharField(blank=True, max_length=150)),
                ("timestamp", models.DateTimeField(default=django.utils.timezone.now)),
                ("raw_data", models.JSONField(blank=True, default=dict)),
                ("courier_order", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="tracking_history", to="courier.courierorder")),
            ],
            options={"ordering": ["timestamp", "id"], "verbose_name_plural": "tracking history"},
        ),
        migrations.CreateModel(
            name="CourierWebhookLog",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("provider", models.CharField(max_length=60)),
                ("event_type", models.CharField(choices=[("RECEIVED", "Received"), ("PROCESSED", "Processed"), ("NOT_FOUND", "Not Found"), ("IGNORED", "Ignored"), ("REJECTED", "Rejected"), ("FAILED", "Failed")], default="RECEIVED", max_length=20)),
                ("reference", models.CharField(blank=True, max_length=150)),
                ("payload", models.JSONField(blank=True, default=dict)),
                ("detail", models.CharField(blank=True, max_length=255)),
                ("processed", models.BooleanField(default=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={"ordering": ["-created_at"]},
        ),
        migrations.AddConstraint(
            model_name="couriercredential",
            constraint=models.UniqueConstraint(condition=models.Q(("is_active", True), ("vendor__isnull", False)), fields=("provider", "environment", "vendor"), name="courier_unique_active_vendor_credential"),
        ),
        migrations.AddConstraint(
            model_name="couriercredential",
            constraint=models.UniqueConstraint(condition=models.Q(("is_active", True), ("vendor__isnull", True)), fields=("provider", "environment"), name="courier_unique_active_platform_credential"),
        ),
        migrations.AddConstraint(
            model_name="serviceablearea",
            constraint=models.UniqueConstraint(fields=("provider", "courier_area_id"), name="courier_unique_provider_area"),
        ),
        migrations.AddIndex(
            model_name="serviceablearea",
            index=models.Index(fields=["provider", "location"], name="courier_area_lookup_idx"),
        ),
        migrations.AddIndex(
            model_name="courierorder",
            index=models.Index(fields=["status"], name="courier_order_status_idx"),
        ),
        migrations.AddIndex(
            model_name="courierorder",
            index=models.Index(fields=["courier_tracking_id"], name="courier_order_tracking_idx"),
        ),
        migrations.AddIndex(
            model_name="courierorder",
            index=models.Index(fields=["vendor", "order"], name="courier_order_vendor_idx"),
        ),
        migrations.AddIndex(
            model_name="courierwebhooklog",
            index=models.Index(fields=["reference"], name="courier_webhook_ref_idx"),
        ),
        migrations.AddIndex(
            model_name="courierwebhooklog",
            index=models.Index(fields=["processed"], name="courier_webhook_proc_idx"),
        ),
    ]
