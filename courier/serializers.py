from decimal import Decimal

from rest_framework import serializers

from location.models import Location

from .models import (
    CourierCredential,
    CourierOrder,
    CourierProvider,
    CourierStatus,
    Environment,
    ServiceableArea,
    TrackingHistory,
)


class CourierProviderSerializer(serializers.ModelSerializer):
    slug = serializers.SlugField(required=False, allow_blank=True)
    status_mappings = serializers.JSONField(required=False)

    class Meta:
        model = CourierProvider
        fields = [
            "id",
            "name",
            "slug",
            "display_name",
            "description",
            "logo",
            "sandbox_base_url",
            "production_base_url",
            "auth_type",
            "supports_cod",
            "supports_tracking",
            "supports_bulk_order",
            "supports_webhook",
            "priority",
            "is_preferred",
            "is_active",
            "status_mappings",
            "webhook_secret",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["id", "created_at", "updated_at"]
        extra_kwargs = {"webhook_secret": {"write_only": True}}

    def validate_status_mappings(self, value):
        if not isinstance(value, dict):
            raise serializers.ValidationError("Expected an object of status -> list of provider statuses.")
        unknown = [key for key in value if key not in CourierStatus.values]
        if unknown:
            raise serializers.ValidationError(f"Unknown statuses: {', '.join(unknown)}")
        for key, raw in value.items():
            if not isinstance(raw, list):
                raise serializers.ValidationError(f"{key} must map to a list of strings.")
        return value


class CourierCredentialSerializer(serializers.ModelSerializer):
    provider_name = serializers.CharField(source="provider.name", read_only=True)
    has_access_token = serializers.SerializerMethodField()

    class Meta:
        model = CourierCredential
        fields = [
            "id",
            "provider",
            "provider_name",
            "vendor",
            "environment",
            "client_id",
            "client_secret",
            "username",
            "password",
            "api_key",
            "bearer_token",
            "store_id",
            "merchant_id",
            "is_active",
            "has_access_token",
            "token_expires_at",
            "last_verified_at",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["id", "token_expires_at", "last_verified_at", "created_at", "updated_at"]
        extra_kwargs = {
            "client_secret": {"write_only": True},
            "password": {"write_only": True},
            "api_key": {"write_only": True},
            "bearer_token": {"write_only": True},
        }
        # Uniqueness of the active scope is enforced by the credential service.
        validators = []

    def get_has_access_token(self, obj):
        return bool(obj.access_token)


class CredentialUpdateSerializer(serializers.Serializer):
    client_id = serializers.CharField(required=False, allow_blank=True)
    client_secret = serializers.CharField(required=False, allow_blank=True)
    username = serializers.CharField(required=False, allow_blank=True)
    password = serializers.CharField(required=False, allow_blank=True)
    api_key = serializers.CharField(required=False, allow_blank=True)
    bearer_token = serializers.CharField(required=False, allow_blank=True)
    store_id = serializers.CharField(required=False, allow_blank=True)
    merchant_id = serializers.CharField(required=False, allow_blank=True)


class ServiceableAreaSerializer(serializers.ModelSerializer):
    provider_slug = serializers.CharField(source="provider.slug", read_only=True)
    location_name = serializers.CharField(source="location.name", read_only=True)
    location_path = serializers.SerializerMethodField()

    class Meta:
        model = ServiceableArea
        fields = [
            "id",
            "provider",
            "provider_slug",
            "location",
            "location_name",
            "location_path",
            "courier_city_id",
            "courier_zone_id",
            "courier_area_id",
            "courier_city_name",
            "courier_zone_name",
            "courier_area_name",
            "home_delivery_available",
            "pickup_available",
            "is_active",
            "last_synced_at",
        ]

    def get_location_path(self, obj):
        return " > ".join(obj.location.lineage())


class CredentialQuerySerializer(serializers.Serializer):
    provider = serializers.UUIDField(required=False)
    environment = serializers.ChoiceField(choices=Environment.choices, required=False)


class AreaQuerySerializer(serializers.Serializer):
    provider = serializers.UUIDField(required=False)
    location = serializers.UUIDField(required=False)
    search = serializers.CharField(required=False, allow_blank=True, default="")


class AreaRowSerializer(serializers.Serializer):
    location_id = serializers.PrimaryKeyRelatedField(queryset=Location.objects.all(), source="location")
    courier_area_id = serializers.CharField(max_length=50)
    courier_area_name = serializers.CharField(max_length=150)
    courier_city_id = serializers.CharField(max_length=50, required=False, allow_blank=True)
    courier_zone_id = serializers.CharField(max_length=50, required=False, allow_blank=True)
    courier_city_name = serializers.CharField(max_length=150, required=False, allow_blank=True)
    courier_zone_name = serializers.CharField(max_length=150, required=False, allow_blank=True)
    home_delivery_available = serializers.BooleanField(required=False, default=True)
    pickup_available = serializers.BooleanField(required=False, default=True)
    is_active = serializers.BooleanField(required=False, default=True)
    raw_data = serializers.JSONField(required=False)

    def to_internal_value(self, data):
        values = super().to_internal_value(data)
        values["location_id"] = values.pop("location").pk
        return values


class AreaSyncSerializer(serializers.Serializer):
    provider = serializers.PrimaryKeyRelatedField(queryset=CourierProvider.objects.all())
    areas = AreaRowSerializer(many=True, allow_empty=False)


class QuoteRequestSerializer(serializers.Serializer):
    pickup_location_id = serializers.UUIDField()
    delivery_location_id = serializers.UUIDField()
    weight = serializers.DecimalField(max_digits=8, decimal_places=3, min_value=Decimal("0.001"))
    cod_amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal("0"), required=False, default=Decimal("0"))
    delivery_type = serializers.ChoiceField(choices=CourierOrder.DeliveryType.choices, required=False, default=CourierOrder.DeliveryType.NORMAL)


class DispatchSerializer(serializers.Serializer):
    order_id = serializers.UUIDField()
    vendor_id = serializers.UUIDField()
    weight = serializers.DecimalField(max_digits=8, decimal_places=3, min_value=Decimal("0.001"))
    cod_amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal("0"), required=False, default=Decimal("0"))
    delivery_type = serializers.ChoiceField(choices=CourierOrder.DeliveryType.choices, required=False, default=CourierOrder.DeliveryType.NORMAL)
    vendor_warehouse_location_id = serializers.UUIDField(required=False, allow_null=True)
    delivery_location_id = serializers.UUIDField(required=False, allow_null=True)
    recipient_name = serializers.CharField(max_length=150, required=False, allow_blank=True, default="")
    recipient_phone = serializers.CharField(max_length=20, required=False, allow_blank=True, default="")
    recipient_secondary_phone = serializers.CharField(max_length=20, required=False, allow_blank=True, default="")
    recipient_address = serializers.CharField(required=False, allow_blank=True, default="")
    item_description = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
    item_quantity = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    item_value = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, allow_null=True)
    special_instructions = serializers.CharField(required=False, allow_blank=True, default="")


class TrackingHistorySerializer(serializers.ModelSerializer):
    class Meta:
        model = TrackingHistory
        fields = ["status", "courier_status", "message_en", "message_bn", "location", "timestamp"]


class CourierOrderSerializer(serializers.ModelSerializer):
    order_number = serializers.CharField(source="order.order_number", read_only=True)
    provider_slug = serializers.CharField(source="provider.slug", read_only=True)
    provider_name = serializers.CharField(source="provider.name", read_only=True)

    class Meta:
        model = CourierOrder
        fields = [
            "id",
            "order",
            "order_number",
            "vendor",
            "provider",
            "provider_slug",
            "provider_name",
            "environment",
            "courier_order_id",
            "courier_tracking_id",
            "consignment_id",
            "recipient_name",
            "recipient_phone",
            "recipient_address",
            "item_description",
            "item_quantity",
            "item_weight",
            "delivery_type",
            "cod_amount",
            "delivery_charge",
            "cod_charge",
            "total_charge",
            "estimated_delivery_days",
            "status",
            "courier_status",
            "last_status_update",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class CourierOrderDetailSerializer(CourierOrderSerializer):
    tracking_history = TrackingHistorySerializer(many=True, read_only=True)

    class Meta(CourierOrderSerializer.Meta):
        fields = CourierOrderSerializer.Meta.fields + ["raw_response", "tracking_history"]
        read_only_fields = fields


# -----------------------------
# Courier area and store discovery
# -----------------------------
class DiscoveryQuerySerializer(serializers.Serializer):
    environment = serializers.ChoiceField(choices=Environment.choices, required=False)


class RedXAreaQuerySerializer(DiscoveryQuerySerializer):
    post_code = serializers.IntegerField(required=False)
    district_name = serializers.CharField(required=False, allow_blank=True, default="")


class PathaoStoreSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=150)
    contact_name = serializers.CharField(max_length=150)
    contact_number = serializers.CharField(max_length=20)
    secondary_contact = serializers.CharField(max_length=20, required=False, allow_blank=True)
    address = serializers.CharField()
    city_id = serializers.IntegerField(min_value=1)
    zone_id = serializers.IntegerField(min_value=1)
    area_id = serializers.IntegerField(min_value=1)


class RedXPickupStoreSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=150)
    phone = serializers.CharField(max_length=20)
    address = serializers.CharField()
    area_id = serializers.IntegerField(min_value=1)
