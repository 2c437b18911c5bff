import json
from datetime import timedelta
from decimal import Decimal
from unittest.mock import MagicMock

from django.conf import settings
from django.contrib.auth import get_user_model
from django.utils import timezone

from courier.adapters import Quote
from courier.adapters.base import CreatedOrder
from courier.exceptions import AdapterNotRegistered
from courier.models import CourierCredential, CourierOrder, CourierProvider, ServiceableArea
from location.models import Location
from order.models import Order, OrderItem
from shop.models import Shop, Warehouse

User = get_user_model()


def fake_response(payload, status_code=200):
    response = MagicMock()
    response.ok = 200 <= status_code < 300
    response.status_code = status_code
    response.json.return_value = payload
    response.text = json.dumps(payload)
    return response


class StubAdapter:
    """Stands in for a courier adapter in selection and dispatch tests."""

    def __init__(self, total=None, error=None, create_error=None, tracking_id="TRK-1"):
        self.total = total
        self.error = error
        self.create_error = create_error
        self.tracking_id = tracking_id
        self.quote_calls = 0
        self.created = []

    def quote(self, pickup_area, delivery_area, weight, cod_amount, delivery_type):
        self.quote_calls += 1
        if self.error is not None:
            raise self.error
        if self.total is None:
            return None
        total = Decimal(str(self.total))
        return Quote(delivery_charge=total, cod_charge=Decimal("0.00"), total_charge=total, estimated_days=2)

    def create_order(self, payload, pickup_area, delivery_area):
        if self.create_error is not None:
            raise self.create_error
        self.created.append(payload)
        return CreatedOrder(
            provider_order_id=f"ORD-{self.tracking_id}",
            provider_tracking_id=self.tracking_id,
            consignment_id="",
            raw_response={"tracking_id": self.tracking_id},
        )


def stub_factory(stubs):
    def factory(provider, environment, vendor=None, **kwargs):
        if provider.slug not in stubs:
            raise AdapterNotRegistered(f"No courier adapter registered for '{provider.slug}'")
        return stubs[provider.slug]

    return factory


class CourierTestMixin:
    def create_marketplace(self):
        self.owner = User.objects.create_user(username="vendor", email="vendor@example.com", password="Pass123!")
        self.customer = User.objects.create_user(username="buyer", email="buyer@example.com", password="Pass123!")
        self.staff = User.objects.create_user(
            username="ops", email="ops@example.com", password="Pass123!", is_staff=True
        )

        self.city = Location.objects.create(name="Dhaka", level=Location.Level.CITY)
        self.pickup_location = Location.objects.create(name="Gulshan", level=Location.Level.AREA, parent=self.city)
        self.delivery_location = Location.objects.create(name="Mirpur", level=Location.Level.AREA, parent=self.city)
        self.remote_location = Location.objects.create(name="Bandarban", level=Location.Level.AREA)

        self.shop = Shop.objects.create(name="Courier Shop", owner=self.owner, contact_phone="01711111111")
        self.warehouse = Warehouse.objects.create(
            shop=self.shop,
            name="Main",
            location=self.pickup_location,
            address="Road 11, Gulshan",
            is_default=True,
        )
        self.order = Order.objects.create(
            order_number="ORD-COURIER-001",
            customer=self.customer,
            shop=self.shop,
            status=Order.Status.PAID,
            subtotal=Decimal("1000.00"),
            total_amount=Decimal("1000.00"),
            payment_method="cod",
            recipient_name="Rahim Uddin",
            recipient_phone="01700000000",
            delivery_address="House 7, Mirpur 10",
            delivery_location=self.delivery_location,
        )
        OrderItem.objects.create(
            order=self.order,
            product_name="T-shirt",
            sku="TS-1",
            price=Decimal("500.00"),
            quantity=2,
            total=Decimal("1000.00"),
        )

    def create_provider(self, slug, priority=100, auth_type=CourierProvider.AuthType.BEARER, **kwargs):
        return CourierProvider.objects.create(
            name=kwargs.pop("name", slug.title()),
            slug=slug,
            production_base_url=f"https://api.{slug}.example.com",
            sandbox_base_url=f"https://sandbox.{slug}.example.com",
            auth_type=auth_type,
            priority=priority,
            **kwargs,
        )

    def map_route(self, provider, prefix="A", pickup=None, delivery=None):
        pickup = pickup or self.pickup_location
        delivery = delivery or self.delivery_location
        pickup_area = ServiceableArea.objects.create(
            provider=provider,
            location=pickup,
            courier_city_id="1",
            courier_zone_id="10",
            courier_area_id=f"{prefix}-100",
            courier_area_name=pickup.name,
        )
        delivery_area = ServiceableArea.objects.create(
            provider=provider,
            location=delivery,
            courier_city_id="1",
            courier_zone_id="20",
            courier_area_id=f"{prefix}-200",
            courier_area_name=delivery.name,
        )
        return pickup_area, delivery_area

    def create_credential(self, provider, **kwargs):
        kwargs.setdefault("environment", settings.COURIER_ENVIRONMENT)
        return CourierCredential.objects.create(provider=provider, **kwargs)

    def fresh_token_fields(self):
        return {"access_token": "cached-token", "token_expires_at": timezone.now() + timedelta(hours=1)}

    def create_courier_order(self, provider, tracking_id="TRK-1", status=None, **kwargs):
        values = {
            "order": self.order,
            "vendor": self.shop,
            "provider": provider,
            "environment": "SANDBOX",
            "courier_order_id": f"CO-{tracking_id}",
            "courier_tracking_id": tracking_id,
            "recipient_name": self.order.recipient_name,
            "recipient_phone": self.order.recipient_phone,
            "recipient_address": self.order.delivery_address,
            "item_weight": Decimal("1.000"),
            "cod_amount": Decimal("1000.00"),
        }
        if status is not None:
            values["status"] = status
        values.update(kwargs)
        return CourierOrder.objects.create(**values)
