from decimal import Decimal
from unittest.mock import patch

from django.test import TestCase

from courier.adapters import Quote
from courier.exceptions import (
    CourierObjectNotFound,
    DispatchFailed,
    InvalidStatusTransition,
    NoCourierAvailable,
    ProviderCallFailed,
    ServiceAreaMappingMissing,
)
from courier.models import CourierOrder, CourierStatus, TrackingHistory
from courier.selection import Selection
from courier.services import CREATED_MESSAGE_EN, CourierDispatcher, DispatchRequest, create_provider
from order.models import Order

from .helpers import CourierTestMixin, StubAdapter, fake_response, stub_factory


class CourierDispatchTests(CourierTestMixin, TestCase):
    def setUp(self):
        self.create_marketplace()
        self.provider_a = self.create_provider("alpha", priority=1)
        self.provider_b = self.create_provider("bravo", priority=2)
        self.map_route(self.provider_a, prefix="A")
        self.map_route(self.provider_b, prefix="B")
        self.stubs = {"alpha": StubAdapter(total=120, tracking_id="A-TRK"), "bravo": StubAdapter(total=100, tracking_id="B-TRK")}
        self.dispatcher = CourierDispatcher(adapter_factory=stub_factory(self.stubs), environment="SANDBOX")

    def dispatch(self, **overrides):
        details = DispatchRequest(weight=Decimal("1.500"), cod_amount=Decimal("1000.00"), **overrides)
        return self.dispatcher.create_order_for_vendor(self.order.id, self.shop.id, details)

    def test_dispatch_persists_pending_order_with_history(self):
        courier_order = self.dispatch()

        self.assertEqual(courier_order.provider, self.provider_b)
        self.assertEqual(courier_order.status, CourierStatus.PENDING)
        self.assertEqual(courier_order.courier_tracking_id, "B-TRK")
        self.assertEqual(courier_order.total_charge, Decimal("100"))
        self.assertEqual(courier_order.pickup_location, self.pickup_location)
        self.assertEqual(courier_order.delivery_area.courier_area_id, "B-200")
        self.assertEqual(courier_order.item_description, "T-shirt x2")
        self.assertEqual(courier_order.item_quantity, 2)
        self.assertEqual(courier_order.recipient_name, "Rahim Uddin")
        self.assertEqual(
            courier_order.raw_response,
            {"provider": "bravo", "kind": "create_order", "payload": {"tracking_id": "B-TRK"}},
        )

        history = list(courier_order.tracking_history.all())
        self.assertEqual(len(history), 1)
        self.assertEqual(history[0].status, CourierStatus.PENDING)
        self.assertEqual(history[0].message_en, CREATED_MESSAGE_EN)

        payload = self.stubs["bravo"].created[0]
        self.assertEqual(payload.merchant_order_id, "ORD-COURIER-001")
        self.assertEqual(payload.cod_amount, Decimal("1000.00"))

    def test_explicit_details_override_order_defaults(self):
        courier_order = self.dispatch(recipient_name="Karim", item_description="Gift box", item_quantity=1)
        self.assertEqual(courier_order.recipient_name, "Karim")
        self.assertEqual(courier_order.item_description, "Gift box")
        self.assertEqual(courier_order.item_quantity, 1)

    def test_adapter_failure_records_failed_attempt(self):
        self.stubs["bravo"].create_error = ProviderCallFailed("bravo", "HTTP 500", payload={"error": "boom"})

        with self.assertRaises(DispatchFailed) as ctx:
            self.dispatch()

        failed = ctx.exception.courier_order
        self.assertIsNotNone(failed)
        self.assertEqual(failed.status, CourierStatus.FAILED)
        self.assertEqual(failed.provider, self.provider_b)
        self.assertEqual(failed.raw_response["kind"], "error")
        self.assertEqual(failed.raw_response["payload"]["response"], {"error": "boom"})
        self.assertFalse(TrackingHistory.objects.filter(courier_order=failed).exists())
        # No automatic retry against the next courier.
        self.assertEqual(self.stubs["alpha"].created, [])

    def test_no_courier_available_records_nothing(self):
        self.stubs["alpha"].total = None
        self.stubs["bravo"].total = None

        with self.assertRaises(NoCourierAvailable):
            self.dispatch()
        self.assertFalse(CourierOrder.objects.exists())

    def test_area_mapping_removed_after_quote_is_reported_distinctly(self):
        orphan = self.create_provider("charlie", priority=3)
        pickup_area, delivery_area = self.map_route(orphan, prefix="C")

        class FixedSelector:
            def select_best_courier(self, *args, **kwargs):
                return Selection(
                    provider=orphan,
                    pricing=Quote(Decimal("80"), Decimal("0"), Decimal("80"), 2),
                    pickup_area=pickup_area,
                    delivery_area=delivery_area,
                )

        orphan.serviceable_areas.all().delete()
        dispatcher = CourierDispatcher(
            selector=FixedSelector(),
            adapter_factory=stub_factory({"charlie": StubAdapter(total=80)}),
            environment="SANDBOX",
        )

        with self.assertRaises(ServiceAreaMappingMissing):
            dispatcher.create_order_for_vendor(self.order.id, self.shop.id, DispatchRequest(weight=Decimal("1")))

        failed = CourierOrder.objects.get()
        self.assertEqual(failed.status, CourierStatus.FAILED)
        self.assertEqual(failed.provider, orphan)

    def test_order_of_another_vendor_is_rejected(self):
        other_shop = self.create_other_shop()
        with self.assertRaises(CourierObjectNotFound):
            self.dispatcher.create_order_for_vendor(self.order.id, other_shop.id, DispatchRequest(weight=Decimal("1")))

    def create_other_shop(self):
        from django.contrib.auth import get_user_model
        from shop.models import Shop

        owner = get_user_model().objects.create_user(username="other", password="Pass123!")
        return Shop.objects.create(name="Other Shop", owner=owner)


class VendorCourierOrderTests(CourierTestMixin, TestCase):
    def setUp(self):
        self.create_marketplace()
        self.provider = self.create_provider("bravo", display_name="Bravo Express")
        self.map_route(self.provider)
        self.dispatcher = CourierDispatcher(
            adapter_factory=stub_factory({"bravo": StubAdapter(total=100, tracking_id="B-TRK")}),
            environment="SANDBOX",
        )
        self.courier_order = self.dispatcher.create_order_for_vendor(
            self.order.id, self.shop.id, DispatchRequest(weight=Decimal("1"), cod_amount=Decimal("1000"))
        )

    def test_mark_ready_from_pending(self):
        courier_order = self.dispatcher.vendor_mark_ready_for_pickup(self.shop, self.order.id)

        self.assertEqual(courier_order.status, CourierStatus.READY_FOR_PICKUP)
        self.assertEqual(courier_order.tracking_history.count(), 2)
        self.assertEqual(courier_order.tracking_history.last().message_en, "Package is ready for courier pickup")
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.PROCESSING)

    def test_mark_ready_twice_names_current_status(self):
        self.dispatcher.vendor_mark_ready_for_pickup(self.shop, self.order.id)

        with self.assertRaises(InvalidStatusTransition) as ctx:
            self.dispatcher.vendor_mark_ready_for_pickup(self.shop, self.order.id)

        self.assertIn("READY_FOR_PICKUP", str(ctx.exception))
        self.assertEqual(self.courier_order.tracking_history.count(), 2)

    def test_mark_ready_on_delivered_order_leaves_record_unchanged(self):
        CourierOrder.objects.filter(pk=self.courier_order.pk).update(status=CourierStatus.DELIVERED)

        with self.assertRaises(InvalidStatusTransition) as ctx:
            self.dispatcher.vendor_mark_ready_for_pickup(self.shop, self.order.id)

        self.assertIn("Current status: DELIVERED", str(ctx.exception))
        self.courier_order.refresh_from_db()
        self.assertEqual(self.courier_order.status, CourierStatus.DELIVERED)
        self.assertEqual(self.courier_order.tracking_history.count(), 1)

    def test_shipping_label_projection(self):
        label = self.dispatcher.shipping_label(self.shop, self.order.id)
        self.assertEqual(label["tracking_id"], "B-TRK")
        self.assertEqual(label["barcode"], "B-TRK")
        self.assertEqual(label["order_id"], "ORD-COURIER-001")
        self.assertEqual(label["courier_name"], "Bravo Express")
        self.assertEqual(label["recipient"]["phone"], "01700000000")
        self.assertEqual(label["cod_amount"], Decimal("1000.00"))

    def test_public_tracking_exposes_only_tracking_fields(self):
        tracking = self.dispatcher.public_tracking("B-TRK")
        self.assertEqual(set(tracking), {"tracking_id", "courier_name", "status", "tracking_history"})
        self.assertEqual(tracking["status"], CourierStatus.PENDING)
        self.assertEqual(len(tracking["tracking_history"]), 1)
        self.assertEqual(set(tracking["tracking_history"][0]), {"status", "message", "timestamp"})

    def test_public_tracking_unknown_id(self):
        with self.assertRaises(CourierObjectNotFound):
            self.dispatcher.public_tracking("NOPE")

    def test_vendor_listing_filters_by_status(self):
        self.assertEqual(self.dispatcher.vendor_courier_orders(self.shop).count(), 1)
        self.assertEqual(self.dispatcher.vendor_courier_orders(self.shop, status=CourierStatus.DELIVERED).count(), 0)


class RedXDispatchTests(CourierTestMixin, TestCase):
    """Dispatch through the real RedX adapter with the HTTP layer mocked."""

    def setUp(self):
        self.create_marketplace()
        self.redx = create_provider(
            name="RedX",
            production_base_url="https://openapi.redx.com.bd/v1.0.0-beta",
            sandbox_base_url="https://sandbox.redx.com.bd/v1.0.0-beta",
            auth_type="BEARER",
        )
        self.map_route(self.redx, prefix="R")
        self.create_credential(self.redx, environment="SANDBOX", bearer_token="redx-token", store_id="55")

    @patch("courier.adapters.base.requests.request")
    def test_quote_and_create_parcel(self, mock_request):
        def respond(method, url, **kwargs):
            if url.endswith("/charge/charge_calculator"):
                return fake_response({"deliveryCharge": 60, "codCharge": 10})
            if url.endswith("/parcel"):
                return fake_response({"tracking_id": "21A427TU4BN3R"})
            raise AssertionError(f"unexpected call {method} {url}")

        mock_request.side_effect = respond

        courier_order = CourierDispatcher(environment="SANDBOX").create_order_for_vendor(
            self.order.id,
            self.shop.id,
            DispatchRequest(weight=Decimal("1.250"), cod_amount=Decimal("1000.00")),
        )

        self.assertEqual(courier_order.provider, self.redx)
        self.assertEqual(courier_order.courier_tracking_id, "21A427TU4BN3R")
        self.assertEqual(courier_order.total_charge, Decimal("70.00"))
        self.assertEqual(courier_order.estimated_delivery_days, 2)

        quote_call, create_call = mock_request.call_args_list
        self.assertEqual(quote_call.kwargs["params"]["weight"], 1250)
        self.assertEqual(quote_call.kwargs["headers"]["API-ACCESS-TOKEN"], "Bearer redx-token")
        body = create_call.kwargs["json"]
        self.assertEqual(body["parcel_weight"], 1250)
        self.assertEqual(body["merchant_invoice_id"], "ORD-COURIER-001")
        self.assertEqual(body["delivery_area"], "Mirpur")
        self.assertEqual(body["pickup_store_id"], 55)
        self.assertTrue(create_call.args[1].startswith("https://sandbox.redx.com.bd"))

    @patch("courier.adapters.base.requests.request")
    def test_refresh_tracking_applies_current_status(self, mock_request):
        courier_order = self.create_courier_order(self.redx, tracking_id="21A427TU4BN3R")
        mock_request.return_value = fake_response({"parcel": {"tracking_id": "21A427TU4BN3R", "status": "in-transit"}})

        dispatcher = CourierDispatcher(environment="SANDBOX")
        updated = dispatcher.refresh_tracking(courier_order)

        self.assertEqual(updated.status, CourierStatus.IN_TRANSIT)
        self.assertEqual(updated.courier_status, "in-transit")
        self.assertEqual(updated.tracking_history.get().raw_data["kind"], "tracking")
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.SHIPPED)

        # Same raw status again is a no-op.
        dispatcher.refresh_tracking(updated)
        self.assertEqual(updated.tracking_history.count(), 1)
        self.assertEqual(list(dispatcher.courier_orders_for_order(self.order.id)), [updated])

    @patch("courier.adapters.base.requests.request")
    def test_refresh_tracking_on_fresh_order_stores_pending_status(self, mock_request):
        courier_order = self.create_courier_order(self.redx, tracking_id="21A427TU4BN3R")
        mock_request.return_value = fake_response({"parcel": {"tracking_id": "21A427TU4BN3R", "status": "pickup-pending"}})

        updated = CourierDispatcher(environment="SANDBOX").refresh_tracking(courier_order)

        self.assertEqual(updated.status, CourierStatus.PENDING)
        self.assertEqual(updated.courier_status, "pickup-pending")
        self.assertIsNotNone(updated.last_status_update)
        self.assertFalse(updated.tracking_history.exists())

    @patch("courier.adapters.base.requests.request")
    def test_refresh_tracking_ignores_lagging_courier_status(self, mock_request):
        courier_order = self.create_courier_order(
            self.redx, tracking_id="21A427TU4BN3R", status=CourierStatus.OUT_FOR_DELIVERY
        )
        mock_request.return_value = fake_response({"parcel": {"tracking_id": "21A427TU4BN3R", "status": "picked-up"}})

        updated = CourierDispatcher(environment="SANDBOX").refresh_tracking(courier_order)

        self.assertEqual(updated.status, CourierStatus.OUT_FOR_DELIVERY)
        self.assertEqual(updated.courier_status, "picked-up")
