from django.test import TestCase

from courier.areas import ServiceableAreaIndex
from courier.models import ServiceableArea

from .helpers import CourierTestMixin


class ServiceableAreaIndexTests(CourierTestMixin, TestCase):
    def setUp(self):
        self.create_marketplace()
        self.provider = self.create_provider("redx")
        self.index = ServiceableAreaIndex()

    def row(self, **overrides):
        values = {
            "location_id": self.delivery_location.id,
            "courier_area_id": "1001",
            "courier_area_name": "Mirpur 10",
            "courier_city_id": "1",
            "courier_zone_id": "20",
        }
        values.update(overrides)
        return values

    def test_sync_upserts_on_courier_area_id(self):
        first = self.index.sync(self.provider, [self.row()])
        second = self.index.sync(self.provider, [self.row(courier_area_name="Mirpur DOHS")])

        self.assertEqual((first.created, first.updated, first.total), (1, 0, 1))
        self.assertEqual((second.created, second.updated), (0, 1))
        area = ServiceableArea.objects.get(provider=self.provider)
        self.assertEqual(area.courier_area_name, "Mirpur DOHS")
        self.assertIsNotNone(area.last_synced_at)

    def test_resolve_respects_service_flags(self):
        self.index.sync(self.provider, [self.row(pickup_available=False)])

        self.assertIsNotNone(self.index.resolve_delivery(self.provider, self.delivery_location.id))
        self.assertIsNone(self.index.resolve_pickup(self.provider, self.delivery_location.id))

    def test_inactive_area_does_not_resolve(self):
        self.index.sync(self.provider, [self.row(is_active=False)])
        self.assertIsNone(self.index.resolve_delivery(self.provider, self.delivery_location.id))

    def test_unmapped_location_resolves_to_none(self):
        self.assertIsNone(self.index.resolve_delivery(self.provider, self.remote_location.id))
        self.assertIsNone(self.index.resolve_delivery(self.provider, None))

    def test_list_areas_search(self):
        self.index.sync(
            self.provider,
            [self.row(), self.row(location_id=self.pickup_location.id, courier_area_id="1002", courier_area_name="Gulshan 1")],
        )
        self.assertEqual(self.index.list_areas(provider=self.provider).count(), 2)
        self.assertEqual(self.index.list_areas(search="gulshan").count(), 1)
