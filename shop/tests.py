from django.contrib.auth import get_user_model
from django.db import IntegrityError
from django.test import TestCase

from location.models import Location
from shop.models import Shop, Warehouse

User = get_user_model()


class ShopWarehouseTests(TestCase):
    def setUp(self):
        self.owner = User.objects.create_user(username="owner-shop", password="Pass123!")
        self.shop = Shop.objects.create(name="Warehouse Shop", owner=self.owner)
        self.dhaka = Location.objects.create(name="Dhaka", level=Location.Level.CITY)
        self.gulshan = Location.objects.create(name="Gulshan", parent=self.dhaka)

    def test_default_warehouse_is_preferred(self):
        Warehouse.objects.create(shop=self.shop, name="Overflow", location=self.dhaka)
        main = Warehouse.objects.create(shop=self.shop, name="Main", location=self.gulshan, is_default=True)

        self.assertEqual(self.shop.default_warehouse(), main)

    def test_falls_back_to_oldest_active_warehouse(self):
        first = Warehouse.objects.create(shop=self.shop, name="First", location=self.dhaka)
        Warehouse.objects.create(shop=self.shop, name="Second", location=self.gulshan)
        Warehouse.objects.create(shop=self.shop, name="Closed", location=self.gulshan, is_default=True, is_active=False)

        self.assertEqual(self.shop.default_warehouse(), first)

    def test_no_warehouse(self):
        self.assertIsNone(self.shop.default_warehouse())

    def test_only_one_default_warehouse_per_shop(self):
        Warehouse.objects.create(shop=self.shop, name="Main", location=self.dhaka, is_default=True)
        with self.assertRaises(IntegrityError):
            Warehouse.objects.create(shop=self.shop, name="Other", location=self.gulshan, is_default=True)

    def test_location_lineage(self):
        self.assertEqual(self.gulshan.lineage(), ["Dhaka", "Gulshan"])
