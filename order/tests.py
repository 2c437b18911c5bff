from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase

from order.models import Order, OrderItem
from shop.models import Shop

User = get_user_model()


class OrderItemSummaryTests(TestCase):
    def setUp(self):
        owner = User.objects.create_user(username="owner-order", password="Pass123!")
        self.shop = Shop.objects.create(name="Order Test Shop", owner=owner)
        self.order = Order.objects.create(
            order_number="ORD-1001",
            shop=self.shop,
            subtotal=Decimal("300.00"),
            total_amount=Decimal("300.00"),
            payment_method="cod",
            delivery_address="123 Main St",
        )

    def add_item(self, name, quantity):
        return OrderItem.objects.create(
            order=self.order,
            product_name=name,
            price=Decimal("50.00"),
            quantity=quantity,
            total=Decimal("50.00") * quantity,
        )

    def test_summary_lists_items_with_quantities(self):
        self.add_item("Mug", 2)
        self.add_item("Cap", 1)

        description, quantity = self.order.item_summary()

        self.assertIn("Mug x2", description)
        self.assertIn("Cap x1", description)
        self.assertEqual(quantity, 3)

    def test_empty_order_summary(self):
        self.assertEqual(self.order.item_summary(), ("", 0))
