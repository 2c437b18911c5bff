import uuid
from django.conf import settings
from django.db import models
from django.db.models import Q


class Shop(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)

    owner = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="owned_shop"
    )
    contact_phone = models.CharField(max_length=20, blank=True)
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return self.name

    def default_warehouse(self):
        warehouses = self.warehouses.filter(is_active=True).select_related("location")
        return warehouses.filter(is_default=True).first() or warehouses.order_by("created_at").first()


class Warehouse(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    shop = models.ForeignKey(Shop, related_name="warehouses", on_delete=models.CASCADE)
    name = models.CharField(max_length=120)
    location = models.ForeignKey("location.Location", related_name="warehouses", on_delete=models.PROTECT)
    address = models.TextField(blank=True)
    contact_phone = models.CharField(max_length=20, blank=True)

    is_default = models.BooleanField(default=False)
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["shop"],
                condition=Q(is_default=True),
                name="shop_single_default_warehouse",
            ),
        ]

    def __str__(self):
        return f"{self.shop.name} - {self.name}"
