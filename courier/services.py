from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Dict, Optional

import requests
from django.conf import settings
from django.db import transaction
from django.utils import timezone
from django.utils.text import slugify

from order.models import Order

from .adapters import ShipmentPayload, adapter_class_for, get_adapter, is_registered
from .areas import ServiceableAreaIndex
from .exceptions import (
    CourierError,
    CourierObjectNotFound,
    DispatchFailed,
    InvalidStatusTransition,
    ProviderCallFailed,
    ProviderInUse,
    ServiceAreaMappingMissing,
)
from .models import (
    CourierOrder,
    CourierProvider,
    CourierStatus,
    TrackingHistory,
    default_status_mappings,
)
from .selection import CourierSelector, Selection

logger = logging.getLogger(__name__)

# Delivery chain order. Statuses not listed sit outside the chain and never
# count as a step backwards.
FORWARD_RANK = {
    CourierStatus.PENDING: 0,
    CourierStatus.READY_FOR_PICKUP: 1,
    CourierStatus.PICKED_UP: 2,
    CourierStatus.IN_TRANSIT: 3,
    CourierStatus.OUT_FOR_DELIVERY: 4,
    CourierStatus.DELIVERED: 5,
}

CREATED_MESSAGE_EN = "Your order has been created and is pending pickup"
CREATED_MESSAGE_BN = "আপনার অর্ডার তৈরি হয়েছে এবং পিকআপের অপেক্ষায় রয়েছে"
READY_MESSAGE_EN = "Package is ready for courier pickup"
READY_MESSAGE_BN = "প্যাকেজ কুরিয়ার পিকআপের জন্য প্রস্তুত"


def envelope(provider_slug: str, kind: str, payload: Any) -> Dict[str, Any]:
    """Tag a provider payload before it is stored for audit."""
    return {"provider": provider_slug, "kind": kind, "payload": payload if payload is not None else {}}


# -----------------------------
# Provider registry admin
# -----------------------------
PROVIDER_FIELDS = (
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
)


def list_providers(is_active: Optional[bool] = None, auth_type: Optional[str] = None):
    providers = CourierProvider.objects.all()
    if is_active is not None:
        providers = providers.filter(is_active=is_active)
    if auth_type:
        providers = providers.filter(auth_type=auth_type)
    return providers


@transaction.atomic
def create_provider(**fields: Any) -> CourierProvider:
    values = {name: fields[name] for name in PROVIDER_FIELDS if name in fields}
    values["slug"] = values.get("slug") or slugify(values["name"])
    if not values.get("status_mappings"):
        vocabulary = adapter_class_for(values["slug"]).default_status_mappings if is_registered(values["slug"]) else None
        values["status_mappings"] = dict(vocabulary) if vocabulary else default_status_mappings()

    provider = CourierProvider.objects.create(**values)
    logger.info("Courier provider created slug=%s", provider.slug)
    return provider


@transaction.atomic
def update_provider(provider: CourierProvider, **fields: Any) -> CourierProvider:
    changed = [name for name in PROVIDER_FIELDS if name in fields]
    for name in changed:
        setattr(provider, name, fields[name])
    if changed:
        provider.save()
    return provider


@transaction.atomic
def toggle_provider(provider: CourierProvider) -> CourierProvider:
    provider.is_active = not provider.is_active
    provider.save(update_fields=["is_active", "updated_at"])
    return provider


@transaction.atomic
def delete_provider(provider: CourierProvider) -> None:
    if provider.has_open_orders():
        raise ProviderInUse("Cannot delete courier provider with active orders")
    if provider.courier_orders.exists():
        raise ProviderInUse("Courier provider has order history; deactivate it instead")
    provider.delete()


# -----------------------------
# Status transitions
# -----------------------------
def sync_order_status(order: Order, courier_status: str) -> Order:
    """Reflect courier progress on the marketplace order."""
    target = None
    if courier_status in {CourierStatus.READY_FOR_PICKUP, CourierStatus.PICKED_UP}:
        if order.status in {Order.Status.PENDING, Order.Status.PAID, Order.Status.CONFIRMED}:
            target = Order.Status.PROCESSING
    elif courier_status in {CourierStatus.IN_TRANSIT, CourierStatus.OUT_FOR_DELIVERY}:
        if order.status not in {Order.Status.DELIVERED, Order.Status.CANCELLED, Order.Status.REFUNDED}:
            target = Order.Status.SHIPPED
    elif courier_status == CourierStatus.DELIVERED:
        target = Order.Status.DELIVERED
    elif courier_status in {CourierStatus.RETURNED, CourierStatus.CANCELLED}:
        if order.status != Order.Status.DELIVERED:
            target = Order.Status.CANCELLED

    if target and order.status != target:
        order.status = target
        order.save(update_fields=["status", "updated_at"])
    return order


def is_regression(current: str, target: str) -> bool:
    if current not in FORWARD_RANK or target not in FORWARD_RANK:
        return False
    return FORWARD_RANK[target] < FORWARD_RANK[current]


def apply_status_update(
    courier_order: CourierOrder,
    status: str,
    raw_status: str = "",
    message_en: str = "",
    message_bn: str = "",
    location: str = "",
    timestamp=None,
    raw_data: Optional[Dict[str, Any]] = None,
) -> CourierOrder:
    """Move a courier order to ``status`` and append the tracking entry.

    Terminal orders never change, PENDING / FAILED are never targets of a
    provider update, and an order never moves back down the delivery chain.
    UNKNOWN keeps the current status but still records the raw status and a
    history row.
    """
    with transaction.atomic():
        current = CourierOrder.objects.select_for_update().select_related("order").get(pk=courier_order.pk)
        if current.is_terminal:
            raise InvalidStatusTransition(current.status, f"Courier order is already {current.status}")
        if status in {CourierStatus.PENDING, CourierStatus.FAILED}:
            raise InvalidStatusTransition(
                current.status, f"Cannot move courier order from {current.status} to {status}"
            )
        if is_regression(current.status, status):
            raise InvalidStatusTransition(
                current.status, f"Courier order cannot move back from {current.status} to {status}"
            )

        if status != CourierStatus.UNKNOWN:
            current.status = status
        current.courier_status = (raw_status or "")[:150]
        current.last_status_update = timestamp or timezone.now()
        current.save(update_fields=["status", "courier_status", "last_status_update", "updated_at"])

        TrackingHistory.objects.create(
            courier_order=current,
            status=status,
            courier_status=current.courier_status,
            message_en=(message_en or f"Status updated to {CourierStatus(status).label}")[:255],
            message_bn=(message_bn or "")[:255],
            location=(location or "")[:150],
            timestamp=current.last_status_update,
            raw_data=raw_data or {},
        )

        if status != CourierStatus.UNKNOWN:
            sync_order_status(current.order, status)

    return current


def record_courier_status(courier_order: CourierOrder, raw_status: str, timestamp=None) -> CourierOrder:
    """Store the courier's raw status without a transition or history row."""
    with transaction.atomic():
        current = CourierOrder.objects.select_for_update().get(pk=courier_order.pk)
        current.courier_status = (raw_status or "")[:150]
        current.last_status_update = timestamp or timezone.now()
        current.save(update_fields=["courier_status", "last_status_update", "updated_at"])
    return current


# -----------------------------
# Dispatch
# -----------------------------
@dataclass(frozen=True)
class DispatchRequest:
    weight: Decimal
    cod_amount: Decimal = Decimal("0")
    delivery_type: str = CourierOrder.DeliveryType.NORMAL
    vendor_warehouse_location_id: Optional[Any] = None
    delivery_location_id: Optional[Any] = None
    recipient_name: str = ""
    recipient_phone: str = ""
    recipient_secondary_phone: str = ""
    recipient_address: str = ""
    item_description: str = ""
    item_quantity: Optional[int] = None
    item_value: Optional[Decimal] = None
    special_instructions: str = ""


class CourierDispatcher:
    """Places courier orders and serves the vendor / public views of them."""

    def __init__(
        self,
        selector: Optional[CourierSelector] = None,
        area_index: Optional[ServiceableAreaIndex] = None,
        adapter_factory: Optional[Callable] = None,
        environment: Optional[str] = None,
    ) -> None:
        self.environment = environment or settings.COURIER_ENVIRONMENT
        self.area_index = area_index or ServiceableAreaIndex()
        self.adapter_factory = adapter_factory or get_adapter
        self.selector = selector or CourierSelector(
            area_index=self.area_index,
            adapter_factory=self.adapter_factory,
            environment=self.environment,
        )

    def create_order_for_vendor(self, order_id, vendor_id, details: DispatchRequest) -> CourierOrder:
        order = Order.objects.select_related("shop").filter(pk=order_id).first()
        if order is None or str(order.shop_id) != str(vendor_id):
            raise CourierObjectNotFound("Order not found for this vendor")
        vendor = order.shop

        pickup_location_id = details.vendor_warehouse_location_id
        if not pickup_location_id:
            warehouse = vendor.default_warehouse()
            if warehouse is None:
                raise CourierError("Vendor has no active warehouse to ship from")
            pickup_location_id = warehouse.location_id
        delivery_location_id = details.delivery_location_id or order.delivery_location_id
        if not delivery_location_id:
            raise CourierError("Delivery location is required")

        description, quantity = order.item_summary()
        snapshot = {
            "order": order,
            "vendor": vendor,
            "environment": self.environment,
            "recipient_name": details.recipient_name or order.recipient_name,
            "recipient_phone": details.recipient_phone or order.recipient_phone,
            "recipient_secondary_phone": details.recipient_secondary_phone,
            "recipient_address": details.recipient_address or order.delivery_address,
            "recipient_location_id": delivery_location_id,
            "pickup_location_id": pickup_location_id,
            "item_description": (details.item_description or description)[:255],
            "item_quantity": details.item_quantity or quantity or 1,
            "item_weight": details.weight,
            "item_value": details.item_value,
            "delivery_type": details.delivery_type,
            "special_instructions": details.special_instructions,
            "cod_amount": details.cod_amount or Decimal("0"),
        }

        # NoCourierAvailable propagates without a row: no provider was chosen.
        selection = self.selector.select_best_courier(
            pickup_location_id,
            delivery_location_id,
            details.weight,
            cod_amount=snapshot["cod_amount"],
            delivery_type=details.delivery_type,
            vendor=vendor,
        )
        provider = selection.provider

        pickup_area = self.area_index.resolve_pickup(provider, pickup_location_id)
        delivery_area = self.area_index.resolve_delivery(provider, delivery_location_id)
        if pickup_area is None or delivery_area is None:
            message = f"Serviceable area mapping for {provider.name} disappeared after quoting"
            self._record_failure(snapshot, selection, {"message": message})
            raise ServiceAreaMappingMissing(message)

        payload = ShipmentPayload(
            merchant_order_id=order.order_number,
            recipient_name=snapshot["recipient_name"],
            recipient_phone=snapshot["recipient_phone"],
            recipient_secondary_phone=snapshot["recipient_secondary_phone"],
            recipient_address=snapshot["recipient_address"],
            item_weight=details.weight,
            item_description=snapshot["item_description"],
            item_quantity=snapshot["item_quantity"],
            item_value=details.item_value,
            cod_amount=snapshot["cod_amount"],
            delivery_type=details.delivery_type,
            special_instructions=details.special_instructions,
        )

        try:
            adapter = self.adapter_factory(provider, self.environment, vendor=vendor)
            created = adapter.create_order(payload, pickup_area, delivery_area)
        except (CourierError, requests.RequestException) as exc:
            error = {"message": str(exc)}
            if isinstance(exc, ProviderCallFailed) and exc.payload is not None:
                error["response"] = exc.payload
            failed = self._record_failure(snapshot, selection, error, pickup_area, delivery_area)
            logger.warning("Courier dispatch failed order=%s provider=%s: %s", order.order_number, provider.slug, exc)
            raise DispatchFailed(f"Courier order creation failed: {exc}", courier_order=failed) from exc

        with transaction.atomic():
            courier_order = CourierOrder.objects.create(
                provider=provider,
                status=CourierStatus.PENDING,
                courier_order_id=created.provider_order_id,
                courier_tracking_id=created.provider_tracking_id,
                consignment_id=created.consignment_id,
                pickup_area=pickup_area,
                delivery_area=delivery_area,
                raw_response=envelope(provider.slug, "create_order", created.raw_response),
                **self._pricing(selection),
                **snapshot,
            )
            TrackingHistory.objects.create(
                courier_order=courier_order,
                status=CourierStatus.PENDING,
                message_en=CREATED_MESSAGE_EN,
                message_bn=CREATED_MESSAGE_BN,
                timestamp=courier_order.last_status_update,
            )

        logger.info(
            "Courier order created order=%s provider=%s tracking=%s",
            order.order_number,
            provider.slug,
            courier_order.courier_tracking_id,
        )
        return courier_order

    @staticmethod
    def _pricing(selection: Selection) -> Dict[str, Any]:
        return {
            "delivery_charge": selection.pricing.delivery_charge,
            "cod_charge": selection.pricing.cod_charge,
            "total_charge": selection.pricing.total_charge,
            "estimated_delivery_days": selection.pricing.estimated_days,
        }

    def _record_failure(self, snapshot, selection: Selection, error, pickup_area=None, delivery_area=None) -> CourierOrder:
        return CourierOrder.objects.create(
            provider=selection.provider,
            status=CourierStatus.FAILED,
            pickup_area=pickup_area,
            delivery_area=delivery_area,
            raw_response=envelope(selection.provider.slug, "error", error),
            **self._pricing(selection),
            **snapshot,
        )

    # -----------------------------
    # Vendor operations
    # -----------------------------
    def _vendor_courier_order(self, vendor, order_id, lock: bool = False) -> CourierOrder:
        courier_orders = CourierOrder.objects.select_related("provider", "order").filter(
            order_id=order_id, vendor=vendor
        ).exclude(status=CourierStatus.FAILED)
        if lock:
            courier_orders = courier_orders.select_for_update(of=("self",))
        courier_order = courier_orders.order_by("-created_at").first()
        if courier_order is None:
            raise CourierObjectNotFound("Courier order not found")
        return courier_order

    def vendor_mark_ready_for_pickup(self, vendor, order_id) -> CourierOrder:
        with transaction.atomic():
            courier_order = self._vendor_courier_order(vendor, order_id, lock=True)
            if courier_order.status != CourierStatus.PENDING:
                raise InvalidStatusTransition(
                    courier_order.status,
                    f"Cannot mark order as ready. Current status: {courier_order.status}. "
                    "Only PENDING orders can be marked as ready.",
                )

            courier_order.status = CourierStatus.READY_FOR_PICKUP
            courier_order.last_status_update = timezone.now()
            courier_order.save(update_fields=["status", "last_status_update", "updated_at"])
            TrackingHistory.objects.create(
                courier_order=courier_order,
                status=CourierStatus.READY_FOR_PICKUP,
                message_en=READY_MESSAGE_EN,
                message_bn=READY_MESSAGE_BN,
                timestamp=courier_order.last_status_update,
            )
            sync_order_status(courier_order.order, CourierStatus.READY_FOR_PICKUP)
        return courier_order

    def shipping_label(self, vendor, order_id) -> Dict[str, Any]:
        courier_order = self._vendor_courier_order(vendor, order_id)
        provider = courier_order.provider
        return {
            "tracking_id": courier_order.courier_tracking_id,
            "order_id": courier_order.order.order_number,
            "courier_name": provider.display_name or provider.name,
            "courier_logo": provider.logo,
            "recipient": {
                "name": courier_order.recipient_name,
                "phone": courier_order.recipient_phone,
                "address": courier_order.recipient_address,
            },
            "cod_amount": courier_order.cod_amount,
            "weight": courier_order.item_weight,
            "item_description": courier_order.item_description,
            "barcode": courier_order.courier_tracking_id,
            "created_at": courier_order.created_at,
        }

    def vendor_courier_orders(self, vendor, status: Optional[str] = None):
        courier_orders = CourierOrder.objects.filter(vendor=vendor).select_related("provider", "order")
        if status:
            courier_orders = courier_orders.filter(status=status)
        return courier_orders.order_by("-created_at")

    def courier_orders_for_order(self, order_id):
        return (
            CourierOrder.objects.filter(order_id=order_id)
            .select_related("provider", "order")
            .prefetch_related("tracking_history")
            .order_by("-created_at")
        )

    # -----------------------------
    # Tracking
    # -----------------------------
    def public_tracking(self, tracking_id: str) -> Dict[str, Any]:
        courier_order = (
            CourierOrder.objects.select_related("provider")
            .filter(courier_tracking_id=tracking_id)
            .exclude(courier_tracking_id="")
            .exclude(status=CourierStatus.FAILED)
            .order_by("-created_at")
            .first()
        )
        if courier_order is None:
            raise CourierObjectNotFound("Tracking information not found")

        provider = courier_order.provider
        return {
            "tracking_id": courier_order.courier_tracking_id,
            "courier_name": provider.display_name or provider.name,
            "status": courier_order.status,
            "tracking_history": [
                {"status": entry.status, "message": entry.message_en, "timestamp": entry.timestamp}
                for entry in courier_order.tracking_history.all()
            ],
        }

    def refresh_tracking(self, courier_order: CourierOrder) -> CourierOrder:
        """Pull the courier's current status and apply it like a webhook would."""
        if not courier_order.courier_tracking_id:
            raise CourierError("Courier order has no tracking id")
        if courier_order.is_terminal:
            raise InvalidStatusTransition(courier_order.status, f"Courier order is already {courier_order.status}")

        provider = courier_order.provider
        adapter = self.adapter_factory(provider, courier_order.environment, vendor=courier_order.vendor)
        raw_status = adapter.track_order(courier_order.courier_tracking_id)
        if not raw_status or raw_status == courier_order.courier_status:
            return courier_order

        status = adapter.map_raw_status_to_canonical(raw_status)
        if status in {courier_order.status, CourierStatus.PENDING} or is_regression(courier_order.status, status):
            # Courier has not moved past what we already know.
            return record_courier_status(courier_order, raw_status)
        return apply_status_update(
            courier_order,
            status,
            raw_status=raw_status,
            raw_data=envelope(provider.slug, "tracking", {"status": raw_status}),
        )
