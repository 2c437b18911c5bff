from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Optional

from ..exceptions import ProviderCallFailed
from ..models import ServiceableArea
from .base import (
    BaseCourierAdapter,
    CreatedOrder,
    Quote,
    ShipmentPayload,
    WebhookEvent,
    money,
    parse_timestamp,
)
from .registry import register_adapter


@register_adapter("hudhud")
class HudhudAdapter(BaseCourierAdapter):
    """Hudhud JSON API keyed by a static API key."""

    default_status_mappings = {
        "PENDING": ["CREATED", "PENDING"],
        "READY_FOR_PICKUP": ["READY", "READY_FOR_PICKUP"],
        "PICKED_UP": ["PICKED_UP", "PICKUP"],
        "IN_TRANSIT": ["IN_TRANSIT", "TRANSIT"],
        "OUT_FOR_DELIVERY": ["OUT_FOR_DELIVERY"],
        "DELIVERED": ["DELIVERED"],
        "RETURNED": ["RETURNED"],
        "CANCELLED": ["CANCELLED"],
        "ON_HOLD": ["FAILED", "ON_HOLD"],
    }

    def quote(
        self,
        pickup_area: ServiceableArea,
        delivery_area: ServiceableArea,
        weight: Decimal,
        cod_amount: Decimal,
        delivery_type: str,
    ) -> Optional[Quote]:
        body = {
            "pickup_area_id": pickup_area.courier_area_id,
            "delivery_area_id": delivery_area.courier_area_id,
            "weight": float(weight),
            "cod_amount": float(cod_amount or 0),
            "delivery_type": delivery_type,
        }
        data = self._request("POST", "/rates", json=body)
        if data.get("serviceable") is False or data.get("delivery_charge") is None:
            return None

        delivery_charge = money(data.get("delivery_charge"))
        cod_charge = money(data.get("cod_charge"))
        days = data.get("estimated_days")
        return Quote(
            delivery_charge=delivery_charge,
            cod_charge=cod_charge,
            total_charge=delivery_charge + cod_charge,
            estimated_days=int(days) if days is not None else None,
            raw_response=data,
        )

    def create_order(
        self,
        payload: ShipmentPayload,
        pickup_area: ServiceableArea,
        delivery_area: ServiceableArea,
    ) -> CreatedOrder:
        body = {
            "reference": payload.merchant_order_id,
            "order_number": payload.merchant_order_id,
            "customer_name": payload.recipient_name,
            "customer_phone": payload.recipient_phone,
            "delivery_address": payload.recipient_address,
            "pickup_area_id": pickup_area.courier_area_id,
            "delivery_area_id": delivery_area.courier_area_id,
            "description": payload.item_description,
            "quantity": payload.item_quantity,
            "weight": float(payload.item_weight),
            "amount": float(payload.cod_amount or 0),
            "delivery_type": payload.delivery_type,
            "notes": payload.special_instructions,
        }
        data = self._request("POST", "/shipments", json=body)
        shipment_id = str(data.get("shipment_id") or data.get("id") or "")
        tracking_id = str(data.get("tracking_id") or data.get("trackingId") or "")
        if not tracking_id:
            raise ProviderCallFailed(self.provider.slug, "create shipment response has no tracking_id", payload=data)
        return CreatedOrder(
            provider_order_id=shipment_id,
            provider_tracking_id=tracking_id,
            consignment_id="",
            raw_response=data,
        )

    def track_order(self, tracking_id: str) -> str:
        data = self._request("GET", f"/shipments/{tracking_id}")
        return str(data.get("status") or "")

    def parse_webhook(self, payload: Dict[str, Any]) -> WebhookEvent:
        return WebhookEvent(
            tracking_id=str(payload.get("tracking_id") or payload.get("trackingId") or ""),
            raw_status=str(payload.get("status") or ""),
            message_en=str(payload.get("message") or ""),
            timestamp=parse_timestamp(payload.get("timestamp") or payload.get("updated_at")),
            location=str(payload.get("location") or ""),
            reference=str(payload.get("shipment_id") or payload.get("shipmentId") or ""),
        )

    def verify_credentials(self) -> str:
        self._request("GET", "/areas")
        return "Hudhud accepted the API key"
