from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, List, Optional

from ..exceptions import ProviderCallFailed
from ..models import ServiceableArea
from .base import (
    BaseCourierAdapter,
    CreatedOrder,
    Quote,
    ShipmentPayload,
    WebhookEvent,
    money,
    numeric_id,
    parse_timestamp,
)
from .registry import register_adapter


def grams(weight_kg) -> int:
    return int((Decimal(str(weight_kg)) * 1000).to_integral_value())


@register_adapter("redx")
class RedXAdapter(BaseCourierAdapter):
    """RedX open API.

    Static bearer token sent as ``API-ACCESS-TOKEN``, flat area ids and
    weights in grams. ``POST /parcel`` answers ``{"tracking_id": ...}``.
    Webhooks carry ``tracking_number``, ``status``, ``message_en``,
    ``message_bn``, ``timestamp`` and ``invoice_number``.
    """

    estimated_days = 2
    default_status_mappings = {
        "PENDING": ["pickup-pending"],
        "READY_FOR_PICKUP": ["ready-for-pickup"],
        "PICKED_UP": ["picked-up"],
        "IN_TRANSIT": ["in-transit", "agent-area-change"],
        "OUT_FOR_DELIVERY": ["ready-for-delivery", "delivery-in-progress"],
        "DELIVERED": ["delivered"],
        "RETURNED": ["returned"],
        "CANCELLED": ["cancelled"],
        "ON_HOLD": ["agent-hold", "agent-returning"],
    }

    def auth_headers(self) -> Dict[str, str]:
        return {"API-ACCESS-TOKEN": f"Bearer {self.get_token()}"}

    def quote(
        self,
        pickup_area: ServiceableArea,
        delivery_area: ServiceableArea,
        weight: Decimal,
        cod_amount: Decimal,
        delivery_type: str,
    ) -> Optional[Quote]:
        params = {
            "delivery_area_id": numeric_id(delivery_area.courier_area_id),
            "pickup_area_id": numeric_id(pickup_area.courier_area_id),
            "cash_collection_amount": float(cod_amount or 0),
            "weight": grams(weight),
        }
        response = self._request("GET", "/charge/charge_calculator", params=params)
        delivery = response.get("deliveryCharge", response.get("delivery_charge"))
        if delivery is None:
            return None

        delivery_charge = money(delivery)
        cod_charge = money(response.get("codCharge", response.get("cod_charge")))
        return Quote(
            delivery_charge=delivery_charge,
            cod_charge=cod_charge,
            total_charge=delivery_charge + cod_charge,
            estimated_days=self.estimated_days,
            raw_response=response,
        )

    def create_order(
        self,
        payload: ShipmentPayload,
        pickup_area: ServiceableArea,
        delivery_area: ServiceableArea,
    ) -> CreatedOrder:
        value = payload.item_value if payload.item_value is not None else payload.cod_amount
        body = {
            "customer_name": payload.recipient_name,
            "customer_phone": payload.recipient_phone,
            "delivery_area": delivery_area.courier_area_name,
            "delivery_area_id": numeric_id(delivery_area.courier_area_id),
            "customer_address": payload.recipient_address,
            "merchant_invoice_id": payload.merchant_order_id,
            "cash_collection_amount": str(payload.cod_amount or 0),
            "parcel_weight": grams(payload.item_weight),
            "instruction": payload.special_instructions,
            "value": float(value or 0),
            "parcel_details_json": [
                {"name": payload.item_description, "category": "", "value": float(value or 0)},
            ],
        }
        if self.credential.store_id:
            body["pickup_store_id"] = numeric_id(self.credential.store_id)

        response = self._request("POST", "/parcel", json=body)
        tracking_id = str(response.get("tracking_id") or "")
        if not tracking_id:
            raise ProviderCallFailed(self.provider.slug, "create parcel response has no tracking_id", payload=response)
        return CreatedOrder(
            provider_order_id=tracking_id,
            provider_tracking_id=tracking_id,
            consignment_id="",
            raw_response=response,
        )

    def track_order(self, tracking_id: str) -> str:
        response = self._request("GET", f"/parcel/info/{tracking_id}")
        parcel = response.get("parcel") or {}
        return str(parcel.get("status") or "")

    def parse_webhook(self, payload: Dict[str, Any]) -> WebhookEvent:
        return WebhookEvent(
            tracking_id=str(payload.get("tracking_number") or ""),
            raw_status=str(payload.get("status") or ""),
            message_en=str(payload.get("message_en") or ""),
            message_bn=str(payload.get("message_bn") or ""),
            timestamp=parse_timestamp(payload.get("timestamp")),
            reference=str(payload.get("invoice_number") or ""),
        )

    def verify_credentials(self) -> str:
        return f"RedX returned {len(self.areas())} areas"

    # -----------------------------
    # Area and store discovery
    # -----------------------------
    def areas(self, post_code: Optional[int] = None, district_name: str = "") -> List[Dict[str, Any]]:
        """All RedX delivery areas, narrowed locally by post code or district."""
        areas = self._request("GET", "/areas").get("areas") or []
        if post_code is not None:
            areas = [area for area in areas if str(area.get("post_code")) == str(post_code)]
        if district_name:
            needle = district_name.lower()
            areas = [
                area
                for area in areas
                if needle in str(area.get("district_name") or "").lower()
                or needle in str(area.get("name") or "").lower()
            ]
        return areas

    def pickup_stores(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/pickup/stores").get("pickup_stores") or []

    def create_pickup_store(self, store: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", "/pickup/store", json=store)
