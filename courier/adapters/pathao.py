from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, List, Optional

from ..exceptions import ProviderCallFailed
from ..models import CourierCredential, CourierOrder, ServiceableArea
from .base import (
    BaseCourierAdapter,
    CreatedOrder,
    Quote,
    ShipmentPayload,
    TokenGrant,
    WebhookEvent,
    money,
    numeric_id,
    parse_timestamp,
)
from .registry import register_adapter

API_PREFIX = "/aladdin/api/v1"
ITEM_TYPE_PARCEL = 2
DELIVERY_TYPES = {
    CourierOrder.DeliveryType.NORMAL: 48,
    CourierOrder.DeliveryType.EXPRESS: 12,
}


def _has_hierarchy(area: ServiceableArea) -> bool:
    """Pathao prices and books by city and zone, not by area alone."""
    return bool(str(area.courier_city_id or "").strip() and str(area.courier_zone_id or "").strip())


def _listing(response: Dict[str, Any]) -> List[Dict[str, Any]]:
    data = response.get("data") or {}
    if isinstance(data, list):
        return data
    return data.get("data") or []


@register_adapter("pathao")
class PathaoAdapter(BaseCourierAdapter):
    """Pathao merchant API.

    OAuth2 password grant, areas addressed as city -> zone -> area. Create
    responses look like ``{"type": "success", "code": 200, "data":
    {"consignment_id": ..., "merchant_order_id": ..., "order_status": ...,
    "delivery_fee": ...}}``; the consignment id doubles as the tracking id.
    """

    estimated_days = 3
    default_status_mappings = {
        "PENDING": ["Pending"],
        "READY_FOR_PICKUP": ["Pickup Requested", "Assigned for Pickup"],
        "PICKED_UP": ["Picked", "Pickup Completed"],
        "IN_TRANSIT": ["At the Sorting HUB", "In Transit", "Received at Last Mile HUB"],
        "OUT_FOR_DELIVERY": ["Assigned for Delivery"],
        "DELIVERED": ["Delivered", "Partial Delivery"],
        "RETURNED": ["Return", "Returned"],
        "CANCELLED": ["Pickup Cancelled", "Cancelled"],
        "ON_HOLD": ["On Hold", "Delivery Failed", "Pickup Failed"],
    }

    def check_response_body(self, path: str, data: Dict[str, Any]) -> None:
        code = data.get("code")
        if data.get("type") == "error" or (isinstance(code, int) and code >= 400):
            raise ProviderCallFailed(self.provider.slug, data.get("message") or f"{path} reported an error", payload=data)

    def issue_token(self, credential: CourierCredential, refresh_token: Optional[str] = None) -> TokenGrant:
        body = {"client_id": credential.client_id, "client_secret": credential.client_secret}
        if refresh_token:
            body.update({"grant_type": "refresh_token", "refresh_token": refresh_token})
        else:
            body.update({"grant_type": "password", "username": credential.username, "password": credential.password})

        data = self._request("POST", f"{API_PREFIX}/issue-token", json=body, auth=False)
        access_token = data.get("access_token")
        if not access_token:
            raise ProviderCallFailed(self.provider.slug, "issue-token response has no access_token", payload=data)
        return TokenGrant(
            access_token=access_token,
            refresh_token=data.get("refresh_token") or "",
            expires_in=int(data.get("expires_in") or 0),
        )

    def _store_id(self):
        store_id = self.credential.store_id
        if not store_id:
            raise ProviderCallFailed(self.provider.slug, "Pathao store not configured")
        return numeric_id(store_id)

    def quote(
        self,
        pickup_area: ServiceableArea,
        delivery_area: ServiceableArea,
        weight: Decimal,
        cod_amount: Decimal,
        delivery_type: str,
    ) -> Optional[Quote]:
        if not _has_hierarchy(delivery_area):
            return None
        body = {
            "store_id": self._store_id(),
            "item_type": ITEM_TYPE_PARCEL,
            "delivery_type": DELIVERY_TYPES.get(delivery_type, 48),
            "item_weight": float(weight),
            "recipient_city": numeric_id(delivery_area.courier_city_id),
            "recipient_zone": numeric_id(delivery_area.courier_zone_id),
        }
        response = self._request("POST", f"{API_PREFIX}/merchant/price-plan", json=body)
        data = response.get("data") or {}
        price = data.get("final_price", data.get("price"))
        if price is None:
            return None

        delivery_charge = money(price)
        if "cod_fee" in data:
            cod_charge = money(data.get("cod_fee"))
        else:
            cod_charge = money(Decimal(str(cod_amount or 0)) * Decimal(str(data.get("cod_percentage") or 0)))
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
        if not _has_hierarchy(delivery_area):
            raise ProviderCallFailed(
                self.provider.slug, f"Pathao area {delivery_area.courier_area_id} has no city or zone id"
            )
        body = {
            "store_id": self._store_id(),
            "merchant_order_id": payload.merchant_order_id,
            "recipient_name": payload.recipient_name,
            "recipient_phone": payload.recipient_phone,
            "recipient_address": payload.recipient_address,
            "recipient_city": numeric_id(delivery_area.courier_city_id),
            "recipient_zone": numeric_id(delivery_area.courier_zone_id),
            "recipient_area": numeric_id(delivery_area.courier_area_id),
            "delivery_type": DELIVERY_TYPES.get(payload.delivery_type, 48),
            "item_type": ITEM_TYPE_PARCEL,
            "special_instruction": payload.special_instructions,
            "item_quantity": payload.item_quantity,
            "item_weight": float(payload.item_weight),
            "item_description": payload.item_description,
            "amount_to_collect": int(payload.cod_amount or 0),
        }
        if payload.recipient_secondary_phone:
            body["recipient_secondary_phone"] = payload.recipient_secondary_phone

        response = self._request("POST", f"{API_PREFIX}/orders", json=body)
        data = response.get("data") or {}
        consignment_id = str(data.get("consignment_id") or "")
        if not consignment_id:
            raise ProviderCallFailed(self.provider.slug, "create order response has no consignment_id", payload=response)
        return CreatedOrder(
            provider_order_id=consignment_id,
            provider_tracking_id=consignment_id,
            consignment_id=consignment_id,
            raw_response=response,
        )

    def track_order(self, tracking_id: str) -> str:
        response = self._request("GET", f"{API_PREFIX}/orders/{tracking_id}/info")
        return str((response.get("data") or {}).get("order_status") or "")

    def parse_webhook(self, payload: Dict[str, Any]) -> WebhookEvent:
        return WebhookEvent(
            tracking_id=str(payload.get("consignment_id") or ""),
            raw_status=str(payload.get("order_status") or payload.get("event") or ""),
            message_en=str(payload.get("reason") or ""),
            timestamp=parse_timestamp(payload.get("updated_at") or payload.get("timestamp")),
            reference=str(payload.get("merchant_order_id") or ""),
        )

    def verify_credentials(self) -> str:
        cities = self.cities()
        return f"Pathao returned {len(cities)} cities"

    # -----------------------------
    # Area and store discovery
    # -----------------------------
    def cities(self) -> List[Dict[str, Any]]:
        return _listing(self._request("GET", f"{API_PREFIX}/city-list"))

    def zones(self, city_id) -> List[Dict[str, Any]]:
        return _listing(self._request("GET", f"{API_PREFIX}/cities/{city_id}/zone-list"))

    def areas(self, zone_id) -> List[Dict[str, Any]]:
        return _listing(self._request("GET", f"{API_PREFIX}/zones/{zone_id}/area-list"))

    def stores(self) -> List[Dict[str, Any]]:
        return _listing(self._request("GET", f"{API_PREFIX}/stores"))

    def create_store(self, store: Dict[str, Any]) -> Dict[str, Any]:
        """Register a pickup store. Pathao approves new stores asynchronously."""
        response = self._request("POST", f"{API_PREFIX}/stores", json=store)
        return {"message": response.get("message") or "", "store": response.get("data") or {}}
