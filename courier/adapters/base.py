from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Optional

import requests
from django.conf import settings
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from ..exceptions import ProviderCallFailed
from ..models import CourierCredential, CourierProvider, CourierStatus, ServiceableArea

logger = logging.getLogger(__name__)

TWO_PLACES = Decimal("0.01")


def money(value: Any) -> Decimal:
    if value in (None, ""):
        return Decimal("0.00")
    return Decimal(str(value)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def numeric_id(value: Any) -> Any:
    """Courier APIs want integer ids; keep non-numeric ids as they are."""
    text = str(value or "").strip()
    return int(text) if text.isdigit() else text


def parse_timestamp(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if not value:
        return None
    try:
        parsed = parse_datetime(str(value))
    except ValueError:
        return None
    if parsed is not None and timezone.is_naive(parsed):
        parsed = timezone.make_aware(parsed)
    return parsed


@dataclass(frozen=True)
class Quote:
    delivery_charge: Decimal
    cod_charge: Decimal
    total_charge: Decimal
    estimated_days: Optional[int] = None
    raw_response: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CreatedOrder:
    provider_order_id: str
    provider_tracking_id: str
    consignment_id: str
    raw_response: Dict[str, Any]


@dataclass(frozen=True)
class TokenGrant:
    access_token: str
    refresh_token: str
    expires_in: int


@dataclass(frozen=True)
class WebhookEvent:
    tracking_id: str
    raw_status: str
    message_en: str = ""
    message_bn: str = ""
    timestamp: Optional[datetime] = None
    location: str = ""
    # Secondary identifier (provider order id / invoice) used when the tracking id does not match.
    reference: str = ""


@dataclass(frozen=True)
class ShipmentPayload:
    merchant_order_id: str
    recipient_name: str
    recipient_phone: str
    recipient_address: str
    item_weight: Decimal
    recipient_secondary_phone: str = ""
    item_description: str = ""
    item_quantity: int = 1
    item_value: Optional[Decimal] = None
    cod_amount: Decimal = Decimal("0")
    delivery_type: str = "NORMAL"
    special_instructions: str = ""


class BaseCourierAdapter:
    """Uniform contract every courier integration implements.

    Subclasses are registered by provider slug with ``@register_adapter`` and
    only translate between the platform's shapes and the courier's HTTP API.
    Credentials and tokens come from the injected credential store and token
    manager so adapters never touch the ORM for auth material themselves.
    """

    slug: str = "base"
    default_status_mappings: Dict[str, list] = {}

    def __init__(
        self,
        provider: CourierProvider,
        environment: str,
        vendor=None,
        credentials=None,
        tokens=None,
        credential: Optional[CourierCredential] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.provider = provider
        self.environment = environment
        self.vendor = vendor
        self.timeout = timeout if timeout is not None else settings.COURIER_REQUEST_TIMEOUT
        self._credentials = credentials
        self._tokens = tokens
        self._credential = credential

    # -----------------------------
    # Collaborators
    # -----------------------------
    @property
    def credentials(self):
        if self._credentials is None:
            from ..credentials import CredentialStore

            self._credentials = CredentialStore()
        return self._credentials

    @property
    def tokens(self):
        if self._tokens is None:
            from ..tokens import TokenManager

            self._tokens = TokenManager(store=self.credentials)
        return self._tokens

    @property
    def credential(self) -> CourierCredential:
        if self._credential is None:
            self._credential = self.credentials.get_active_credential(self.provider, self.environment, self.vendor)
        return self._credential

    @property
    def base_url(self) -> str:
        return self.provider.base_url_for(self.environment)

    def get_token(self) -> str:
        return self.tokens.token_for(self.credential)

    # -----------------------------
    # Transport
    # -----------------------------
    def auth_headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.get_token()}"}

    def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        auth: bool = True,
    ) -> Dict[str, Any]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if auth:
            headers.update(self.auth_headers())

        try:
            response = requests.request(
                method,
                f"{self.base_url}{path}",
                json=json,
                params=params,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.warning("Courier call failed provider=%s %s %s: %s", self.provider.slug, method, path, exc)
            raise ProviderCallFailed(self.provider.slug, f"{method} {path} failed: {exc}") from exc

        if not response.ok:
            try:
                details = response.json()
            except ValueError:
                details = {"text": response.text}
            logger.warning(
                "Courier call rejected provider=%s %s %s status=%s",
                self.provider.slug,
                method,
                path,
                response.status_code,
            )
            raise ProviderCallFailed(
                self.provider.slug,
                f"{method} {path} returned HTTP {response.status_code}",
                payload=details,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise ProviderCallFailed(self.provider.slug, f"{method} {path} returned invalid JSON", payload={"text": response.text}) from exc

        if not isinstance(data, dict):
            data = {"data": data}
        self.check_response_body(path, data)
        return data

    def check_response_body(self, path: str, data: Dict[str, Any]) -> None:
        """Hook for couriers that report errors inside a 2xx body."""

    # -----------------------------
    # Courier operations
    # -----------------------------
    def quote(
        self,
        pickup_area: ServiceableArea,
        delivery_area: ServiceableArea,
        weight: Decimal,
        cod_amount: Decimal,
        delivery_type: str,
    ) -> Optional[Quote]:
        raise NotImplementedError

    def create_order(
        self,
        payload: ShipmentPayload,
        pickup_area: ServiceableArea,
        delivery_area: ServiceableArea,
    ) -> CreatedOrder:
        raise NotImplementedError

    def track_order(self, tracking_id: str) -> str:
        raise NotImplementedError

    def parse_webhook(self, payload: Dict[str, Any]) -> WebhookEvent:
        raise NotImplementedError

    def verify_credentials(self) -> str:
        """Cheap authenticated round-trip; returns a human readable message."""
        raise NotImplementedError

    def issue_token(self, credential: CourierCredential, refresh_token: Optional[str] = None) -> TokenGrant:
        raise NotImplementedError(f"{self.provider.slug} does not issue OAuth tokens")

    # -----------------------------
    # Status vocabulary
    # -----------------------------
    @staticmethod
    def _normalize(raw: str) -> str:
        return re.sub(r"[\s_\-]+", " ", str(raw or "")).strip().lower()

    def map_raw_status_to_canonical(self, raw: str) -> str:
        needle = self._normalize(raw)
        if not needle:
            return CourierStatus.UNKNOWN
        mappings = self.provider.status_mappings or {}
        for canonical, values in mappings.items():
            if canonical not in CourierStatus.values:
                continue
            if isinstance(values, str):
                values = [values]
            for value in values or []:
                if self._normalize(value) == needle:
                    return CourierStatus(canonical)
        return CourierStatus.UNKNOWN
