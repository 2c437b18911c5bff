from __future__ import annotations

import hmac
import logging
from typing import Any, Callable, Dict, Mapping, Optional

from django.conf import settings

from .adapters import get_adapter
from .exceptions import AdapterNotRegistered, InvalidStatusTransition
from .models import CourierOrder, CourierProvider, CourierStatus, CourierWebhookLog
from .services import apply_status_update, envelope

logger = logging.getLogger(__name__)

SECRET_HEADER = "X-Webhook-Secret"


class WebhookIngestor:
    """Applies courier status callbacks to courier orders.

    Every delivery is written to ``CourierWebhookLog``. Nothing here raises to
    the caller: unknown providers, unknown tracking ids and rejected
    transitions are logged and dropped so the courier stops retrying.
    """

    def __init__(self, adapter_factory: Optional[Callable] = None, environment: Optional[str] = None) -> None:
        self.adapter_factory = adapter_factory or get_adapter
        self.environment = environment or settings.COURIER_ENVIRONMENT

    def ingest(
        self,
        provider_slug: str,
        payload: Any,
        headers: Optional[Mapping[str, str]] = None,
    ) -> CourierWebhookLog:
        payload = payload if isinstance(payload, dict) else {}
        log = CourierWebhookLog.objects.create(
            provider=(provider_slug or "")[:60],
            event_type=CourierWebhookLog.EventType.RECEIVED,
            payload=payload,
        )
        logger.info("Courier webhook received provider=%s log=%s", provider_slug, log.pk)

        try:
            self._process(log, provider_slug, payload, headers or {})
        except Exception:
            logger.exception("Courier webhook processing failed provider=%s log=%s", provider_slug, log.pk)
            self._finish(log, CourierWebhookLog.EventType.FAILED, "Unexpected error while processing webhook")
        return log

    def _process(self, log, provider_slug: str, payload: Dict[str, Any], headers: Mapping[str, str]) -> None:
        provider = CourierProvider.objects.filter(slug=provider_slug).first()
        if provider is None:
            logger.warning("Webhook for unknown courier provider=%s", provider_slug)
            self._finish(log, CourierWebhookLog.EventType.IGNORED, "Unknown courier provider")
            return

        if provider.webhook_secret:
            incoming = headers.get(SECRET_HEADER) or ""
            if not hmac.compare_digest(str(incoming), provider.webhook_secret):
                logger.warning("Webhook secret mismatch provider=%s", provider.slug)
                self._finish(log, CourierWebhookLog.EventType.REJECTED, "Invalid webhook secret")
                return

        try:
            adapter = self.adapter_factory(provider, self.environment)
        except AdapterNotRegistered as exc:
            logger.warning("Webhook for provider=%s without adapter", provider.slug)
            self._finish(log, CourierWebhookLog.EventType.IGNORED, str(exc))
            return

        event = adapter.parse_webhook(payload)
        log.reference = (event.tracking_id or event.reference)[:150]
        courier_order = self._find_courier_order(provider, event.tracking_id, event.reference)
        if courier_order is None:
            logger.warning(
                "Webhook for unknown courier order provider=%s tracking=%s reference=%s",
                provider.slug,
                event.tracking_id,
                event.reference,
            )
            self._finish(log, CourierWebhookLog.EventType.NOT_FOUND, "Courier order not found")
            return

        status = adapter.map_raw_status_to_canonical(event.raw_status)
        try:
            apply_status_update(
                courier_order,
                status,
                raw_status=event.raw_status,
                message_en=event.message_en,
                message_bn=event.message_bn,
                location=event.location,
                timestamp=event.timestamp,
                raw_data=envelope(provider.slug, "tracking", payload),
            )
        except InvalidStatusTransition as exc:
            logger.warning("Webhook ignored for courier order=%s: %s", courier_order.pk, exc)
            self._finish(log, CourierWebhookLog.EventType.IGNORED, str(exc))
            return

        if status == CourierStatus.UNKNOWN:
            logger.warning("Unmapped courier status provider=%s raw=%s", provider.slug, event.raw_status)
        self._finish(log, CourierWebhookLog.EventType.PROCESSED, f"Status {status}", processed=True)

    def _find_courier_order(self, provider, tracking_id: str, reference: str) -> Optional[CourierOrder]:
        courier_orders = CourierOrder.objects.filter(provider=provider).exclude(status=CourierStatus.FAILED)
        if tracking_id:
            courier_order = courier_orders.filter(courier_tracking_id=tracking_id).first()
            if courier_order:
                return courier_order
        for candidate in (reference, tracking_id):
            if not candidate:
                continue
            courier_order = courier_orders.filter(courier_order_id=candidate).first()
            if courier_order:
                return courier_order
        if reference:
            return courier_orders.filter(order__order_number=reference).order_by("-created_at").first()
        return None

    @staticmethod
    def _finish(log, event_type: str, detail: str, processed: bool = False) -> None:
        log.event_type = event_type
        log.detail = detail[:255]
        log.processed = processed
        log.save(update_fields=["event_type", "detail", "processed", "reference"])
