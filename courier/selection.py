from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, List, Optional

import requests
from django.conf import settings

from .adapters import Quote, get_adapter
from .areas import ServiceableAreaIndex
from .exceptions import AdapterNotRegistered, CourierError, NoCourierAvailable
from .models import CourierProvider, ServiceableArea

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Selection:
    provider: CourierProvider
    pricing: Quote
    pickup_area: ServiceableArea
    delivery_area: ServiceableArea


class CourierSelector:
    """Quotes every active courier for a route and keeps the cheapest.

    Providers are asked one after another in (preferred, priority, name)
    order. A courier that cannot serve the route, or that fails while
    quoting, is logged and left out.
    """

    def __init__(
        self,
        area_index: Optional[ServiceableAreaIndex] = None,
        adapter_factory: Optional[Callable] = None,
        environment: Optional[str] = None,
    ) -> None:
        self.area_index = area_index or ServiceableAreaIndex()
        self.adapter_factory = adapter_factory or get_adapter
        self.environment = environment or settings.COURIER_ENVIRONMENT

    def candidates(self):
        return CourierProvider.objects.filter(is_active=True).order_by("-is_preferred", "priority", "name")

    def collect_quotes(
        self,
        pickup_location_id,
        delivery_location_id,
        weight: Decimal,
        cod_amount: Decimal = Decimal("0"),
        delivery_type: str = "NORMAL",
        vendor=None,
    ) -> List[Selection]:
        cod_amount = Decimal(str(cod_amount or 0))
        options: List[Selection] = []

        for provider in self.candidates():
            if cod_amount > 0 and not provider.supports_cod:
                logger.debug("Skipping provider=%s: cash on delivery not supported", provider.slug)
                continue

            pickup_area = self.area_index.resolve_pickup(provider, pickup_location_id)
            delivery_area = self.area_index.resolve_delivery(provider, delivery_location_id)
            if pickup_area is None or delivery_area is None:
                logger.debug(
                    "Skipping provider=%s: route %s -> %s not mapped",
                    provider.slug,
                    pickup_location_id,
                    delivery_location_id,
                )
                continue

            try:
                adapter = self.adapter_factory(provider, self.environment, vendor=vendor)
                quote = adapter.quote(pickup_area, delivery_area, weight, cod_amount, delivery_type)
            except AdapterNotRegistered:
                logger.debug("Skipping provider=%s: no adapter registered", provider.slug)
                continue
            except (CourierError, requests.RequestException) as exc:
                logger.warning("Quote failed for provider=%s: %s", provider.slug, exc)
                continue
            except Exception:
                logger.exception("Unexpected error quoting provider=%s", provider.slug)
                continue

            if quote is None:
                logger.debug("Provider=%s reports route as unserviceable", provider.slug)
                continue
            options.append(Selection(provider, quote, pickup_area, delivery_area))

        return options

    def select_best_courier(
        self,
        pickup_location_id,
        delivery_location_id,
        weight: Decimal,
        cod_amount: Decimal = Decimal("0"),
        delivery_type: str = "NORMAL",
        vendor=None,
    ) -> Selection:
        options = self.collect_quotes(
            pickup_location_id,
            delivery_location_id,
            weight,
            cod_amount=cod_amount,
            delivery_type=delivery_type,
            vendor=vendor,
        )
        return self.cheapest(options)

    @staticmethod
    def cheapest(options: List[Selection]) -> Selection:
        if not options:
            raise NoCourierAvailable()
        best = options[0]
        for option in options[1:]:
            # Strictly lower only, so ties keep the earlier (higher priority) courier.
            if option.pricing.total_charge < best.pricing.total_charge:
                best = option
        return best
