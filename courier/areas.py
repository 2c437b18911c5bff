from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from .models import CourierProvider, ServiceableArea

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncResult:
    created: int
    updated: int

    @property
    def total(self) -> int:
        return self.created + self.updated


class ServiceableAreaIndex:
    """Maps platform locations to each courier's own city/zone/area ids."""

    def resolve_delivery(self, provider: CourierProvider, location_id) -> Optional[ServiceableArea]:
        return self._resolve(provider, location_id, home_delivery_available=True)

    def resolve_pickup(self, provider: CourierProvider, location_id) -> Optional[ServiceableArea]:
        return self._resolve(provider, location_id, pickup_available=True)

    def _resolve(self, provider, location_id, **flags) -> Optional[ServiceableArea]:
        if not location_id:
            return None
        return (
            ServiceableArea.objects.filter(provider=provider, location_id=location_id, is_active=True, **flags)
            .order_by("-last_synced_at")
            .first()
        )

    @transaction.atomic
    def sync(self, provider: CourierProvider, rows: Iterable[Dict[str, Any]]) -> SyncResult:
        """Upsert area rows keyed by (provider, courier_area_id)."""
        created = updated = 0
        synced_at = timezone.now()
        for row in rows:
            defaults = {
                "location_id": row["location_id"],
                "courier_city_id": str(row.get("courier_city_id") or ""),
                "courier_zone_id": str(row.get("courier_zone_id") or ""),
                "courier_city_name": row.get("courier_city_name") or "",
                "courier_zone_name": row.get("courier_zone_name") or "",
                "courier_area_name": row.get("courier_area_name") or "",
                "home_delivery_available": row.get("home_delivery_available", True),
                "pickup_available": row.get("pickup_available", True),
                "is_active": row.get("is_active", True),
                "raw_data": row.get("raw_data") or {},
                "last_synced_at": synced_at,
            }
            _, was_created = ServiceableArea.objects.update_or_create(
                provider=provider,
                courier_area_id=str(row["courier_area_id"]),
                defaults=defaults,
            )
            if was_created:
                created += 1
            else:
                updated += 1

        logger.info("Serviceable areas synced provider=%s created=%s updated=%s", provider.slug, created, updated)
        return SyncResult(created=created, updated=updated)

    def list_areas(self, provider=None, location=None, is_active=None, search: str = ""):
        areas = ServiceableArea.objects.select_related("provider", "location")
        if provider is not None:
            areas = areas.filter(provider=provider)
        if location is not None:
            areas = areas.filter(location=location)
        if is_active is not None:
            areas = areas.filter(is_active=is_active)
        if search:
            areas = areas.filter(
                Q(courier_area_name__icontains=search)
                | Q(courier_zone_name__icontains=search)
                | Q(courier_city_name__icontains=search)
                | Q(location__name__icontains=search)
            )
        return areas

    def delete(self, area: ServiceableArea) -> None:
        area.delete()
