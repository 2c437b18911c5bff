from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import timedelta
from typing import Any, Dict, Optional

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from .exceptions import CourierError, CredentialMissing, DuplicateCredential, ProviderInUse
from .models import TERMINAL_STATUSES, CourierCredential, CourierOrder, CourierProvider, Environment

logger = logging.getLogger(__name__)

AUTH_FIELDS = ("client_id", "client_secret", "username", "password", "api_key", "bearer_token")
EDITABLE_FIELDS = AUTH_FIELDS + ("store_id", "merchant_id")


class CredentialStore:
    """ORM-backed lookup and persistence of courier credentials."""

    def get_active_credential(
        self,
        provider: CourierProvider,
        environment: str,
        vendor=None,
    ) -> CourierCredential:
        credentials = CourierCredential.objects.filter(
            provider=provider,
            environment=environment,
            is_active=True,
        ).select_related("provider", "vendor")

        if vendor is not None:
            credential = credentials.filter(vendor=vendor).first()
            if credential:
                return credential

        credential = credentials.filter(vendor__isnull=True).first()
        if credential is None:
            raise CredentialMissing(f"No active {environment} credential configured for {provider.name}")
        return credential

    @contextmanager
    def locked(self, credential: CourierCredential):
        """Re-read the credential row under a row lock for the duration of the block."""
        with transaction.atomic():
            yield CourierCredential.objects.select_for_update().select_related("provider").get(pk=credential.pk)

    def save_token(self, credential: CourierCredential, grant) -> CourierCredential:
        credential.access_token = grant.access_token
        if grant.refresh_token:
            credential.refresh_token = grant.refresh_token
        # Couriers that omit expires_in get the configured default lifetime.
        lifetime = grant.expires_in
        if not lifetime or lifetime <= 0:
            lifetime = settings.COURIER_DEFAULT_TOKEN_LIFETIME_SECONDS
        credential.token_expires_at = timezone.now() + timedelta(seconds=lifetime)
        credential.save(update_fields=["access_token", "refresh_token", "token_expires_at", "updated_at"])
        return credential

    def mark_verified(self, credential: CourierCredential) -> CourierCredential:
        credential.last_verified_at = timezone.now()
        credential.save(update_fields=["last_verified_at", "updated_at"])
        return credential


def _active_duplicate_exists(provider, environment, vendor, exclude_pk=None) -> bool:
    duplicates = CourierCredential.objects.filter(
        provider=provider,
        environment=environment,
        vendor=vendor,
        is_active=True,
    )
    if exclude_pk is not None:
        duplicates = duplicates.exclude(pk=exclude_pk)
    return duplicates.exists()


@transaction.atomic
def create_credential(
    provider: CourierProvider,
    environment: str = Environment.PRODUCTION,
    vendor=None,
    is_active: bool = True,
    **fields: Any,
) -> CourierCredential:
    if is_active and _active_duplicate_exists(provider, environment, vendor):
        raise DuplicateCredential(
            f"An active {environment} credential for {provider.name} already exists for this scope"
        )
    values = {name: fields[name] for name in EDITABLE_FIELDS if name in fields}
    credential = CourierCredential.objects.create(
        provider=provider,
        environment=environment,
        vendor=vendor,
        is_active=is_active,
        **values,
    )
    logger.info("Courier credential created id=%s provider=%s env=%s", credential.id, provider.slug, environment)
    return credential


@transaction.atomic
def update_credential(credential: CourierCredential, **fields: Any) -> CourierCredential:
    changed = []
    for name in EDITABLE_FIELDS:
        if name in fields and getattr(credential, name) != fields[name]:
            setattr(credential, name, fields[name])
            changed.append(name)

    # Tokens issued for the old auth material are no longer trustworthy.
    if any(name in AUTH_FIELDS for name in changed):
        credential.access_token = ""
        credential.refresh_token = ""
        credential.token_expires_at = None
        changed += ["access_token", "refresh_token", "token_expires_at"]

    if changed:
        credential.save(update_fields=changed + ["updated_at"])
    return credential


@transaction.atomic
def toggle_credential(credential: CourierCredential) -> CourierCredential:
    activating = not credential.is_active
    if activating and _active_duplicate_exists(
        credential.provider, credential.environment, credential.vendor, exclude_pk=credential.pk
    ):
        raise DuplicateCredential("Another active credential already exists for this scope")
    credential.is_active = activating
    credential.save(update_fields=["is_active", "updated_at"])
    return credential


@transaction.atomic
def delete_credential(credential: CourierCredential) -> None:
    open_orders = CourierOrder.objects.filter(
        provider=credential.provider,
        environment=credential.environment,
    ).exclude(status__in=TERMINAL_STATUSES)
    if credential.vendor_id:
        open_orders = open_orders.filter(vendor_id=credential.vendor_id)
    if open_orders.exists():
        raise ProviderInUse("Cannot delete a credential while it has active courier orders")
    credential.delete()


def test_credential(credential: CourierCredential, store: Optional[CredentialStore] = None) -> Dict[str, Any]:
    from .adapters import get_adapter

    store = store or CredentialStore()
    try:
        adapter = get_adapter(
            credential.provider,
            credential.environment,
            vendor=credential.vendor,
            credentials=store,
            credential=credential,
        )
        message = adapter.verify_credentials()
    except CourierError as exc:
        logger.warning("Courier credential test failed id=%s: %s", credential.id, exc)
        return {"success": False, "message": str(exc)}

    store.mark_verified(credential)
    return {"success": True, "message": message}
