from __future__ import annotations

import logging
import threading
from datetime import timedelta
from typing import Callable, Dict, Hashable, Optional

from django.conf import settings

from .credentials import CredentialStore
from .exceptions import CourierError, CredentialMissing, TokenRefreshFailed
from .models import CourierCredential, CourierProvider

logger = logging.getLogger(__name__)


class KeyedLock:
    """One ``threading.Lock`` per key, created on first use."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[Hashable, threading.Lock] = {}

    def for_key(self, key: Hashable) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock


# Shared by every TokenManager in the process so concurrent requests serialize per credential.
REFRESH_LOCKS = KeyedLock()


def exchange_with_adapter(provider: CourierProvider, credential: CourierCredential, refresh_token: Optional[str]):
    from .adapters import get_adapter

    adapter = get_adapter(provider, credential.environment, vendor=credential.vendor, credential=credential)
    return adapter.issue_token(credential, refresh_token=refresh_token)


class TokenManager:
    """Hands out valid provider tokens, refreshing OAuth tokens lazily.

    A refresh holds the per-credential process lock and a row lock on the
    credential, then re-checks expiry so callers that queued behind the first
    refresh reuse its token instead of hitting the provider again.
    """

    def __init__(
        self,
        store: Optional[CredentialStore] = None,
        exchange: Optional[Callable] = None,
        locks: Optional[KeyedLock] = None,
        buffer: Optional[timedelta] = None,
    ) -> None:
        self.store = store or CredentialStore()
        self.exchange = exchange or exchange_with_adapter
        self.locks = locks or REFRESH_LOCKS
        if buffer is None:
            buffer = timedelta(seconds=settings.COURIER_TOKEN_EXPIRY_BUFFER_SECONDS)
        self.buffer = buffer

    def get_valid_token(self, provider: CourierProvider, environment: str, vendor=None) -> str:
        credential = self.store.get_active_credential(provider, environment, vendor)
        return self.token_for(credential)

    def token_for(self, credential: CourierCredential) -> str:
        provider = credential.provider
        if provider.auth_type == CourierProvider.AuthType.API_KEY:
            return self._static_token(credential, credential.api_key or credential.bearer_token)
        if provider.auth_type == CourierProvider.AuthType.BEARER:
            return self._static_token(credential, credential.bearer_token or credential.api_key)

        if credential.token_is_fresh(self.buffer):
            return credential.access_token
        return self._refresh(provider, credential, force=False)

    def force_refresh(self, credential: CourierCredential) -> str:
        provider = credential.provider
        if provider.auth_type != CourierProvider.AuthType.OAUTH2:
            raise CourierError("Token refresh is only available for OAuth2 providers")
        return self._refresh(provider, credential, force=True)

    def _static_token(self, credential: CourierCredential, token: str) -> str:
        if not token:
            raise CredentialMissing(f"Credential {credential.pk} has no API key or bearer token")
        return token

    def _refresh(self, provider: CourierProvider, credential: CourierCredential, force: bool) -> str:
        with self.locks.for_key(credential.cache_key):
            with self.store.locked(credential) as current:
                if force or not current.token_is_fresh(self.buffer):
                    grant = self._exchange(provider, current)
                    self.store.save_token(current, grant)
                    logger.info("Courier token refreshed provider=%s credential=%s", provider.slug, current.pk)

        # Keep the caller's instance in step with the row.
        credential.access_token = current.access_token
        credential.refresh_token = current.refresh_token
        credential.token_expires_at = current.token_expires_at
        return current.access_token

    def _exchange(self, provider: CourierProvider, credential: CourierCredential):
        if credential.refresh_token:
            try:
                return self.exchange(provider, credential, credential.refresh_token)
            except CourierError as exc:
                logger.warning(
                    "Refresh-token grant failed provider=%s credential=%s, retrying with password grant: %s",
                    provider.slug,
                    credential.pk,
                    exc,
                )
        try:
            return self.exchange(provider, credential, None)
        except CourierError as exc:
            logger.warning("Token issue failed provider=%s credential=%s: %s", provider.slug, credential.pk, exc)
            raise TokenRefreshFailed(f"Could not refresh {provider.name} token: {exc}") from exc
