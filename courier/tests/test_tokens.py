import threading
import time
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from datetime import timedelta
from unittest.mock import patch

from django.test import SimpleTestCase, TestCase
from django.utils import timezone

from courier.adapters import TokenGrant
from courier.exceptions import CourierError, CredentialMissing, TokenRefreshFailed
from courier.models import CourierCredential, CourierProvider
from courier.tokens import KeyedLock, TokenManager

from .helpers import CourierTestMixin, fake_response


class TokenManagerTests(CourierTestMixin, TestCase):
    def setUp(self):
        self.create_marketplace()
        self.pathao = self.create_provider("pathao", auth_type=CourierProvider.AuthType.OAUTH2)
        self.credential = self.create_credential(
            self.pathao,
            client_id="client",
            client_secret="secret",
            username="merchant@example.com",
            password="pw",
            store_id="77",
        )
        self.tokens = TokenManager(locks=KeyedLock())

    @patch("courier.adapters.base.requests.request")
    def test_expired_token_is_refreshed_once_then_reused(self, mock_request):
        mock_request.return_value = fake_response(
            {"token_type": "Bearer", "expires_in": 3600, "access_token": "tok-1", "refresh_token": "ref-1"}
        )

        first = self.tokens.get_valid_token(self.pathao, self.credential.environment)
        second = self.tokens.get_valid_token(self.pathao, self.credential.environment)

        self.assertEqual(first, "tok-1")
        self.assertEqual(second, "tok-1")
        self.assertEqual(mock_request.call_count, 1)

        method, url = mock_request.call_args.args
        self.assertEqual(method, "POST")
        self.assertTrue(url.endswith("/aladdin/api/v1/issue-token"))
        body = mock_request.call_args.kwargs["json"]
        self.assertEqual(body["grant_type"], "password")
        self.assertEqual(body["username"], "merchant@example.com")
        self.assertEqual(mock_request.call_args.kwargs["timeout"], 30)

        self.credential.refresh_from_db()
        self.assertEqual(self.credential.access_token, "tok-1")
        self.assertEqual(self.credential.refresh_token, "ref-1")
        self.assertGreater(self.credential.token_expires_at, timezone.now() + timedelta(minutes=55))

    @patch("courier.adapters.base.requests.request")
    def test_token_inside_expiry_buffer_is_refreshed(self, mock_request):
        self.credential.access_token = "about-to-expire"
        self.credential.refresh_token = "ref-0"
        self.credential.token_expires_at = timezone.now() + timedelta(minutes=2)
        self.credential.save()
        mock_request.return_value = fake_response({"expires_in": 3600, "access_token": "tok-2", "refresh_token": "ref-2"})

        token = self.tokens.get_valid_token(self.pathao, self.credential.environment)

        self.assertEqual(token, "tok-2")
        body = mock_request.call_args.kwargs["json"]
        self.assertEqual(body["grant_type"], "refresh_token")
        self.assertEqual(body["refresh_token"], "ref-0")

    @patch("courier.adapters.base.requests.request")
    def test_fresh_token_makes_no_network_call(self, mock_request):
        self.credential.access_token = "still-good"
        self.credential.token_expires_at = timezone.now() + timedelta(hours=1)
        self.credential.save()

        self.assertEqual(self.tokens.get_valid_token(self.pathao, self.credential.environment), "still-good")
        mock_request.assert_not_called()

    @patch("courier.adapters.base.requests.request")
    def test_grant_without_expiry_gets_default_lifetime(self, mock_request):
        mock_request.return_value = fake_response({"access_token": "tok-3", "refresh_token": "ref-3"})

        self.tokens.get_valid_token(self.pathao, self.credential.environment)
        second = self.tokens.get_valid_token(self.pathao, self.credential.environment)

        self.assertEqual(second, "tok-3")
        self.assertEqual(mock_request.call_count, 1)
        self.credential.refresh_from_db()
        self.assertGreater(self.credential.token_expires_at, timezone.now() + timedelta(minutes=55))

    @patch("courier.adapters.base.requests.request")
    def test_refresh_failure_raises_and_keeps_old_values(self, mock_request):
        self.credential.access_token = "stale"
        self.credential.refresh_token = "ref-0"
        self.credential.token_expires_at = timezone.now() - timedelta(minutes=1)
        self.credential.save()
        mock_request.return_value = fake_response({"message": "invalid_grant"}, status_code=401)

        with self.assertRaises(TokenRefreshFailed):
            self.tokens.get_valid_token(self.pathao, self.credential.environment)

        # Refresh-token grant first, then one password grant.
        self.assertEqual(mock_request.call_count, 2)
        self.credential.refresh_from_db()
        self.assertEqual(self.credential.access_token, "stale")

    @patch("courier.adapters.base.requests.request")
    def test_force_refresh_ignores_fresh_token(self, mock_request):
        self.credential.access_token = "still-good"
        self.credential.token_expires_at = timezone.now() + timedelta(hours=1)
        self.credential.save()
        mock_request.return_value = fake_response({"expires_in": 3600, "access_token": "forced"})

        self.assertEqual(self.tokens.force_refresh(self.credential), "forced")
        self.credential.refresh_from_db()
        self.assertEqual(self.credential.access_token, "forced")

    def test_force_refresh_rejects_non_oauth_provider(self):
        redx = self.create_provider("redx")
        credential = self.create_credential(redx, bearer_token="static")
        with self.assertRaises(CourierError):
            self.tokens.force_refresh(credential)

    def test_bearer_provider_returns_stored_token(self):
        redx = self.create_provider("redx")
        self.create_credential(redx, bearer_token="static-token")
        self.assertEqual(self.tokens.get_valid_token(redx, self.credential.environment), "static-token")

    def test_api_key_provider_returns_key(self):
        hudhud = self.create_provider("hudhud", auth_type=CourierProvider.AuthType.API_KEY)
        self.create_credential(hudhud, api_key="key-123")
        self.assertEqual(self.tokens.get_valid_token(hudhud, self.credential.environment), "key-123")

    def test_vendor_lookup_falls_back_to_platform_credential(self):
        redx = self.create_provider("redx")
        self.create_credential(redx, bearer_token="platform-token")
        self.assertEqual(self.tokens.get_valid_token(redx, self.credential.environment, self.shop), "platform-token")

        self.create_credential(redx, vendor=self.shop, bearer_token="vendor-token")
        self.assertEqual(self.tokens.get_valid_token(redx, self.credential.environment, self.shop), "vendor-token")

    def test_missing_credential_raises(self):
        redx = self.create_provider("redx")
        with self.assertRaises(CredentialMissing):
            self.tokens.get_valid_token(redx, self.credential.environment)


class InMemoryStore:
    def __init__(self, credential):
        self.credential = credential
        self.row_lock = threading.Lock()

    def get_active_credential(self, provider, environment, vendor=None):
        return self.credential

    @contextmanager
    def locked(self, credential):
        with self.row_lock:
            yield self.credential

    def save_token(self, credential, grant):
        credential.access_token = grant.access_token
        credential.refresh_token = grant.refresh_token or credential.refresh_token
        credential.token_expires_at = timezone.now() + timedelta(seconds=grant.expires_in)
        return credential


class ConcurrentRefreshTests(SimpleTestCase):
    def test_concurrent_callers_trigger_a_single_refresh(self):
        provider = CourierProvider(name="Pathao", slug="pathao", auth_type=CourierProvider.AuthType.OAUTH2)
        credential = CourierCredential(
            provider=provider,
            environment="SANDBOX",
            client_id="client",
            client_secret="secret",
            access_token="expired",
            token_expires_at=timezone.now() - timedelta(minutes=10),
        )
        calls = []
        calls_lock = threading.Lock()

        def exchange(provider, credential, refresh_token):
            with calls_lock:
                calls.append(refresh_token)
                number = len(calls)
            time.sleep(0.05)
            return TokenGrant(access_token=f"tok-{number}", refresh_token="ref", expires_in=3600)

        manager = TokenManager(store=InMemoryStore(credential), exchange=exchange, locks=KeyedLock())
        workers = 8
        barrier = threading.Barrier(workers)

        def fetch():
            barrier.wait()
            return manager.get_valid_token(provider, "SANDBOX")

        with ThreadPoolExecutor(max_workers=workers) as executor:
            tokens = list(executor.map(lambda _: fetch(), range(workers)))

        self.assertEqual(len(calls), 1)
        self.assertEqual(set(tokens), {"tok-1"})
