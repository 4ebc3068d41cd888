"""Unit tests for delivery providers and the provider factory."""

from datetime import datetime, timezone
from unittest.mock import Mock

import pytest
import requests

from push_engine.config.environment import EnvironmentConfig
from push_engine.config.models import ProviderConfig
from push_engine.delivery.planner import BatchPlanner
from push_engine.domain.models import NotificationPayload, PushOptions
from push_engine.providers.dry_run import DryRunProvider
from push_engine.providers.exceptions import (
    ProviderAuthError,
    ProviderConfigurationError,
    ProviderPayloadError,
    ProviderResponseError,
    ProviderUnavailableError,
)
from push_engine.providers.factory import get_provider
from push_engine.providers.fcm import FcmLegacyProvider, parse_retry_after


def http_response(status=200, body=None, headers=None, json_error=False):
    response = Mock()
    response.status_code = status
    response.reason = "Reason"
    response.headers = headers or {}
    if json_error:
        response.json.side_effect = ValueError("Expecting value")
    else:
        response.json.return_value = body
    return response


@pytest.fixture
def session():
    session = Mock()
    session.headers = {}
    return session


@pytest.fixture
def provider(session):
    return FcmLegacyProvider(server_key="server-key", session=session)


@pytest.fixture
def batch(make_items, payload):
    return BatchPlanner().plan(make_items(3), 10, payload)[0]


class TestParseRetryAfter:
    """Tests for Retry-After header parsing."""

    def test_delta_seconds(self):
        assert parse_retry_after("120") == 120.0

    def test_http_date(self):
        now = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)

        assert parse_retry_after("Sun, 01 Mar 2026 12:00:30 GMT", now=now) == pytest.approx(30.0)

    @pytest.mark.parametrize("value", [None, "", "soon"])
    def test_missing_or_garbage(self, value):
        assert parse_retry_after(value) is None


class TestFcmLegacyProvider:
    """Tests for the FCM legacy HTTP provider."""

    def test_sets_auth_headers(self, provider, session):
        assert session.headers["Authorization"] == "key=server-key"
        assert session.headers["Content-Type"] == "application/json"

    def test_empty_server_key_rejected(self, session):
        with pytest.raises(ProviderConfigurationError):
            FcmLegacyProvider(server_key="  ", session=session)

    def test_limits_can_only_be_lowered(self, session):
        provider = FcmLegacyProvider(server_key="k", max_batch_size=5000, max_payload_bytes=1024, session=session)

        assert provider.max_batch_size == 1000
        assert provider.max_payload_bytes == 1024

    def test_build_body(self, provider, make_items):
        payload = NotificationPayload(
            title="Hello",
            body="World",
            data={"k": "v"},
            options=PushOptions(priority="normal", time_to_live=60, collapse_key="news"),
        )
        batch = BatchPlanner().plan(make_items(2), 10, payload)[0]

        body = provider.build_body(batch)

        assert body == {
            "registration_ids": batch.registration_ids,
            "priority": "normal",
            "notification": {"title": "Hello", "body": "World"},
            "data": {"k": "v"},
            "time_to_live": 60,
            "collapse_key": "news",
        }

    def test_data_only_payload_has_no_notification(self, provider, make_items):
        batch = BatchPlanner().plan(make_items(1), 10, NotificationPayload(data={"sync": "1"}))[0]

        assert "notification" not in provider.build_body(batch)

    def test_parses_per_recipient_results(self, provider, session, batch):
        session.post.return_value = http_response(
            body={
                "success": 2,
                "failure": 1,
                "results": [
                    {"message_id": "0:1"},
                    {"error": "NotRegistered"},
                    {"message_id": "0:3", "registration_id": "device-token-new"},
                ],
            }
        )

        response = provider.deliver(batch)

        session.post.assert_called_once()
        assert session.post.call_args.kwargs["json"]["registration_ids"] == batch.registration_ids
        assert session.post.call_args.kwargs["timeout"] == 10.0
        assert [r.registration_id for r in response.results] == batch.registration_ids
        assert response.results[0].message_id == "0:1"
        assert response.results[1].error == "NotRegistered"
        assert response.results[2].canonical_id == "device-token-new"

    @pytest.mark.parametrize("status", [429, 500, 503])
    def test_retryable_status(self, provider, session, batch, status):
        session.post.return_value = http_response(status=status, headers={"Retry-After": "30"})

        with pytest.raises(ProviderUnavailableError) as exc_info:
            provider.deliver(batch)

        assert exc_info.value.status_code == status
        assert exc_info.value.retry_after == 30.0

    @pytest.mark.parametrize("status", [401, 403])
    def test_auth_status(self, provider, session, batch, status):
        session.post.return_value = http_response(status=status)

        with pytest.raises(ProviderAuthError):
            provider.deliver(batch)

    def test_bad_request_status(self, provider, session, batch):
        session.post.return_value = http_response(status=400)

        with pytest.raises(ProviderPayloadError):
            provider.deliver(batch)

    def test_timeout(self, provider, session, batch):
        session.post.side_effect = requests.exceptions.Timeout("timed out")

        with pytest.raises(ProviderUnavailableError):
            provider.deliver(batch)

    def test_connection_error(self, provider, session, batch):
        session.post.side_effect = requests.exceptions.ConnectionError("refused")

        with pytest.raises(ProviderUnavailableError):
            provider.deliver(batch)

    def test_invalid_json(self, provider, session, batch):
        session.post.return_value = http_response(json_error=True)

        with pytest.raises(ProviderResponseError):
            provider.deliver(batch)

    def test_results_length_mismatch(self, provider, session, batch):
        session.post.return_value = http_response(body={"results": [{"message_id": "0:1"}]})

        with pytest.raises(ProviderResponseError):
            provider.deliver(batch)

    def test_missing_results(self, provider, session, batch):
        session.post.return_value = http_response(body={"success": 3})

        with pytest.raises(ProviderResponseError):
            provider.deliver(batch)

    def test_close_closes_session(self, provider, session):
        provider.close()

        session.close.assert_called_once()


class TestDryRunProvider:
    """Tests for the dry-run provider."""

    def test_accepts_everything(self, batch):
        provider = DryRunProvider()

        response = provider.deliver(batch)

        assert [r.message_id for r in response.results] == ["dry-run-0", "dry-run-1", "dry-run-2"]
        assert all(r.error is None for r in response.results)
        assert provider.accepted_count == 3

    def test_keeps_count_not_identifiers(self, batch):
        provider = DryRunProvider()

        provider.deliver(batch)
        response = provider.deliver(batch)

        assert provider.accepted_count == 6
        assert response.results[0].message_id == "dry-run-3"
        assert not hasattr(provider, "delivered")


class TestFactory:
    """Tests for get_provider()."""

    def test_dry_run_type(self):
        provider = get_provider(ProviderConfig(type="dry_run", max_batch_size=50), EnvironmentConfig())

        assert isinstance(provider, DryRunProvider)
        assert provider.max_batch_size == 50

    def test_dry_run_flag_overrides_type(self):
        provider = get_provider(ProviderConfig(type="fcm_legacy"), EnvironmentConfig(), dry_run=True)

        assert isinstance(provider, DryRunProvider)

    def test_fcm_legacy(self):
        env = EnvironmentConfig(fcm_server_key="key", fcm_endpoint="https://push.example.com/send")

        provider = get_provider(ProviderConfig(type="fcm_legacy", request_timeout=3), env)

        assert isinstance(provider, FcmLegacyProvider)
        assert provider.endpoint == "https://push.example.com/send"
        assert provider.timeout == 3
        provider.close()

    def test_fcm_legacy_without_key(self):
        with pytest.raises(ProviderConfigurationError):
            get_provider(ProviderConfig(type="fcm_legacy"), EnvironmentConfig())
