"""Tests for the usage API client and credential derivation."""

import hashlib
import json
import os
from pathlib import Path
from unittest.mock import patch

import httpx
import pytest
from keyring.errors import KeyringError

from claude_quota.exceptions import UsageAPIError
from claude_quota.quota.usage import (
    HTTPUsageClient,
    KeyringCredentialStore,
    UsageChecker,
    UsageInfo,
    UsageWindow,
    keychain_service_name,
    read_org_id,
)


USAGE_BODY = {
    "five_hour": {"utilization": 42.5, "resets_at": "2026-10-18T19:00:00Z"},
    "seven_day": {"utilization": 71.0, "resets_at": None},
    "seven_day_opus": None,
}


def make_client(handler) -> HTTPUsageClient:
    transport = httpx.MockTransport(handler)
    return HTTPUsageClient(
        base_url="https://claude.test/", client=httpx.Client(transport=transport)
    )


@pytest.mark.unit
class TestUsageInfo:
    def test_max_utilization(self) -> None:
        usage = UsageInfo.model_validate(USAGE_BODY)
        assert usage.max_utilization() == 71.0

    def test_max_utilization_without_windows(self) -> None:
        assert UsageInfo().max_utilization() == 0.0

    def test_single_window(self) -> None:
        usage = UsageInfo(five_hour=UsageWindow(utilization=12.0))
        assert usage.max_utilization() == 12.0

    def test_resets_at_datetime(self) -> None:
        window = UsageWindow(utilization=1.0, resets_at="2026-10-18T19:00:00Z")
        parsed = window.resets_at_datetime
        assert parsed is not None
        assert parsed.hour == 19
        assert parsed.utcoffset().total_seconds() == 0

    def test_resets_at_datetime_invalid(self) -> None:
        assert UsageWindow(resets_at="soon").resets_at_datetime is None

    def test_to_dict_omits_missing_windows(self) -> None:
        usage = UsageInfo(seven_day=UsageWindow(utilization=5.0))
        assert usage.to_dict() == {"seven_day": {"utilization": 5.0}}


@pytest.mark.unit
class TestHTTPUsageClient:
    def test_satisfies_protocol(self) -> None:
        with HTTPUsageClient() as client:
            assert isinstance(client, UsageChecker)

    def test_fetch_usage(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=USAGE_BODY)

        with make_client(handler) as client:
            usage = client.fetch_usage("org-1", "sk-ant-sid01-xyz")

        assert usage.five_hour.utilization == 42.5
        assert usage.seven_day.utilization == 71.0

        [request] = seen
        assert request.method == "GET"
        assert str(request.url) == "https://claude.test/api/organizations/org-1/usage"
        assert request.headers["Cookie"] == "sessionKey=sk-ant-sid01-xyz"
        assert request.headers["Accept"] == "application/json"
        assert "Mozilla" in request.headers["User-Agent"]

    @pytest.mark.parametrize("status", [401, 403, 429, 500])
    def test_non_200_raises(self, status: int) -> None:
        client = make_client(lambda request: httpx.Response(status, text="nope"))

        with pytest.raises(UsageAPIError) as exc_info:
            client.fetch_usage("org-1", "cookie")

        assert exc_info.value.status_code == status
        assert exc_info.value.details["org_id"] == "org-1"

    def test_invalid_json_raises(self) -> None:
        client = make_client(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(UsageAPIError, match="Invalid usage response"):
            client.fetch_usage("org-1", "cookie")

    def test_invalid_schema_raises(self) -> None:
        body = {"five_hour": {"utilization": "lots"}}
        client = make_client(lambda request: httpx.Response(200, json=body))
        with pytest.raises(UsageAPIError):
            client.fetch_usage("org-1", "cookie")

    def test_timeout_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(UsageAPIError, match="timed out"):
            make_client(handler).fetch_usage("org-1", "cookie")

    def test_transport_error_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(UsageAPIError, match="request failed"):
            make_client(handler).fetch_usage("org-1", "cookie")

    def test_single_request_per_call(self) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(503)

        with pytest.raises(UsageAPIError):
            make_client(handler).fetch_usage("org-1", "cookie")
        assert calls == 1

    def test_injected_client_not_closed(self) -> None:
        http_client = httpx.Client(transport=httpx.MockTransport(lambda r: None))
        HTTPUsageClient(client=http_client).close()
        assert not http_client.is_closed


@pytest.mark.unit
class TestReadOrgId:
    def write_claude_json(self, config_dir: Path, data: object) -> None:
        config_dir.mkdir(parents=True, exist_ok=True)
        (config_dir / ".claude.json").write_text(json.dumps(data))

    def test_reads_organization_uuid(self, tmp_path: Path) -> None:
        self.write_claude_json(
            tmp_path, {"oauthAccount": {"organizationUuid": "org-abc"}}
        )
        assert read_org_id(tmp_path) == "org-abc"

    def test_reads_alternate_keys(self, tmp_path: Path) -> None:
        self.write_claude_json(tmp_path, {"oauthAccount": {"orgUuid": "org-alt"}})
        assert read_org_id(str(tmp_path)) == "org-alt"

    def test_missing_file(self, tmp_path: Path) -> None:
        assert read_org_id(tmp_path / "nowhere") == ""

    def test_missing_oauth_account(self, tmp_path: Path) -> None:
        self.write_claude_json(tmp_path, {"userID": "u-1"})
        assert read_org_id(tmp_path) == ""

    def test_malformed_json(self, tmp_path: Path) -> None:
        (tmp_path / ".claude.json").write_text("{")
        assert read_org_id(tmp_path) == ""


@pytest.mark.unit
class TestKeychainServiceName:
    def test_default_config_dir_uses_bare_prefix(self) -> None:
        default_dir = str(Path.home() / ".claude")
        assert keychain_service_name(default_dir) == "Claude Code-credentials"
        assert keychain_service_name("~/.claude") == "Claude Code-credentials"

    def test_other_dirs_get_hash_suffix(self, tmp_path: Path) -> None:
        config_dir = tmp_path / "accounts" / "work"
        digest = hashlib.sha256(os.path.abspath(config_dir).encode()).hexdigest()

        name = keychain_service_name(config_dir)

        assert name == f"Claude Code-credentials-{digest[:8]}"

    def test_distinct_dirs_distinct_names(self, tmp_path: Path) -> None:
        assert keychain_service_name(tmp_path / "a") != keychain_service_name(
            tmp_path / "b"
        )


@pytest.mark.unit
class TestKeyringCredentialStore:
    def test_get_token(self) -> None:
        store = KeyringCredentialStore(username="me")
        with patch("keyring.get_password", return_value=" token \n") as get:
            assert store.get_token("svc") == "token"
        get.assert_called_once_with("svc", "me")

    def test_missing_token(self) -> None:
        store = KeyringCredentialStore(username="me")
        with patch("keyring.get_password", return_value=None):
            assert store.get_token("svc") is None

    def test_keyring_error_returns_none(self) -> None:
        store = KeyringCredentialStore(username="me")
        with patch("keyring.get_password", side_effect=KeyringError("locked")):
            assert store.get_token("svc") is None

    @pytest.mark.parametrize("error", [OSError("no login"), KeyError("uid")])
    def test_unknown_user_falls_back_to_empty(self, error: Exception) -> None:
        with patch("getpass.getuser", side_effect=error):
            store = KeyringCredentialStore()

        assert store.username == ""
        with patch("keyring.get_password", return_value="token") as get:
            assert store.get_token("svc") == "token"
        get.assert_called_once_with("svc", "")
