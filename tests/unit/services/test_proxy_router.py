"""
Tests for ProxyRouter.

The upstream HTTP session is a Mock; nothing leaves the process.
"""

from unittest.mock import Mock, patch

import pytest
import requests

from proxy_vault.context.session_context import SessionAuthenticator, owner_session
from proxy_vault.exceptions import (
    CredentialNotFoundError,
    CredentialRevokedError,
    ExternalServiceError,
    ValidationError,
)
from proxy_vault.services import ProxyRouter, VaultService
from proxy_vault.services.proxy_router import extract_proxy_key

OWNER = "0xROUTER00000000000000000000000000000000A1"
OWNER_KEY = bytes(range(32))
OTHER_OWNER = "0xROUTER00000000000000000000000000000000B2"
OTHER_KEY = bytes(range(10, 42))
SECRET = "sk-upstream-secret"


@pytest.fixture(autouse=True)
def no_webhooks():
    with patch("proxy_vault.services.rotation_engine.send_webhook", return_value=True):
        yield


@pytest.fixture
def vault(db_session, clock):
    return VaultService(db_session, clock=clock)


@pytest.fixture
def http():
    session = Mock()
    session.request.return_value = Mock(
        status_code=200,
        headers={"Content-Type": "application/json", "Connection": "keep-alive"},
        content=b'{"ok": true}',
    )
    return session


@pytest.fixture
def router(db_session, vault, http):
    return ProxyRouter(db_session, vault_service=vault, http=http, timeout=7)


def provision(vault, proxy_id, provider, **kwargs):
    with owner_session(OWNER, OWNER_KEY):
        vault.provision(proxy_id, SECRET, provider, **kwargs)


def forward(router, provider, proxy_key="priv_key", **kwargs):
    kwargs.setdefault("path", "/v1/chat/completions")
    return router.forward(
        provider=provider,
        proxy_key=proxy_key,
        owner_id=kwargs.pop("owner_id", OWNER),
        unlock_key=kwargs.pop("unlock_key", OWNER_KEY),
        **kwargs,
    )


class TestForward:
    def test_bearer_provider(self, vault, router, http):
        provision(vault, "priv_key", "openai")

        response = forward(
            router,
            "openai",
            headers={
                "Authorization": "Bearer priv_key",
                "X-Enclave-Key": OWNER_KEY.hex(),
                "X-Enclave-Owner": OWNER,
                "OpenAI-Beta": "assistants=v2",
                "Host": "vault.local",
            },
            body=b'{"model": "gpt-4o"}',
        )

        method, url = http.request.call_args.args
        kwargs = http.request.call_args.kwargs
        assert method == "POST"
        assert url == "https://api.openai.com/v1/chat/completions"
        assert kwargs["headers"] == {
            "OpenAI-Beta": "assistants=v2",
            "Authorization": f"Bearer {SECRET}",
            "Content-Type": "application/json",
        }
        assert kwargs["params"] == {}
        assert kwargs["data"] == b'{"model": "gpt-4o"}'
        assert kwargs["timeout"] == 7

        assert response.status_code == 200
        assert response.content == b'{"ok": true}'
        assert response.headers == {"Content-Type": "application/json"}
        assert response.rotated_to is None

    def test_custom_header_provider(self, vault, router, http):
        provision(vault, "priv_key", "anthropic")

        forward(router, "anthropic", path="/messages", headers={"x-api-key": "priv_key"})

        url = http.request.call_args.args[1]
        headers = http.request.call_args.kwargs["headers"]
        assert url == "https://api.anthropic.com/v1/messages"
        assert headers["x-api-key"] == SECRET
        assert "Authorization" not in headers

    def test_query_param_provider(self, vault, router, http):
        provision(vault, "priv_key", "google")

        forward(router, "google", path="models/gemini:generateContent")

        assert http.request.call_args.kwargs["params"] == {"key": SECRET}
        assert SECRET not in http.request.call_args.args[1]

    def test_dynamic_base_url(self, vault, router, http):
        provision(vault, "priv_key", "supabase")

        forward(
            router,
            "supabase",
            path="/rest/v1/todos",
            method="get",
            headers={"x-supabase-url": "https://abc.supabase.co"},
        )

        method, url = http.request.call_args.args
        kwargs = http.request.call_args.kwargs
        assert method == "GET"
        assert url == "https://abc.supabase.co/rest/v1/todos"
        assert kwargs["headers"]["apikey"] == SECRET
        assert kwargs["headers"]["Authorization"] == f"Bearer {SECRET}"
        assert "x-supabase-url" not in kwargs["headers"]
        assert kwargs["data"] is None

    def test_dynamic_base_url_required(self, vault, router, http):
        provision(vault, "priv_key", "supabase")

        with pytest.raises(ValidationError):
            forward(router, "supabase", path="/rest/v1/todos")
        http.request.assert_not_called()

    def test_unknown_provider_uses_default_route(self, vault, router, http):
        provision(vault, "priv_key", "acme")

        forward(router, "acme", path="/v1/complete")

        url = http.request.call_args.args[1]
        assert url == "https://api.openai.com/v1/acme/v1/complete"

    def test_reports_rotation(self, vault, router, http, clock):
        provision(vault, "priv_key", "openai", rotation_interval_seconds=60)
        clock.advance(60)

        response = forward(router, "openai")

        assert response.rotated_to is not None
        assert response.rotated_to != "priv_key"
        assert http.request.call_args.kwargs["headers"]["Authorization"] == f"Bearer {SECRET}"

    def test_revoked(self, vault, router, http):
        provision(vault, "priv_key", "openai")
        with owner_session(OWNER, OWNER_KEY):
            vault.revoke("priv_key")

        with pytest.raises(CredentialRevokedError):
            forward(router, "openai")
        http.request.assert_not_called()

    def test_unknown_key(self, router, http):
        with pytest.raises(CredentialNotFoundError):
            forward(router, "openai", proxy_key="priv_ghost")
        http.request.assert_not_called()

    def test_other_owner(self, vault, router, http):
        provision(vault, "priv_key", "openai")

        with pytest.raises(CredentialNotFoundError):
            forward(router, "openai", owner_id=OTHER_OWNER, unlock_key=OTHER_KEY)
        http.request.assert_not_called()

    def test_session_does_not_outlive_request(self, vault, router):
        provision(vault, "priv_key", "openai")
        forward(router, "openai")
        assert SessionAuthenticator.is_unlocked() is False

    def test_upstream_unreachable(self, vault, router, http):
        provision(vault, "priv_key", "openai")
        http.request.side_effect = requests.ConnectionError("refused")

        with pytest.raises(ExternalServiceError) as exc_info:
            forward(router, "openai")
        assert SECRET not in str(exc_info.value.to_dict(include_cause=True))


class TestExtractProxyKey:
    @pytest.mark.parametrize(
        "headers, expected",
        [
            ({"Authorization": "Bearer priv_abc"}, "priv_abc"),
            ({"x-api-key": "priv_abc"}, "priv_abc"),
            ({"X-Api-Key": " priv_abc "}, "priv_abc"),
            ({"Authorization": "Bearer sk-real"}, None),
            ({}, None),
        ],
    )
    def test_extract(self, headers, expected):
        assert extract_proxy_key(headers) == expected
