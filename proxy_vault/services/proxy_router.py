"""
Proxy router: forward a request upstream with the real credential injected.

The router is the only place a resolved secret leaves the vault, and it only
leaves inside the outbound request. Caller credentials (the proxy key, owner
headers) are stripped before forwarding.
"""

from typing import Any, Dict, Mapping, NamedTuple, Optional, Union

import requests
from sqlalchemy.orm import Session

from ..constants import ENCLAVE_KEY_HEADER, ENCLAVE_OWNER_HEADER
from ..context.operation_context import operation
from ..context.session_context import owner_session
from ..enums import AuthStyle, ResolutionStatus
from ..exceptions import (
    CredentialNotFoundError,
    CredentialRevokedError,
    ErrorCode,
    ExternalServiceError,
    ValidationError,
)
from ..utils.logger import get_logger
from ..utils.provider_routes import (
    DYNAMIC_BASE_URL,
    SUPABASE_URL_HEADER,
    build_target_url,
    get_provider_route,
    is_known_provider,
)
from ..utils.proxy_key_utils import mask_proxy_key
from .vault_service import VaultService

# Never forwarded upstream
STRIPPED_HEADERS = {
    "authorization",
    "x-api-key",
    ENCLAVE_KEY_HEADER,
    ENCLAVE_OWNER_HEADER,
    SUPABASE_URL_HEADER,
    "host",
    "connection",
    "upgrade",
    "keep-alive",
    "transfer-encoding",
    "content-length",
    "expect",
    "proxy-connection",
    "user-agent",
    "accept-encoding",
}

# Response headers that describe the upstream connection, not the payload
HOP_BY_HOP_RESPONSE_HEADERS = {
    "connection",
    "keep-alive",
    "transfer-encoding",
    "content-encoding",
    "content-length",
}

DEFAULT_TIMEOUT_SECONDS = 60


class ProxyResponse(NamedTuple):
    status_code: int
    headers: Dict[str, str]
    content: bytes
    rotated_to: Optional[str] = None


def extract_proxy_key(headers: Mapping[str, str], prefix: str = "priv_") -> Optional[str]:
    """Find a proxy key in an Authorization bearer or x-api-key header."""
    lowered = {k.lower(): v for k, v in headers.items()}
    auth = (lowered.get("authorization") or "").strip()
    if auth.startswith(f"Bearer {prefix}"):
        return auth[len("Bearer ") :].strip()
    api_key = (lowered.get("x-api-key") or "").strip()
    if api_key.startswith(prefix):
        return api_key
    return None


class ProxyRouter:
    """Resolve a proxy key through the vault and forward the call upstream."""

    def __init__(
        self,
        session: Session,
        vault_service: Optional[VaultService] = None,
        http: Optional[requests.Session] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        self.vault = vault_service or VaultService(session)
        self.http = http or requests.Session()
        self.timeout = timeout
        self.logger = get_logger()

    @operation()
    def forward(
        self,
        provider: str,
        path: str,
        proxy_key: str,
        owner_id: str,
        unlock_key: Union[bytes, str],
        method: str = "POST",
        headers: Optional[Mapping[str, str]] = None,
        body: Optional[Union[bytes, str]] = None,
    ) -> ProxyResponse:
        """
        Forward one request to provider using the secret behind proxy_key.

        Args:
            provider: Provider name; unknown names use the default route with the
                name kept as the first path segment
            path: Upstream path below the provider's base URL
            proxy_key: Proxy key presented by the caller
            owner_id: Owner whose vault holds the key
            unlock_key: Owner's unlock key for this request only
            method: HTTP method
            headers: Caller headers (credentials are stripped)
            body: Raw request body

        Returns:
            ProxyResponse; rotated_to is set when proxy_key was stale

        Raises:
            CredentialNotFoundError: Unknown, foreign or undecryptable key
            CredentialRevokedError: Revoked key
            ValidationError: Missing dynamic base URL
            ExternalServiceError: Upstream unreachable
        """
        headers = dict(headers or {})

        with owner_session(owner_id, unlock_key):
            resolution = self.vault.resolve(proxy_key)

        if resolution.status == ResolutionStatus.REVOKED:
            raise CredentialRevokedError(proxy_id=mask_proxy_key(proxy_key))
        if not resolution.ok:
            raise CredentialNotFoundError(proxy_id=mask_proxy_key(proxy_key))

        target_url, outbound_headers, params = self._build_request(
            provider, path, headers, resolution.secret_value()
        )

        self.logger.info(
            "Forwarding request upstream",
            extra={
                "provider": provider,
                "method": method.upper(),
                "proxy_id": mask_proxy_key(proxy_key),
                "rotated": resolution.current_proxy_id is not None,
            },
        )

        try:
            response = self.http.request(
                method.upper(),
                target_url,
                headers=outbound_headers,
                params=params,
                data=body if method.upper() != "GET" else None,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise ExternalServiceError(
                "Upstream provider unreachable",
                service_name=provider,
                error_code=ErrorCode.DOWNSTREAM_ERROR,
                error_type=type(e).__name__,
            ) from None

        return ProxyResponse(
            status_code=response.status_code,
            headers={
                k: v
                for k, v in response.headers.items()
                if k.lower() not in HOP_BY_HOP_RESPONSE_HEADERS
            },
            content=response.content,
            rotated_to=resolution.current_proxy_id,
        )

    def _build_request(
        self, provider: str, path: str, headers: Dict[str, str], secret: str
    ):
        """Return (url, headers, query params) with the secret injected."""
        route = get_provider_route(provider)
        provider_key = (provider or "").strip().lower()

        upstream_path = path or ""
        if provider_key and not is_known_provider(provider_key):
            # Unknown providers keep their name as the first path segment
            upstream_path = f"{provider_key}/{upstream_path.lstrip('/')}"

        base_url = route.base_url
        if base_url == DYNAMIC_BASE_URL:
            base_url = next(
                (v for k, v in headers.items() if k.lower() == SUPABASE_URL_HEADER), None
            )
            if not base_url:
                raise ValidationError(
                    f"Missing {SUPABASE_URL_HEADER} header for {provider_key} requests",
                    error_code=ErrorCode.MISSING_REQUIRED,
                    field=SUPABASE_URL_HEADER,
                )

        outbound: Dict[str, Any] = {
            k: v for k, v in headers.items() if k.lower() not in STRIPPED_HEADERS
        }
        params: Dict[str, str] = {}

        if route.auth_style == AuthStyle.BEARER:
            outbound["Authorization"] = f"Bearer {secret}"
        elif route.auth_style == AuthStyle.HEADER:
            outbound[route.header_name] = secret
        elif route.auth_style == AuthStyle.QUERY_PARAM:
            params[route.header_name] = secret
        elif route.auth_style == AuthStyle.HEADER_AND_BEARER:
            outbound[route.header_name] = secret
            outbound["Authorization"] = f"Bearer {secret}"

        outbound["Content-Type"] = "application/json"
        return build_target_url(base_url, upstream_path), outbound, params
