"""
OAuth2Client — one config-driven client for every provider.

Builds authorization URLs, exchanges authorization codes and fetches the
user profile.  Provider differences live in ``ProviderConfig``; there is
no per-provider subclass.

Network calls are single attempts with a bounded timeout: authorization
codes are single-use, so retrying a failed exchange cannot succeed.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import quote, urlencode, urlsplit, urlunsplit

import httpx

from oauth.errors import TokenExchangeFailed
from oauth.schemas import ProviderConfig, TokenGrant, UserProfile

logger = logging.getLogger(__name__)


class OAuth2Client:
    """Authorization-code flow against any ``ProviderConfig``."""

    def __init__(
        self,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    # ── Authorization URL ───────────────────────────────────────────────

    @staticmethod
    def build_authorization_url(
        config: ProviderConfig,
        *,
        redirect_uri: str,
        scopes: List[str],
        state: str,
    ) -> str:
        params = {
            "client_id": config.client_id,
            "redirect_uri": redirect_uri,
            "scope": " ".join(scopes),
            "state": state,
            "response_type": "code",
        }
        params.update(config.extra_authorize_params)
        # quote, not quote_plus: scopes are joined with %20
        query = urlencode(params, quote_via=quote)
        parts = urlsplit(config.authorization_url)
        merged = f"{parts.query}&{query}" if parts.query else query
        return urlunsplit((parts.scheme, parts.netloc, parts.path, merged, parts.fragment))

    # ── Code exchange ───────────────────────────────────────────────────

    async def exchange_code(
        self,
        config: ProviderConfig,
        *,
        code: str,
        redirect_uri: str,
    ) -> TokenGrant:
        """
        Exchange an authorization code for tokens.

        Raises ``TokenExchangeFailed`` on transport errors, non-2xx
        responses, provider error payloads or a missing ``access_token``.
        The provider's response body is logged, never raised.
        """
        body = {
            "client_id": config.client_id,
            "client_secret": config.client_secret.get_secret_value(),
            "code": code,
            "redirect_uri": redirect_uri,
            "grant_type": "authorization_code",
        }
        request_kwargs: Dict[str, Any] = {"headers": {"Accept": "application/json"}}
        if config.token_request_format == "json":
            request_kwargs["json"] = body
        else:
            request_kwargs["data"] = body

        try:
            async with self._client() as client:
                resp = await client.post(config.token_url, **request_kwargs)
        except httpx.HTTPError as exc:
            logger.error("Token request to %s failed: %s", config.name, exc.__class__.__name__)
            raise TokenExchangeFailed(f"Token endpoint unreachable for {config.name}") from exc

        if resp.is_error:
            logger.error(
                "Token exchange for %s returned HTTP %d: %s",
                config.name, resp.status_code, resp.text[:500],
            )
            raise TokenExchangeFailed(f"Token endpoint returned {resp.status_code}")

        try:
            data = resp.json()
        except ValueError as exc:
            logger.error("Token exchange for %s returned a non-JSON body", config.name)
            raise TokenExchangeFailed("Token endpoint returned a non-JSON body") from exc

        if not isinstance(data, dict):
            raise TokenExchangeFailed("Token endpoint returned an unexpected payload")
        # Slack answers 200 with {"ok": false, "error": ...}
        if data.get("error") or data.get("ok") is False:
            logger.error(
                "Token exchange for %s rejected: %s",
                config.name, data.get("error_description") or data.get("error"),
            )
            raise TokenExchangeFailed(f"{config.name} rejected the authorization code")

        access_token = data.get("access_token") or (data.get("authed_user") or {}).get("access_token")
        if not access_token:
            logger.error("Token response from %s has no access_token", config.name)
            raise TokenExchangeFailed("No access_token in token response")

        return _grant_from_response(data, access_token)

    # ── Profile ─────────────────────────────────────────────────────────

    async def fetch_profile(self, config: ProviderConfig, access_token: str) -> UserProfile:
        """
        Fetch and normalize the user profile.

        Best effort: any failure yields a profile with a random
        ``external_id`` and no name or email.
        """
        if not config.profile_url:
            return UserProfile()
        headers = {"Authorization": f"Bearer {access_token}", **config.profile_headers}
        try:
            async with self._client() as client:
                resp = await client.get(config.profile_url, headers=headers)
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Profile fetch for %s failed (%s); continuing without profile",
                           config.name, exc.__class__.__name__)
            return UserProfile()
        if not isinstance(data, dict):
            return UserProfile()
        return normalize_profile(data)


def _grant_from_response(data: Dict[str, Any], access_token: str) -> TokenGrant:
    expires_at = None
    expires_in = data.get("expires_in")
    if expires_in not in (None, ""):
        try:
            expires_at = datetime.now(timezone.utc) + timedelta(seconds=int(expires_in))
        except (TypeError, ValueError):
            logger.warning("Ignoring non-numeric expires_in=%r", expires_in)

    # GitHub reports granted scopes comma-delimited, some providers send a list
    raw_scope = data.get("scope")
    if isinstance(raw_scope, list):
        raw_scope = " ".join(str(s) for s in raw_scope)
    elif not isinstance(raw_scope, str):
        raw_scope = ""
    scope = " ".join(s for s in raw_scope.replace(",", " ").split() if s)

    return TokenGrant(
        access_token=access_token,
        refresh_token=data.get("refresh_token") or None,
        token_type=data.get("token_type") or "Bearer",
        scope=scope,
        expires_at=expires_at,
    )


def normalize_profile(data: Dict[str, Any]) -> UserProfile:
    """Map a provider profile payload onto ``UserProfile``."""
    # Slack users.identity nests the person under "user"
    if isinstance(data.get("user"), dict):
        data = {**data["user"], **{k: v for k, v in data.items() if k != "user"}}

    external_id = data.get("id") or data.get("sub")
    name = data.get("name") or data.get("display_name") or data.get("login")
    email = data.get("email")
    return UserProfile(
        external_id=str(external_id) if external_id not in (None, "") else str(uuid.uuid4()),
        display_name=name or None,
        email=email or None,
    )
