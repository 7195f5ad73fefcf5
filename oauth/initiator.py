"""
AuthorizationInitiator — first leg of the flow.

Persists a FlowState and returns the provider URL the browser should be
sent to.  No network call happens here.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence
from urllib.parse import urlsplit

from oauth.client import OAuth2Client
from oauth.errors import InvalidRedirectClient
from oauth.registry import ProviderRegistry
from oauth.schemas import AuthorizationRedirect, FlowState
from oauth.scopes import resolve_scopes
from oauth.state_store import StateStore

logger = logging.getLogger(__name__)


def callback_url(redirect_base: str, provider: str) -> str:
    """Server-controlled redirect_uri registered with each provider."""
    return f"{redirect_base.rstrip('/')}/oauth/{provider}/callback"


class AuthorizationInitiator:
    def __init__(
        self,
        registry: ProviderRegistry,
        state_store: StateStore,
        *,
        redirect_base: str,
        strict_scopes: bool = False,
        allowed_redirect_origins: Iterable[str] = (),
    ):
        self._registry = registry
        self._states = state_store
        self._redirect_base = redirect_base
        self._strict_scopes = strict_scopes
        self._allowed_origins = {o.rstrip("/") for o in allowed_redirect_origins}

    async def initiate(
        self,
        provider: str,
        integration_id: str,
        redirect_client: str,
        requested_scopes: Sequence[str] = (),
        *,
        user_id: Optional[str] = None,
        save: Optional[bool] = None,
        display_name: Optional[str] = None,
    ) -> AuthorizationRedirect:
        config = self._registry.get_config(provider)
        self._check_redirect_client(redirect_client)

        requested: List[str] = [s for s in requested_scopes if s]
        # Resolve before persisting so a strict-mode rejection leaves no state behind
        scopes = resolve_scopes(config, requested, strict=self._strict_scopes)

        state = await self._states.create(
            FlowState(
                provider=provider,
                integration_id=integration_id,
                redirect_client=redirect_client,
                requested_scopes=requested,
                user_id=user_id,
                save=save,
                display_name=display_name,
            )
        )

        url = OAuth2Client.build_authorization_url(
            config,
            redirect_uri=callback_url(self._redirect_base, provider),
            scopes=scopes,
            state=state,
        )
        logger.info(
            "OAuth flow initiated: provider=%s integration=%s scopes=%d",
            provider, integration_id, len(scopes),
        )
        return AuthorizationRedirect(redirect_url=url, state=state)

    def _check_redirect_client(self, redirect_client: str) -> None:
        if not self._allowed_origins:
            return
        parts = urlsplit(redirect_client)
        origin = f"{parts.scheme}://{parts.netloc}"
        if origin not in self._allowed_origins:
            logger.warning("Rejected redirect_client with origin %s", origin)
            raise InvalidRedirectClient(f"redirect_client origin '{origin}' is not allowed")
