"""
TokenExchanger — provider callback handling.

    AWAITING_CALLBACK → STATE_VALIDATED → TOKEN_EXCHANGED
        → PROFILE_FETCHED → FINALIZED        (or FAILED at any step)

Every failure is terminal; nothing here retries.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from oauth.client import OAuth2Client
from oauth.errors import InvalidOrExpiredState, OAuthFlowError, ProviderMismatch
from oauth.initiator import callback_url
from oauth.registry import ProviderRegistry
from oauth.schemas import CallbackResult, FlowStage, FlowState, PendingCredential
from oauth.state_store import StateStore
from oauth.vault import CredentialVault

logger = logging.getLogger(__name__)


class TokenExchanger:
    def __init__(
        self,
        registry: ProviderRegistry,
        state_store: StateStore,
        vault: CredentialVault,
        client: OAuth2Client,
        *,
        redirect_base: str,
        allow_direct_callback: bool = False,
        default_redirect_client: str = "",
    ):
        self._registry = registry
        self._states = state_store
        self._vault = vault
        self._client = client
        self._redirect_base = redirect_base
        self._allow_direct = allow_direct_callback
        self._default_redirect_client = default_redirect_client

    async def handle_callback(self, provider: str, code: str, state_token: str) -> CallbackResult:
        stage = FlowStage.AWAITING_CALLBACK
        try:
            flow = await self._states.consume(state_token)
            if flow is None:
                flow = self._direct_access_flow(provider)
            if flow.provider != provider:
                raise ProviderMismatch(flow.provider, provider)
            config = self._registry.get_config(provider)
            stage = self._advance(stage, FlowStage.STATE_VALIDATED, provider)

            grant = await self._client.exchange_code(
                config,
                code=code,
                redirect_uri=callback_url(self._redirect_base, provider),
            )
            stage = self._advance(stage, FlowStage.TOKEN_EXCHANGED, provider)

            profile = await self._client.fetch_profile(config, grant.access_token)
            stage = self._advance(stage, FlowStage.PROFILE_FETCHED, provider)

            pending = PendingCredential(
                provider=provider,
                integration_id=flow.integration_id,
                grant=grant,
                profile=profile,
                requested_scopes=flow.requested_scopes,
                user_id=flow.user_id,
                save=flow.save,
                display_name=flow.display_name,
            )
            credential_id = await self._vault.put(pending)
            self._advance(stage, FlowStage.FINALIZED, provider)
        except OAuthFlowError as exc:
            logger.warning(
                "OAuth callback failed: provider=%s stage=%s → %s (%s)",
                provider, stage.value, FlowStage.FAILED.value, exc.code,
            )
            raise

        return CallbackResult(
            credential_id=credential_id,
            redirect_url=build_client_redirect(flow, credential_id),
            credential=pending,
        )

    def _direct_access_flow(self, provider: str) -> FlowState:
        """Throwaway flow for callbacks without a known state, when explicitly enabled."""
        if not self._allow_direct:
            raise InvalidOrExpiredState()
        logger.warning(
            "Direct-access callback for %s: no matching state, CSRF protection bypassed", provider,
        )
        return FlowState(provider=provider, redirect_client=self._default_redirect_client)

    @staticmethod
    def _advance(current: FlowStage, nxt: FlowStage, provider: str) -> FlowStage:
        logger.debug("OAuth callback %s: %s → %s", provider, current.value, nxt.value)
        return nxt


def build_client_redirect(flow: FlowState, credential_id: str) -> str:
    """``redirect_client`` with ``credential_id`` and pass-through options appended."""
    extra: Dict[str, Optional[str]] = {
        "credential_id": credential_id,
        "integration_id": flow.integration_id or None,
        "user_id": flow.user_id,
        "save": "true" if flow.save else None,
        "name": flow.display_name,
    }
    parts = urlsplit(flow.redirect_client)
    query = parse_qsl(parts.query, keep_blank_values=True)
    query.extend((k, v) for k, v in extra.items() if v)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))
