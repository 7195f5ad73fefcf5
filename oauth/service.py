"""
OAuthService — wires the flow components together from settings.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncEngine

from config.settings import Settings
from database.session import build_engine, build_session_factory, create_tables
from oauth.client import OAuth2Client
from oauth.encryption import TokenCipher
from oauth.exchanger import TokenExchanger
from oauth.finalizer import CredentialFinalizer
from oauth.initiator import AuthorizationInitiator
from oauth.maintenance import run_expiry_sweeper
from oauth.registry import ProviderRegistry, SettingsSecretSource
from oauth.state_store import StateStore
from oauth.storage import CredentialStorage, SQLCredentialStorage
from oauth.vault import CredentialVault

logger = logging.getLogger(__name__)


class OAuthService:
    """One instance per process; all request state lives in the database."""

    def __init__(
        self,
        settings: Settings,
        *,
        engine: Optional[AsyncEngine] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        storage: Optional[CredentialStorage] = None,
    ):
        self.settings = settings
        self.engine = engine or build_engine(settings.database_url)
        session_factory = build_session_factory(self.engine)
        self.cipher = TokenCipher(settings.token_encryption_key)

        self.registry = ProviderRegistry(SettingsSecretSource(settings))
        self.state_store = StateStore(session_factory, settings.oauth_state_ttl_seconds)
        self.vault = CredentialVault(session_factory, self.cipher, settings.oauth_credential_ttl_seconds)
        self.client = OAuth2Client(timeout=settings.oauth_http_timeout_seconds, transport=transport)

        self.initiator = AuthorizationInitiator(
            self.registry,
            self.state_store,
            redirect_base=settings.oauth_redirect_base,
            strict_scopes=settings.oauth_strict_scopes,
            allowed_redirect_origins=settings.oauth_allowed_redirect_origins,
        )
        self.exchanger = TokenExchanger(
            self.registry,
            self.state_store,
            self.vault,
            self.client,
            redirect_base=settings.oauth_redirect_base,
            allow_direct_callback=settings.oauth_allow_direct_callback,
            default_redirect_client=settings.oauth_default_redirect_client,
        )
        self.storage: CredentialStorage = (
            storage if storage is not None else SQLCredentialStorage(session_factory, self.cipher)
        )
        self.finalizer = CredentialFinalizer(self.vault, self.storage)
        self._sweeper: Optional[asyncio.Task] = None

        if settings.oauth_allow_direct_callback:
            logger.warning("OAUTH_ALLOW_DIRECT_CALLBACK is on; callbacks without a valid state are accepted")
        if not settings.oauth_allowed_redirect_origins:
            logger.warning(
                "OAUTH_ALLOWED_REDIRECT_ORIGINS is empty; credential ids may be sent to any redirect_client"
            )

    async def startup(self) -> None:
        await create_tables(self.engine)
        interval = self.settings.oauth_sweep_interval_seconds
        if interval > 0 and self._sweeper is None:
            self._sweeper = asyncio.create_task(
                run_expiry_sweeper(self.state_store, self.vault, interval)
            )
        logger.info(
            "OAuth service ready (providers: %s, token encryption: %s)",
            ", ".join(p["provider"] for p in self.registry.list_providers() if p["configured"]) or "none",
            "on" if self.cipher.enabled else "OFF",
        )

    async def shutdown(self) -> None:
        if self._sweeper is not None:
            self._sweeper.cancel()
            try:
                await self._sweeper
            except asyncio.CancelledError:
                pass
            self._sweeper = None
        await self.engine.dispose()
