"""
ProviderRegistry — resolves a provider name to its full ProviderConfig.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Protocol

from config.settings import Settings
from oauth.errors import UnsupportedProvider
from oauth.providers import BUILTIN_PROVIDERS
from oauth.schemas import ClientCredentials, ProviderConfig, ProviderDefinition

logger = logging.getLogger(__name__)


class SecretSource(Protocol):
    """Where client id / secret pairs come from."""

    def get_client_credentials(self, provider: str) -> Optional[ClientCredentials]:
        ...


class SettingsSecretSource:
    """Reads ``<PROVIDER>_CLIENT_ID`` / ``<PROVIDER>_CLIENT_SECRET`` from settings."""

    def __init__(self, settings: Settings):
        self._settings = settings

    def get_client_credentials(self, provider: str) -> Optional[ClientCredentials]:
        creds = self._settings.get_client_credentials(provider)
        if creds is None:
            return None
        return ClientCredentials(**creds)


class ProviderRegistry:
    """Lookup table of configured OAuth providers."""

    def __init__(
        self,
        secrets: SecretSource,
        definitions: Iterable[ProviderDefinition] = BUILTIN_PROVIDERS,
    ):
        self._definitions: Dict[str, ProviderDefinition] = {d.name: d for d in definitions}
        self._configs: Dict[str, ProviderConfig] = {}
        for name, definition in self._definitions.items():
            creds = secrets.get_client_credentials(name)
            if creds is None:
                logger.warning(
                    "Provider %s skipped: not configured (missing client_id/secret)", name,
                )
                continue
            self._configs[name] = ProviderConfig(
                **definition.model_dump(),
                client_id=creds.client_id,
                client_secret=creds.client_secret,
            )
            logger.info("Provider registered: %s (%s)", definition.display_name, name)

    def get_config(self, provider: str) -> ProviderConfig:
        """Return the config for *provider* or raise ``UnsupportedProvider``."""
        config = self._configs.get(provider)
        if config is None:
            raise UnsupportedProvider(provider)
        return config

    def is_configured(self, provider: str) -> bool:
        return provider in self._configs

    def list_providers(self) -> List[Dict[str, Any]]:
        """Return info about all known providers."""
        return [
            {
                "provider": d.name,
                "display_name": d.display_name,
                "configured": d.name in self._configs,
            }
            for d in self._definitions.values()
        ]

    def describe_scopes(self, provider: str) -> Dict[str, Any]:
        """
        Default scopes and selectable categories for a provider.

        Works for known providers even when they are not configured, so the
        UI can render the scope picker before credentials are set up.
        """
        definition = self._definitions.get(provider)
        if definition is None:
            raise UnsupportedProvider(provider)
        return {
            "default": list(definition.default_scopes),
            "categories": {
                key: {
                    "name": category.label,
                    "scopes": list(category.scopes),
                    "description": category.description,
                }
                for key, category in definition.scope_categories.items()
            },
        }
