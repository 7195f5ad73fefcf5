"""
CredentialFinalizer — one-time hand-off of a completed exchange.

The vault copy is gone as soon as ``finalize`` reads it, so a failed
durable save must not lose the tokens: the formatted credential is
returned either way, with ``saved`` telling the caller what happened.
"""

from __future__ import annotations

import logging
from typing import Optional

from oauth.errors import CredentialNotFound
from oauth.schemas import FormattedCredential, PendingCredential
from oauth.storage import CredentialStorage
from oauth.vault import CredentialVault

logger = logging.getLogger(__name__)


class CredentialFinalizer:
    def __init__(self, vault: CredentialVault, storage: Optional[CredentialStorage] = None):
        self._vault = vault
        self._storage = storage

    async def finalize(
        self,
        credential_id: str,
        *,
        save: Optional[bool] = None,
        user_id: Optional[str] = None,
        display_name: Optional[str] = None,
    ) -> FormattedCredential:
        pending = await self._vault.get(credential_id)
        if pending is None:
            raise CredentialNotFound()

        formatted = format_credential(pending)

        # Values passed at retrieval time win over those recorded at initiation
        should_save = save if save is not None else bool(pending.save)
        effective_user = user_id or pending.user_id
        effective_name = display_name or pending.display_name

        if should_save and effective_user:
            await self._save(formatted, pending, effective_user, effective_name)
        elif should_save:
            logger.warning("Save requested for credential %s without a user id; skipping", credential_id)

        logger.info(
            "Credential %s finalized: provider=%s saved=%s",
            credential_id, formatted.provider, formatted.saved,
        )
        return formatted

    async def _save(
        self,
        formatted: FormattedCredential,
        pending: PendingCredential,
        user_id: str,
        name: Optional[str],
    ) -> None:
        if self._storage is None:
            logger.warning("No durable storage configured; credential for %s not saved", formatted.provider)
            return
        scopes = formatted.granted_scope.split() or list(formatted.requested_scopes)
        try:
            record_id = await self._storage.save(
                user_id=user_id,
                integration_id=formatted.integration_id,
                name=name,
                provider=formatted.provider,
                access_token=formatted.access_token,
                refresh_token=pending.grant.refresh_token,
                token_type=formatted.token_type,
                expires_at=formatted.expires_at,
                scopes=scopes,
                user_profile=pending.profile,
            )
        except Exception:
            # Tokens are still returned to the caller, who may retry the save
            logger.exception("Saving %s credential for user %s failed", formatted.provider, user_id)
            return
        formatted.saved = True
        formatted.saved_record_id = record_id


def format_credential(pending: PendingCredential) -> FormattedCredential:
    grant = pending.grant
    profile = pending.profile
    return FormattedCredential(
        provider=pending.provider,
        integration_id=pending.integration_id,
        access_token=grant.access_token,
        refresh_token=grant.refresh_token or "",
        external_id=profile.external_id,
        display_name=profile.display_name or "",
        email=profile.email or "",
        expires_at=grant.expires_at,
        granted_scope=grant.scope,
        requested_scopes=list(pending.requested_scopes),
        token_type=grant.token_type,
    )
