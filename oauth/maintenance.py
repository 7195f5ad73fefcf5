"""
Background purge of expired OAuth states and pending credentials.

Expired rows are already unusable (consume/get filter on ``expires_at``);
the sweep only keeps the tables small.
"""

from __future__ import annotations

import asyncio
import logging

from oauth.state_store import StateStore
from oauth.vault import CredentialVault

logger = logging.getLogger(__name__)


async def purge_expired(state_store: StateStore, vault: CredentialVault) -> int:
    """Run one sweep; returns the total number of rows removed."""
    states = await state_store.purge_expired()
    credentials = await vault.purge_expired()
    if states or credentials:
        logger.info("Purged %d expired OAuth states and %d expired credentials", states, credentials)
    return states + credentials


async def run_expiry_sweeper(
    state_store: StateStore,
    vault: CredentialVault,
    interval_seconds: float,
) -> None:
    """Sweep forever every *interval_seconds*; cancel the task to stop it."""
    while True:
        try:
            await purge_expired(state_store, vault)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("OAuth expiry sweep failed")
        await asyncio.sleep(interval_seconds)
