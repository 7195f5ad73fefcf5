"""
StateStore — single-use CSRF state tokens for in-flight OAuth flows.

Rows live in the shared ``oauth_states`` table, so any server instance can
consume a state created by another.  Consumption is one
``DELETE ... RETURNING`` statement: of two concurrent callbacks presenting
the same state, only one gets a row back.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from database.models import OAuthStateRecord
from database.session import session_scope
from oauth.schemas import FlowState

logger = logging.getLogger(__name__)

DEFAULT_STATE_TTL = 3600  # seconds


class StateStore:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        ttl_seconds: int = DEFAULT_STATE_TTL,
    ):
        self._session_factory = session_factory
        self._ttl = timedelta(seconds=ttl_seconds)

    async def create(self, flow: FlowState) -> str:
        """Persist *flow* under a fresh random state token and return the token."""
        token = secrets.token_urlsafe(32)
        now = datetime.now(timezone.utc)
        async with session_scope(self._session_factory) as session:
            session.add(
                OAuthStateRecord(
                    state=token,
                    provider=flow.provider,
                    payload=flow.model_dump_json(),
                    created_at=now,
                    expires_at=now + self._ttl,
                )
            )
        logger.debug("OAuth state created for provider=%s integration=%s", flow.provider, flow.integration_id)
        return token

    async def consume(self, state_token: str) -> Optional[FlowState]:
        """
        Atomically take the flow stored under *state_token*.

        Returns None when the token is unknown, already consumed or expired;
        callers cannot tell these apart.  Expired rows are left for the
        sweeper.
        """
        if not state_token:
            return None
        stmt = (
            delete(OAuthStateRecord)
            .where(
                OAuthStateRecord.state == state_token,
                OAuthStateRecord.expires_at > datetime.now(timezone.utc),
            )
            .returning(OAuthStateRecord.payload)
            .execution_options(synchronize_session=False)
        )
        async with session_scope(self._session_factory) as session:
            result = await session.execute(stmt)
            payload = result.scalar_one_or_none()
        if payload is None:
            return None
        return FlowState.model_validate_json(payload)

    async def purge_expired(self) -> int:
        """Delete expired states; returns the number of rows removed."""
        stmt = (
            delete(OAuthStateRecord)
            .where(OAuthStateRecord.expires_at <= datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        async with session_scope(self._session_factory) as session:
            result = await session.execute(stmt)
            removed = result.rowcount or 0
        return removed
