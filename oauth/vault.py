"""
CredentialVault — completed exchanges waiting for one-time retrieval.

Payloads hold live tokens, so they are Fernet-encrypted before they touch
the database and ``get`` is destructive: the row is removed by the same
``DELETE ... RETURNING`` statement that reads it.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from database.models import PendingCredentialRecord
from database.session import session_scope
from oauth.encryption import TokenCipher
from oauth.schemas import PendingCredential

logger = logging.getLogger(__name__)

DEFAULT_CREDENTIAL_TTL = 3600  # seconds


class CredentialVault:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        cipher: TokenCipher,
        ttl_seconds: int = DEFAULT_CREDENTIAL_TTL,
    ):
        self._session_factory = session_factory
        self._cipher = cipher
        self._ttl = timedelta(seconds=ttl_seconds)

    async def put(self, credential: PendingCredential) -> str:
        """Store *credential* and return its one-time ``credential_id``."""
        credential_id = str(uuid.uuid4())
        now = datetime.now(timezone.utc)
        async with session_scope(self._session_factory) as session:
            session.add(
                PendingCredentialRecord(
                    credential_id=credential_id,
                    provider=credential.provider,
                    payload=self._cipher.encrypt(credential.model_dump_json()),
                    created_at=now,
                    expires_at=now + self._ttl,
                )
            )
        logger.info("Pending credential %s stored for provider=%s", credential_id, credential.provider)
        return credential_id

    async def get(self, credential_id: str) -> Optional[PendingCredential]:
        """Take the credential; a second call with the same id returns None."""
        if not credential_id:
            return None
        stmt = (
            delete(PendingCredentialRecord)
            .where(
                PendingCredentialRecord.credential_id == credential_id,
                PendingCredentialRecord.expires_at > datetime.now(timezone.utc),
            )
            .returning(PendingCredentialRecord.payload)
            .execution_options(synchronize_session=False)
        )
        async with session_scope(self._session_factory) as session:
            result = await session.execute(stmt)
            payload = result.scalar_one_or_none()
        if payload is None:
            return None
        return PendingCredential.model_validate_json(self._cipher.decrypt(payload))

    async def purge_expired(self) -> int:
        stmt = (
            delete(PendingCredentialRecord)
            .where(PendingCredentialRecord.expires_at <= datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        async with session_scope(self._session_factory) as session:
            result = await session.execute(stmt)
            removed = result.rowcount or 0
        return removed
