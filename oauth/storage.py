"""
Durable credential storage: where finalized credentials go when the
caller asks to save them.

``CredentialStorage`` is the contract the finalizer and the saved
integration routes depend on; ``SQLCredentialStorage`` is the default
implementation backed by the ``user_integrations`` table with tokens
encrypted at rest.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol

from sqlalchemy import delete, func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from database.models import UserIntegration
from database.session import session_scope
from oauth.encryption import TokenCipher
from oauth.errors import PersistenceFailed
from oauth.schemas import SavedIntegration, UserProfile

logger = logging.getLogger(__name__)

# Dialects with INSERT ... ON CONFLICT DO UPDATE
_UPSERT_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


class CredentialStorage(Protocol):
    async def save(
        self,
        user_id: str,
        integration_id: str,
        name: Optional[str],
        provider: str,
        access_token: str,
        refresh_token: Optional[str],
        token_type: str,
        expires_at: Optional[datetime],
        scopes: List[str],
        user_profile: UserProfile,
    ) -> str:
        """Persist the credential and return the saved record id."""
        ...

    async def list_for_user(self, user_id: str) -> List[SavedIntegration]:
        ...

    async def delete(self, user_id: str, record_id: str) -> bool:
        ...


class SQLCredentialStorage:
    """Upserts one row per (user, integration, provider)."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], cipher: TokenCipher):
        self._session_factory = session_factory
        self._cipher = cipher

    async def save(
        self,
        user_id: str,
        integration_id: str,
        name: Optional[str],
        provider: str,
        access_token: str,
        refresh_token: Optional[str],
        token_type: str,
        expires_at: Optional[datetime],
        scopes: List[str],
        user_profile: UserProfile,
    ) -> str:
        """
        Insert or update the row for this connection in one statement.

        An update keeps the stored refresh token and name when the new
        values are empty.
        """
        now = datetime.now(timezone.utc)
        user_data: Dict[str, Any] = {
            "user_id": user_profile.external_id,
            "user_name": user_profile.display_name or "",
            "user_email": user_profile.email or "",
        }
        try:
            async with session_scope(self._session_factory) as session:
                dialect = session.get_bind().dialect.name
                insert = _UPSERT_INSERTS.get(dialect)
                if insert is None:
                    raise PersistenceFailed(f"Upsert is not supported on {dialect}")

                stmt = insert(UserIntegration).values(
                    id=str(uuid.uuid4()),
                    user_id=user_id,
                    integration_id=integration_id,
                    name=name or None,
                    provider=provider,
                    access_token=self._cipher.encrypt(access_token),
                    refresh_token=self._cipher.encrypt(refresh_token) if refresh_token else None,
                    token_type=token_type,
                    expires_at=expires_at,
                    scopes=scopes,
                    user_data=user_data,
                    created_at=now,
                    updated_at=now,
                )
                stmt = stmt.on_conflict_do_update(
                    index_elements=["user_id", "integration_id", "provider"],
                    set_={
                        "access_token": stmt.excluded.access_token,
                        "refresh_token": func.coalesce(stmt.excluded.refresh_token, UserIntegration.refresh_token),
                        "token_type": stmt.excluded.token_type,
                        "expires_at": stmt.excluded.expires_at,
                        "scopes": stmt.excluded.scopes,
                        "user_data": stmt.excluded.user_data,
                        "name": func.coalesce(stmt.excluded.name, UserIntegration.name),
                        "updated_at": stmt.excluded.updated_at,
                    },
                ).returning(UserIntegration.id)
                record_id = (await session.execute(stmt)).scalar_one()
        except SQLAlchemyError as exc:
            logger.error("save_user_integration failed for %s/%s: %s", provider, user_id, exc)
            raise PersistenceFailed(f"Could not save {provider} integration") from exc

        logger.info("Saved %s integration %s for user %s", provider, record_id, user_id)
        return str(record_id)

    async def list_for_user(self, user_id: str) -> List[SavedIntegration]:
        try:
            async with session_scope(self._session_factory) as session:
                result = await session.execute(
                    select(UserIntegration)
                    .where(UserIntegration.user_id == user_id)
                    .order_by(UserIntegration.created_at)
                )
                rows = result.scalars().all()
                return [_to_saved(row) for row in rows]
        except SQLAlchemyError as exc:
            logger.error("list_user_integrations failed for %s: %s", user_id, exc)
            raise PersistenceFailed("Could not list integrations") from exc

    async def delete(self, user_id: str, record_id: str) -> bool:
        """Remove one of *user_id*'s saved integrations; False when there was none."""
        stmt = delete(UserIntegration).where(
            UserIntegration.id == record_id,
            UserIntegration.user_id == user_id,
        )
        try:
            async with session_scope(self._session_factory) as session:
                result = await session.execute(stmt)
                removed = result.rowcount or 0
        except SQLAlchemyError as exc:
            logger.error("delete_user_integration failed for %s/%s: %s", user_id, record_id, exc)
            raise PersistenceFailed("Could not delete integration") from exc
        if removed:
            logger.info("Deleted integration %s for user %s", record_id, user_id)
        return bool(removed)


def _to_saved(row: UserIntegration) -> SavedIntegration:
    user_data = row.user_data or {}
    return SavedIntegration(
        id=row.id,
        user_id=row.user_id,
        integration_id=row.integration_id or "",
        name=row.name,
        provider=row.provider,
        created_at=row.created_at,
        updated_at=row.updated_at,
        token_type=row.token_type or "Bearer",
        expires_at=row.expires_at,
        scopes=list(row.scopes or []),
        account={
            "id": str(user_data.get("user_id") or ""),
            "name": str(user_data.get("user_name") or ""),
            "email": str(user_data.get("user_email") or ""),
        },
    )
