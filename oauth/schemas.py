"""
Pydantic schemas for the OAuth orchestration core.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, SecretStr


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ═══════════════════════════════════════════════════════════════════════════════
# Provider metadata
# ═══════════════════════════════════════════════════════════════════════════════


class ScopeCategory(BaseModel):
    label: str
    scopes: List[str]
    description: str = ""


class ProviderDefinition(BaseModel):
    """Static description of a provider, without client credentials."""

    name: str
    display_name: str
    authorization_url: str
    token_url: str
    profile_url: Optional[str] = None
    default_scopes: List[str] = Field(default_factory=list)
    scope_categories: Dict[str, ScopeCategory] = Field(default_factory=dict)
    literal_scope_prefix: Optional[str] = None
    token_request_format: Literal["form", "json"] = "form"
    extra_authorize_params: Dict[str, str] = Field(default_factory=dict)
    profile_headers: Dict[str, str] = Field(default_factory=dict)


class ClientCredentials(BaseModel):
    client_id: str
    client_secret: SecretStr


class ProviderConfig(ProviderDefinition):
    """A provider definition joined with its client credentials."""

    client_id: str
    client_secret: SecretStr

    def known_scopes(self) -> set[str]:
        known = set(self.default_scopes)
        for category in self.scope_categories.values():
            known.update(category.scopes)
        return known


# ═══════════════════════════════════════════════════════════════════════════════
# Flow records
# ═══════════════════════════════════════════════════════════════════════════════


class FlowState(BaseModel):
    provider: str
    integration_id: str = ""
    redirect_client: str
    requested_scopes: List[str] = Field(default_factory=list)
    user_id: Optional[str] = None
    save: Optional[bool] = None
    display_name: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)


class TokenGrant(BaseModel):
    access_token: str = Field(repr=False)
    refresh_token: Optional[str] = Field(default=None, repr=False)
    token_type: str = "Bearer"
    scope: str = ""
    expires_at: Optional[datetime] = None


class UserProfile(BaseModel):
    external_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    display_name: Optional[str] = None
    email: Optional[str] = None


class PendingCredential(BaseModel):
    provider: str
    integration_id: str = ""
    grant: TokenGrant
    profile: UserProfile = Field(default_factory=UserProfile)
    requested_scopes: List[str] = Field(default_factory=list)
    user_id: Optional[str] = None
    save: Optional[bool] = None
    display_name: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)


class FormattedCredential(BaseModel):
    """Provider-agnostic credential handed to the caller exactly once."""

    provider: str
    integration_id: str
    access_token: str
    refresh_token: str = ""
    external_id: str
    display_name: str = ""
    email: str = ""
    expires_at: Optional[datetime] = None
    granted_scope: str = ""
    requested_scopes: List[str] = Field(default_factory=list)
    token_type: str = "Bearer"
    saved: bool = False
    saved_record_id: Optional[str] = None


class CredentialSummary(BaseModel):
    """Dashboard view of a saved connection."""

    id: str
    user_id: str
    integration_id: str
    name: Optional[str] = None
    provider: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class SavedIntegration(CredentialSummary):
    """Saved connection metadata; tokens never leave the storage layer."""

    token_type: str = "Bearer"
    expires_at: Optional[datetime] = None
    scopes: List[str] = Field(default_factory=list)
    account: Dict[str, str] = Field(default_factory=dict)


# ═══════════════════════════════════════════════════════════════════════════════
# Flow results
# ═══════════════════════════════════════════════════════════════════════════════


class FlowStage(str, Enum):
    AWAITING_CALLBACK = "awaiting_callback"
    STATE_VALIDATED = "state_validated"
    TOKEN_EXCHANGED = "token_exchanged"
    PROFILE_FETCHED = "profile_fetched"
    FINALIZED = "finalized"
    FAILED = "failed"


class AuthorizationRedirect(BaseModel):
    redirect_url: str = Field(serialization_alias="redirectUrl")
    state: str


class CallbackResult(BaseModel):
    credential_id: str
    redirect_url: str
    credential: PendingCredential = Field(repr=False)


# ═══════════════════════════════════════════════════════════════════════════════
# HTTP request bodies
# ═══════════════════════════════════════════════════════════════════════════════


class InitRequest(BaseModel):
    integration_id: str = ""
    redirect_client: Optional[str] = None
    scopes: List[str] = Field(default_factory=list)
    userId: Optional[str] = None
    save: Optional[bool] = None
    name: Optional[str] = None
