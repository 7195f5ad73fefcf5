"""
OAuth API routes: init, provider callback, one-time credential retrieval,
saved integrations and the provider / scope catalogue.

Route prefix: /oauth
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from fastapi.responses import RedirectResponse

from api.dependencies import get_oauth_service
from oauth.errors import CredentialNotFound, OAuthFlowError, PersistenceFailed, UnsupportedProvider
from oauth.schemas import (
    AuthorizationRedirect,
    CredentialSummary,
    FormattedCredential,
    InitRequest,
    SavedIntegration,
)
from oauth.service import OAuthService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/oauth", tags=["oauth"])


# ── Helpers ────────────────────────────────────────────────────────────


def _error_redirect(service: OAuthService) -> RedirectResponse:
    """Generic failure page; the real reason only goes to the server log."""
    target = service.settings.oauth_error_redirect
    sep = "&" if "?" in target else "?"
    return RedirectResponse(f"{target}{sep}error=auth_failed", status_code=status.HTTP_302_FOUND)


def _parse_scopes(values: List[str]) -> List[str]:
    """
    Accept repeated ``scopes=`` values as well as a single JSON-encoded
    array (``scopes=["gmail","drive"]``), which older clients send.
    """
    scopes: List[str] = []
    for value in values:
        value = value.strip()
        if value.startswith("["):
            try:
                decoded = json.loads(value)
            except ValueError:
                logger.warning("Ignoring malformed JSON scopes parameter")
                continue
            scopes.extend(str(s) for s in decoded if s)
        elif value:
            scopes.append(value)
    return scopes


async def _initiate(
    service: OAuthService,
    provider: str,
    body: InitRequest,
) -> AuthorizationRedirect:
    return await service.initiator.initiate(
        provider,
        body.integration_id,
        body.redirect_client or service.settings.oauth_default_redirect_client,
        body.scopes,
        user_id=body.userId,
        save=body.save,
        display_name=body.name,
    )


# ── Routes ─────────────────────────────────────────────────────────────


@router.get("/providers")
async def list_providers(
    service: OAuthService = Depends(get_oauth_service),
) -> List[Dict[str, Any]]:
    """List known providers and whether each one has client credentials."""
    return service.registry.list_providers()


@router.get("/providers/{provider}/scopes")
async def provider_scopes(
    provider: str,
    service: OAuthService = Depends(get_oauth_service),
) -> Dict[str, Any]:
    """Default scopes and selectable scope categories for a provider."""
    try:
        return service.registry.describe_scopes(provider)
    except UnsupportedProvider:
        raise HTTPException(status.HTTP_404_NOT_FOUND, f"Provider {provider} not found")


@router.get("/init/{provider}")
async def init_redirect(
    provider: str,
    integration_id: str = Query(""),
    redirect_client: Optional[str] = Query(None),
    scopes: List[str] = Query([]),
    scopes_list: List[str] = Query([], alias="scopes[]"),
    user_id: Optional[str] = Query(None, alias="userId"),
    save: Optional[bool] = Query(None),
    name: Optional[str] = Query(None),
    service: OAuthService = Depends(get_oauth_service),
) -> RedirectResponse:
    """Browser entry point: 302 straight to the provider's consent page."""
    body = InitRequest(
        integration_id=integration_id,
        redirect_client=redirect_client,
        scopes=_parse_scopes(scopes + scopes_list),
        userId=user_id,
        save=save,
        name=name,
    )
    try:
        redirect = await _initiate(service, provider, body)
    except OAuthFlowError as exc:
        logger.warning("OAuth init failed for %s: %s", provider, exc.code)
        return _error_redirect(service)
    return RedirectResponse(redirect.redirect_url, status_code=status.HTTP_302_FOUND)


@router.post("/init/{provider}", response_model_by_alias=True)
async def init_json(
    provider: str,
    body: InitRequest,
    service: OAuthService = Depends(get_oauth_service),
) -> AuthorizationRedirect:
    """Programmatic entry point: the caller redirects the browser itself."""
    body.scopes = _parse_scopes(body.scopes)
    try:
        return await _initiate(service, provider, body)
    except OAuthFlowError as exc:
        logger.warning("OAuth init failed for %s: %s", provider, exc.code)
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "auth_failed")


@router.get("/credentials/{credential_id}")
async def retrieve_credentials(
    credential_id: str,
    save: Optional[bool] = Query(None),
    user_id: Optional[str] = Query(None, alias="userId"),
    name: Optional[str] = Query(None),
    service: OAuthService = Depends(get_oauth_service),
) -> FormattedCredential:
    """
    One-time retrieval of a completed exchange.

    A second request for the same id, or one after expiry, gets 404.
    """
    try:
        return await service.finalizer.finalize(
            credential_id, save=save, user_id=user_id, display_name=name,
        )
    except CredentialNotFound:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Credentials not found or expired")


# ── Saved integrations ─────────────────────────────────────────────────


def _require_user(user_id: Optional[str]) -> str:
    if not user_id:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "User ID is required")
    return user_id


@router.get("/user-integrations")
async def list_user_integrations(
    user_id: Optional[str] = Query(None, alias="userId"),
    service: OAuthService = Depends(get_oauth_service),
) -> List[SavedIntegration]:
    """Saved connections for a user, without tokens."""
    try:
        return await service.storage.list_for_user(_require_user(user_id))
    except PersistenceFailed:
        raise HTTPException(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to fetch user integrations")


@router.delete("/user-integrations/{record_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user_integration(
    record_id: str,
    user_id: Optional[str] = Query(None, alias="userId"),
    service: OAuthService = Depends(get_oauth_service),
) -> Response:
    try:
        removed = await service.storage.delete(_require_user(user_id), record_id)
    except PersistenceFailed:
        raise HTTPException(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to delete user integration")
    if not removed:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Integration not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/user-credentials", response_model=List[CredentialSummary])
async def list_user_credentials(
    user_id: Optional[str] = Query(None, alias="userId"),
    service: OAuthService = Depends(get_oauth_service),
):
    """Dashboard listing: ids, names and timestamps only."""
    try:
        return await service.storage.list_for_user(_require_user(user_id))
    except PersistenceFailed:
        raise HTTPException(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to fetch user credentials")


@router.get("/{provider}/callback")
async def oauth_callback(
    provider: str,
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    service: OAuthService = Depends(get_oauth_service),
) -> RedirectResponse:
    """
    Provider redirects here after consent.

    Success → 302 to the recorded ``redirect_client`` with ``credential_id``;
    any failure → 302 to the error page with ``error=auth_failed``.
    """
    if error or not code:
        logger.warning("OAuth callback for %s without code (provider error=%s)", provider, error)
        if state:
            # Denied consent: the state can never be used, drop it now
            try:
                await service.state_store.consume(state)
            except Exception:
                logger.exception("Could not drop state after denied %s consent", provider)
        return _error_redirect(service)

    try:
        result = await service.exchanger.handle_callback(provider, code, state or "")
    except OAuthFlowError:
        return _error_redirect(service)
    except Exception:
        # The state is already spent; the browser still gets the error page
        logger.exception("Unexpected error handling %s callback", provider)
        return _error_redirect(service)

    return RedirectResponse(result.redirect_url, status_code=status.HTTP_302_FOUND)
