"""
Shared fixtures: settings with every provider configured, a SQLite-backed
store, and a mock provider transport.
"""

from __future__ import annotations

import json
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest
import pytest_asyncio
from cryptography.fernet import Fernet

from config.settings import Settings
from database.session import build_engine, build_session_factory, create_tables
from oauth.encryption import TokenCipher


def make_settings(tmp_path=None, **overrides: Any) -> Settings:
    values: Dict[str, Any] = {
        "database_url": f"sqlite+aiosqlite:///{tmp_path / 'oauth.db'}" if tmp_path else "sqlite+aiosqlite://",
        "oauth_redirect_base": "http://hub.test",
        "oauth_error_redirect": "http://app.test/integrations",
        "oauth_default_redirect_client": "http://app.test/integrations",
        "oauth_sweep_interval_seconds": 0,
        "token_encryption_key": Fernet.generate_key().decode(),
        "cors_origins": ["http://app.test"],
        "google_client_id": "google-id",
        "google_client_secret": "google-secret",
        "github_client_id": "github-id",
        "github_client_secret": "github-secret",
        "slack_client_id": "slack-id",
        "slack_client_secret": "slack-secret",
        "facebook_client_id": "facebook-id",
        "facebook_client_secret": "facebook-secret",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def provider_transport(
    token_body: Optional[Dict[str, Any]] = None,
    *,
    token_status: int = 200,
    profile_body: Any = None,
    profile_status: int = 200,
    calls: Optional[List[httpx.Request]] = None,
) -> httpx.MockTransport:
    """POSTs answer as the token endpoint, GETs as the profile endpoint."""
    token_body = token_body if token_body is not None else {"access_token": "T1", "expires_in": 3600}
    profile_body = profile_body if profile_body is not None else {
        "id": "42", "name": "Ada Lovelace", "email": "ada@example.com",
    }

    def handler(request: httpx.Request) -> httpx.Response:
        if calls is not None:
            calls.append(request)
        if request.method == "POST":
            return httpx.Response(token_status, content=json.dumps(token_body),
                                  headers={"Content-Type": "application/json"})
        return httpx.Response(profile_status, json=profile_body)

    return httpx.MockTransport(handler)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return make_settings(tmp_path)


@pytest.fixture
def cipher() -> TokenCipher:
    return TokenCipher(Fernet.generate_key().decode())


@pytest_asyncio.fixture
async def engine(tmp_path):
    eng = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'store.db'}")
    await create_tables(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def make_service(settings, engine) -> Callable[..., Any]:
    """Build an OAuthService on the test engine with a given provider transport."""
    from oauth.service import OAuthService

    def _make(transport: Optional[httpx.AsyncBaseTransport] = None, storage=None, **overrides):
        cfg = settings.model_copy(update=overrides) if overrides else settings
        return OAuthService(cfg, engine=engine, transport=transport or provider_transport(), storage=storage)

    return _make
