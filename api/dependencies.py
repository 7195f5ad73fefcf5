"""
FastAPI dependencies (shared across routes).
"""

from __future__ import annotations

from fastapi import Request

from oauth.service import OAuthService


def get_oauth_service(request: Request) -> OAuthService:
    """The process-wide OAuthService attached in ``create_app``."""
    return request.app.state.oauth_service
