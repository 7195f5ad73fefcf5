"""
OAuth Connection Hub — application entry point.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.middleware import register_middleware
from api.routes import router as oauth_router
from config.settings import Settings, config
from oauth.service import OAuthService

logging.basicConfig(
    level=logging.DEBUG if config.debug else logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(name)s — %(message)s",
    stream=sys.stdout,
)
for _noisy in ("httpcore", "httpx", "urllib3", "aiosqlite"):
    logging.getLogger(_noisy).setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    service: Optional[OAuthService] = None,
) -> FastAPI:
    settings = settings or config
    service = service or OAuthService(settings)

    app = FastAPI(
        title="OAuth Connection Hub",
        version="1.0.0",
        description="Connect third-party accounts via OAuth2 and hand off tokens exactly once.",
    )
    app.state.oauth_service = service

    # CORS: explicit allow-list only (validated in Settings)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type"],
    )

    register_middleware(app)

    app.include_router(oauth_router)

    @app.on_event("startup")
    async def on_startup():
        logger.info("Preparing OAuth tables and expiry sweeper…")
        await service.startup()
        logger.info("Application ready to accept requests.")

    @app.on_event("shutdown")
    async def on_shutdown():
        await service.shutdown()

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=config.host,
        port=config.port,
        reload=config.debug,
        log_level="debug" if config.debug else "info",
    )
