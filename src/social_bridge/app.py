from __future__ import annotations

import logging
from functools import lru_cache
from typing import Optional

from fastapi import FastAPI
from prometheus_client import Counter, start_http_server

from social_bridge.api import api_router
from social_bridge.core import SocialBridgeSettings
from social_bridge.core.credentials import CredentialIssuer
from social_bridge.core.identity import IdentityCodec
from social_bridge.db import DatabaseSessionManager
from social_bridge.db.repository import SocialRepository
from social_bridge.services import ActorResolver, FederationAdapter

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def _load_settings() -> SocialBridgeSettings:
    """Loads Social Bridge settings, caching the result."""
    return SocialBridgeSettings()


def create_app(settings: Optional[SocialBridgeSettings] = None) -> FastAPI:
    """Creates and configures the FastAPI application for Social Bridge.

    Args:
        settings: Optional SocialBridgeSettings instance. If None, settings are loaded.

    Returns:
        A configured FastAPI application instance.
    """
    settings = settings or _load_settings()

    db_manager = DatabaseSessionManager(settings.database_url)
    db_manager.create_all()  # IMPORTANT: In production, use a dedicated migration tool (e.g., Alembic) for schema management.

    codec = IdentityCodec(settings.activitypub_base_url)
    credentials = CredentialIssuer(settings)
    repository = SocialRepository(db_manager, credentials)
    resolver = ActorResolver(repository, codec)

    adapter = FederationAdapter(
        settings=settings,
        repository=repository,
        resolver=resolver,
        credentials=credentials,
        codec=codec,
    )

    app = FastAPI(title="Social Bridge", version="0.1.0")
    app.state.settings = settings
    app.state.db_manager = db_manager
    app.state.federation_adapter = adapter

    # Initialize Prometheus metrics (skip in test mode)
    if settings.prometheus_port > 0:
        app.state.activities_received_total = Counter(
            "social_bridge_activities_received_total",
            "Total number of inbound ActivityPub activities received",
            ["activity_type"],
        )
        app.state.activities_failed_total = Counter(
            "social_bridge_activities_failed_total",
            "Total number of inbound ActivityPub activities rejected",
            ["activity_type", "error_kind"],
        )

        # Start Prometheus metrics server
        start_http_server(settings.prometheus_port)
        logger.info("Prometheus metrics served on port %d", settings.prometheus_port)
    else:
        app.state.activities_received_total = None
        app.state.activities_failed_total = None

    app.include_router(api_router)

    return app


__all__ = ["create_app"]
