from pathlib import Path

import pytest

from social_bridge.core.credentials import CredentialIssuer
from social_bridge.core.identity import IdentityCodec
from social_bridge.core.settings import SocialBridgeSettings
from social_bridge.db import DatabaseSessionManager
from social_bridge.db.repository import SocialRepository
from social_bridge.services import ActorResolver, FederationAdapter

BASE_URL = "https://social.example"


@pytest.fixture
def settings(tmp_path: Path) -> SocialBridgeSettings:
    return SocialBridgeSettings(
        database_url=f"sqlite+pysqlite:///{tmp_path / 'social.db'}",
        activitypub_base_url=BASE_URL,
        jwt_secret="test-secret",
        post_category_ids=("federated",),
        prometheus_port=0,  # No metrics server in tests
    )


@pytest.fixture
def db_manager(settings):
    manager = DatabaseSessionManager(settings.database_url)
    manager.create_all()
    yield manager
    manager.dispose()


@pytest.fixture
def credentials(settings) -> CredentialIssuer:
    return CredentialIssuer(settings)


@pytest.fixture
def repository(db_manager, credentials) -> SocialRepository:
    return SocialRepository(db_manager, credentials)


@pytest.fixture
def codec(settings) -> IdentityCodec:
    return IdentityCodec(settings.activitypub_base_url)


@pytest.fixture
def resolver(repository, codec) -> ActorResolver:
    return ActorResolver(repository, codec)


@pytest.fixture
def adapter(settings, repository, resolver, credentials, codec) -> FederationAdapter:
    return FederationAdapter(
        settings=settings,
        repository=repository,
        resolver=resolver,
        credentials=credentials,
        codec=codec,
    )
