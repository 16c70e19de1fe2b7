import pytest
from pydantic import ValidationError

from social_bridge.core.settings import SocialBridgeSettings


def test_defaults():
    settings = SocialBridgeSettings()
    assert settings.credential_ttl_seconds == 86_400
    assert settings.content_excerpt_length == 120
    assert settings.follow_sync_only_newest is True


def test_base_url_trailing_slash_is_stripped():
    settings = SocialBridgeSettings(activitypub_base_url="https://social.example/")
    assert settings.activitypub_base_url == "https://social.example"


@pytest.mark.parametrize("base_url", ["social.example", "ftp://social.example", "https://"])
def test_base_url_requires_http_host(base_url):
    with pytest.raises(ValidationError):
        SocialBridgeSettings(activitypub_base_url=base_url)


def test_reads_prefixed_environment(monkeypatch):
    monkeypatch.setenv("SOCIAL_BRIDGE_FOLLOW_SYNC_CONCURRENCY", "3")
    monkeypatch.setenv("SOCIAL_BRIDGE_JWT_ALGORITHM", "HS512")
    settings = SocialBridgeSettings()
    assert settings.follow_sync_concurrency == 3
    assert settings.jwt_algorithm == "HS512"


def test_rejects_unknown_jwt_algorithm():
    with pytest.raises(ValidationError):
        SocialBridgeSettings(jwt_algorithm="RS256")
