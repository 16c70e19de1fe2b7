import time

import pytest
from jose import jwt

from social_bridge.core.credentials import CredentialIssuer
from social_bridge.core.errors import NotAuthorizedError
from social_bridge.core.settings import SocialBridgeSettings
from social_bridge.schemas import ActorProfile


@pytest.fixture
def issuer_settings():
    return SocialBridgeSettings(jwt_secret="test-secret", prometheus_port=0)


@pytest.fixture
def actor():
    return ActorProfile(id="user-1", slug="alice", name="alice")


def test_issue_without_actor_returns_none(issuer_settings):
    assert CredentialIssuer(issuer_settings).issue(None) is None


def test_issue_and_verify_round_trip(issuer_settings, actor):
    issuer = CredentialIssuer(issuer_settings)
    token = issuer.issue(actor)

    assert issuer.verify(token) == "user-1"
    claims = jwt.get_unverified_claims(token)
    assert claims["iss"] == issuer_settings.jwt_issuer
    assert claims["aud"] == issuer_settings.jwt_audience
    assert claims["slug"] == "alice"
    assert claims["exp"] - claims["iat"] == 86_400


@pytest.mark.parametrize("token", [None, "", "not-a-jwt"])
def test_verify_rejects_missing_or_garbled_tokens(issuer_settings, token):
    with pytest.raises(NotAuthorizedError, match="Not Authorised"):
        CredentialIssuer(issuer_settings).verify(token)


def test_verify_rejects_foreign_secret(issuer_settings, actor):
    other = SocialBridgeSettings(jwt_secret="another-secret", prometheus_port=0)
    token = CredentialIssuer(other).issue(actor)
    with pytest.raises(NotAuthorizedError):
        CredentialIssuer(issuer_settings).verify(token)


def test_verify_rejects_wrong_audience(issuer_settings, actor):
    other = SocialBridgeSettings(
        jwt_secret="test-secret", jwt_audience="https://elsewhere.example", prometheus_port=0
    )
    token = CredentialIssuer(other).issue(actor)
    with pytest.raises(NotAuthorizedError):
        CredentialIssuer(issuer_settings).verify(token)


def test_verify_rejects_expired_token(issuer_settings):
    past = int(time.time()) - 3600
    token = jwt.encode(
        {
            "sub": "user-1",
            "iss": issuer_settings.jwt_issuer,
            "aud": issuer_settings.jwt_audience,
            "iat": past - 60,
            "exp": past,
        },
        issuer_settings.jwt_secret,
        algorithm="HS256",
    )
    with pytest.raises(NotAuthorizedError):
        CredentialIssuer(issuer_settings).verify(token)
