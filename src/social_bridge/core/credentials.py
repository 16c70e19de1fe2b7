from __future__ import annotations

import time
from typing import Any, Dict, Optional

from jose import JOSEError, jwt

from social_bridge.core.errors import NotAuthorizedError
from social_bridge.core.settings import SocialBridgeSettings
from social_bridge.schemas import ActorProfile


class CredentialIssuer:
    """Issues and verifies the bearer credentials used for store mutations.

    A credential is a short-lived HMAC-signed JWT whose subject is the local
    actor id. Mutating repository calls verify it to learn who is acting, so
    the credential is always passed explicitly and never cached on the issuer.
    """

    def __init__(self, settings: SocialBridgeSettings):
        """Initializes the CredentialIssuer.

        Args:
            settings: The SocialBridgeSettings instance containing JWT configuration.
        """
        self.settings = settings

    def issue(self, actor: Optional[ActorProfile]) -> Optional[str]:
        """Produces a signed credential for the given actor.

        Args:
            actor: The resolved local actor, or None for anonymous handling.

        Returns:
            The encoded JWT, or None when there is no actor to act as.
        """
        if actor is None:
            return None
        now = int(time.time())
        claims: Dict[str, Any] = {
            "sub": actor.id,
            "iss": self.settings.jwt_issuer,
            "aud": self.settings.jwt_audience,
            "iat": now,
            "exp": now + self.settings.credential_ttl_seconds,
            "slug": actor.slug,
            "name": actor.name,
        }
        return jwt.encode(
            claims, self.settings.jwt_secret, algorithm=self.settings.jwt_algorithm
        )

    def verify(self, token: Optional[str]) -> str:
        """Validates a credential and returns the acting actor id.

        Args:
            token: The encoded JWT passed with a mutating call.

        Returns:
            The subject claim, i.e. the local actor id.

        Raises:
            NotAuthorizedError: If the token is missing, malformed, expired,
                                or issued for another issuer or audience.
        """
        if not token:
            raise NotAuthorizedError("Not Authorised: no credential supplied")
        try:
            payload = jwt.decode(
                token,
                self.settings.jwt_secret,
                algorithms=[self.settings.jwt_algorithm],
                audience=self.settings.jwt_audience,
                issuer=self.settings.jwt_issuer,
                options={
                    "verify_signature": True,
                    "verify_aud": True,
                    "verify_iss": True,
                    "verify_exp": True,
                },
            )
        except JOSEError as exc:
            raise NotAuthorizedError(f"Not Authorised: {exc}") from exc

        subject = payload.get("sub")
        if not subject:
            raise NotAuthorizedError("Not Authorised: credential has no subject")
        return str(subject)


__all__ = ["CredentialIssuer"]
