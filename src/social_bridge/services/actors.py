from __future__ import annotations

import logging
from typing import Optional

from social_bridge.core.identity import IdentityCodec, name_from_id
from social_bridge.db.repository import SocialRepository
from social_bridge.schemas import ActorProfile


logger = logging.getLogger(__name__)


class ActorResolver:
    """Guarantees a local user record exists for every actor IRI an activity names."""

    def __init__(self, repository: SocialRepository, codec: IdentityCodec) -> None:
        self._repository = repository
        self._codec = codec

    def slug_for(self, actor_ref: str) -> str:
        """Slug for an actor IRI. A bare reference without slashes is already a slug."""
        if "/" not in actor_ref:
            return actor_ref
        return self._codec.slug_for(actor_ref)

    async def resolve(self, actor_id: str) -> str:
        """Returns the local id for ``actor_id``, creating the user on first contact.

        Args:
            actor_id: The actor IRI referenced by an inbound activity.

        Returns:
            The local user id.

        Raises:
            MalformedInputError: If the IRI has no host or name.
            StoreUnavailableError: If the store cannot be reached.
        """
        slug = self._codec.slug_for(actor_id)
        user_id, created = self._repository.merge_actor(
            slug=slug, name=name_from_id(actor_id), actor_id=actor_id
        )
        if created:
            logger.info("Created user %s (%s) for actor %s", user_id, slug, actor_id)
        else:
            logger.debug("Actor %s already known as %s", actor_id, user_id)
        return user_id

    async def find(self, actor_ref: Optional[str]) -> Optional[ActorProfile]:
        """Looks up the user for an actor IRI or slug without creating it."""
        if not actor_ref:
            return None
        return self._repository.get_actor_by_slug(self.slug_for(actor_ref))


__all__ = ["ActorResolver"]
