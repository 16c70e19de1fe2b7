from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Union
from urllib.parse import urlparse

from pydantic import BaseModel, ValidationError

from social_bridge.core.credentials import CredentialIssuer
from social_bridge.core.errors import (
    MalformedInputError,
    NotAuthorizedError,
    NotFoundError,
    PartialCompletionError,
)
from social_bridge.core.identity import IdentityCodec, id_from_activity_id
from social_bridge.core.settings import SocialBridgeSettings
from social_bridge.db.repository import SocialRepository
from social_bridge.schemas import (
    Activity,
    ActivityObject,
    ActorProfile,
    CommentRecord,
    OrderedCollection,
    OrderedCollectionPage,
    PostRecord,
)

from .activitypub import (
    article_object,
    derive_title,
    html_to_text,
    is_public_addressed,
    ordered_collection,
    ordered_collection_page,
    truncate_html,
)
from .actors import ActorResolver


logger = logging.getLogger(__name__)

ActivityPayload = Union[Activity, Mapping[str, Any]]


class FederationAdapter:
    """Translates inbound ActivityPub activities into social graph mutations.

    Each activity goes through the same stages: validate, resolve the actors it
    names, issue a credential for the acting actor, run the store mutation and
    shape the result. The credential is passed explicitly to every mutating
    repository call, so one adapter instance may serve concurrent activities.

    Read-only collection requests skip the credential stage and shape local
    state as ActivityPub collections.
    """

    def __init__(
        self,
        *,
        settings: SocialBridgeSettings,
        repository: SocialRepository,
        resolver: Optional[ActorResolver] = None,
        credentials: Optional[CredentialIssuer] = None,
        codec: Optional[IdentityCodec] = None,
    ) -> None:
        """Initialize the FederationAdapter with required dependencies.

        Args:
            settings: Configuration settings for the bridge.
            repository: Repository for the social graph.
            resolver: Actor resolver (optional, built from the repository if omitted).
            credentials: Credential issuer (optional, built from settings if omitted).
            codec: Identity codec (optional, built from settings if omitted).
        """
        self._settings = settings
        self._repository = repository
        self._codec = codec or IdentityCodec(settings.activitypub_base_url)
        self._credentials = credentials or CredentialIssuer(settings)
        self._resolver = resolver or ActorResolver(repository, self._codec)
        self._activity_handlers: Dict[str, Callable[[Activity], Awaitable[Any]]] = {
            "Follow": self.follow,
            "Create": self._handle_create,
            "Update": self.update_post,
            "Delete": self.delete_post,
            "Like": self.create_like,
            "Undo": self._handle_undo,
        }

    @property
    def codec(self) -> IdentityCodec:
        return self._codec

    # Inbound activities ----------------------------------------------------

    @staticmethod
    def parse_activity(payload: ActivityPayload) -> Activity:
        """Validates an inbound payload.

        Raises:
            MalformedInputError: If a required activity field is missing or invalid.
        """
        if isinstance(payload, Activity):
            return payload
        try:
            return Activity.model_validate(payload)
        except ValidationError as exc:
            fields = ", ".join(
                ".".join(str(part) for part in error["loc"]) for error in exc.errors()
            )
            raise MalformedInputError(f"invalid activity: {fields}") from exc

    async def handle_activity(self, payload: ActivityPayload) -> Any:
        """Dispatches an inbound activity to the handler for its type.

        Args:
            payload: The already-authenticated activity, as a dict or Activity model.

        Returns:
            Whatever the specific handler returns.

        Raises:
            MalformedInputError: If the activity is invalid or of an unsupported type.
            NotFoundError: If a referenced post does not exist.
            NotAuthorizedError: If the acting actor may not perform the mutation.
            StoreUnavailableError: If the store cannot be reached.
            PartialCompletionError: If only some items of a multi-item mutation applied.
        """
        activity = self.parse_activity(payload)
        handler = self._activity_handlers.get(activity.type)
        if handler is None:
            raise MalformedInputError(f"unsupported activity type {activity.type!r}")
        logger.info(
            "Handling %s activity %s from %s", activity.type, activity.id, activity.actor
        )
        return await handler(activity)

    async def _handle_create(self, activity: Activity) -> Union[PostRecord, CommentRecord, None]:
        if self._embedded_object(activity).inReplyTo:
            return await self.create_comment(activity)
        return await self.create_post(activity)

    async def _handle_undo(self, activity: Activity) -> bool:
        undone = self._embedded_object(activity)
        if undone.actor and undone.actor != activity.actor:
            raise NotAuthorizedError(
                f"{activity.actor} cannot undo an activity of {undone.actor}"
            )
        if undone.type == "Follow":
            return await self.undo_follow(activity.actor, self._iri_of(undone.object))
        if undone.type == "Like":
            return await self.delete_like(activity)
        raise MalformedInputError(f"cannot undo activity of type {undone.type!r}")

    async def _authorize(self, actor_ref: Optional[str]) -> Optional[str]:
        """Issues a credential for an actor, or None when it has no local record."""
        actor = await self._resolver.find(actor_ref)
        if actor is None:
            logger.debug("No local user for %s, acting anonymously", actor_ref)
        return self._credentials.issue(actor)

    # Follows ---------------------------------------------------------------

    async def follow(self, activity: ActivityPayload) -> bool:
        """Creates a follow edge from the activity's actor to its object.

        Returns:
            True if the edge was created, False if it already existed.
        """
        activity = self.parse_activity(activity)
        followee = self._object_iri(activity)
        await self._resolver.resolve(activity.actor)
        credential = await self._authorize(activity.actor)
        followee_id = await self._resolver.resolve(followee)
        created = self._repository.follow(credential, followee_id)
        logger.info(
            "Follow %s -> %s %s",
            activity.actor,
            followee,
            "created" if created else "already present",
        )
        return created

    async def save_following_collection_page(
        self,
        page: Union[OrderedCollectionPage, Mapping[str, Any]],
        only_newest_item: Optional[bool] = None,
    ) -> int:
        """Syncs the follow edges listed in a remote actor's following page.

        Args:
            page: The fetched page. Its ``id`` (or ``partOf``) names the owner.
            only_newest_item: Apply only the last item, so polling does not
                replay the whole page. Defaults to ``follow_sync_only_newest``.

        Returns:
            The number of items applied.

        Raises:
            MalformedInputError: If the page has no id or no item list.
            PartialCompletionError: If any item of a multi-item page failed.
        """
        if isinstance(page, BaseModel):
            page = page.model_dump(by_alias=True)
        collection_iri = page.get("partOf") or page.get("id")
        items = page.get("orderedItems")
        if not collection_iri or not isinstance(items, list):
            raise MalformedInputError("following page needs an id and orderedItems")
        if only_newest_item is None:
            only_newest_item = self._settings.follow_sync_only_newest

        owner = self._codec.owner_from_collection_id(collection_iri)
        await self._resolver.resolve(owner)
        credential = await self._authorize(owner)
        if not items:
            return 0
        selected: List[Any] = items[-1:] if only_newest_item else list(items)
        semaphore = asyncio.Semaphore(self._settings.follow_sync_concurrency)

        async def _apply(item: Any) -> bool:
            async with semaphore:
                followee_id = await self._resolver.resolve(self._iri_of(item))
                return self._repository.follow(credential, followee_id)

        results = await asyncio.gather(
            *(_apply(item) for item in selected), return_exceptions=True
        )
        failures = [result for result in results if isinstance(result, BaseException)]
        applied = len(results) - len(failures)
        logger.debug("Following sync for %s applied %d item(s)", owner, applied)
        if failures:
            if len(selected) == 1:
                raise failures[0]
            logger.warning(
                "Following sync for %s: %d of %d item(s) failed",
                owner,
                len(failures),
                len(selected),
            )
            raise PartialCompletionError(applied, failures)
        return applied

    async def undo_follow(self, from_actor_id: str, to_actor_id: str) -> bool:
        """Removes the follow edge between two actors.

        Returns:
            True if an edge was removed, False if none existed.
        """
        await self._resolver.resolve(from_actor_id)
        to_user_id = await self._resolver.resolve(to_actor_id)
        credential = await self._authorize(from_actor_id)
        removed = self._repository.unfollow(credential, to_user_id)
        if not removed:
            logger.info("Undo follow %s -> %s: no edge present", from_actor_id, to_actor_id)
        return removed

    # Posts -----------------------------------------------------------------

    async def create_post(self, activity: ActivityPayload) -> Optional[PostRecord]:
        """Stores the post carried by a Create activity.

        Returns:
            The stored post, or None when the post is not public or was already stored.
        """
        activity = self.parse_activity(activity)
        post_object = self._embedded_object(activity)
        if not is_public_addressed(post_object):
            logger.info(
                "Skipping post %s: not addressed to the public", post_object.id
            )
            return None
        post_id = id_from_activity_id(post_object.id)
        content = self._required_content(post_object)

        await self._resolver.resolve(activity.actor)
        credential = await self._authorize(activity.actor)
        record = self._repository.create_post(
            credential,
            post_id=post_id,
            title=derive_title(post_object.summary, content),
            content=content,
            content_excerpt=truncate_html(content, self._settings.content_excerpt_length),
            activity_id=activity.id,
            object_id=post_object.id,
            category_ids=self._settings.post_category_ids,
        )
        if record is None:
            logger.info("Post %s already stored, ignoring redelivery", post_id)
        return record

    async def update_post(self, activity: ActivityPayload) -> bool:
        """Overwrites a post's content, title and excerpt.

        Returns:
            True if the post was updated, False if no post has that id.
        """
        activity = self.parse_activity(activity)
        post_object = self._embedded_object(activity)
        post_id = id_from_activity_id(post_object.id)
        content = self._required_content(post_object)
        credential = await self._authorize(activity.actor)
        updated = self._repository.update_post(
            credential,
            post_id=post_id,
            title=derive_title(post_object.summary, content),
            content=content,
            content_excerpt=truncate_html(content, self._settings.content_excerpt_length),
        )
        if not updated:
            logger.info("Update for unknown post %s ignored", post_id)
        return updated

    async def delete_post(self, activity: ActivityPayload) -> bool:
        """Deletes the post named by a Delete activity.

        Returns:
            True if the post was deleted, False if no post has that id.
        """
        activity = self.parse_activity(activity)
        post_id = id_from_activity_id(self._object_iri(activity))
        credential = await self._authorize(activity.actor)
        deleted = self._repository.delete_post(credential, post_id)
        if not deleted:
            logger.info("Delete for unknown post %s ignored", post_id)
        return deleted

    # Comments --------------------------------------------------------------

    async def create_comment(self, activity: ActivityPayload) -> CommentRecord:
        """Stores a reply as a comment on the post it answers."""
        activity = self.parse_activity(activity)
        comment_object = self._embedded_object(activity)
        comment_id = id_from_activity_id(comment_object.id)
        post_id = id_from_activity_id(comment_object.inReplyTo)
        content = self._required_content(comment_object)
        if not html_to_text(content):
            raise MalformedInputError("Comment must be at least 1 character long!")

        await self._resolver.resolve(activity.actor)
        credential = await self._authorize(activity.actor)
        return self._repository.create_comment(
            credential,
            comment_id=comment_id,
            content=content,
            post_id=post_id,
            activity_id=activity.id,
        )

    # Likes -----------------------------------------------------------------

    async def create_like(self, activity: ActivityPayload) -> bool:
        """Creates a shout edge from the actor to the liked post.

        Raises:
            NotFoundError: If the post does not exist.
        """
        activity = self.parse_activity(activity)
        post_id = id_from_activity_id(self._object_iri(activity))
        await self._resolver.resolve(activity.actor)
        credential = await self._authorize(activity.actor)
        return self._repository.shout(credential, post_id)

    async def delete_like(self, activity: ActivityPayload) -> bool:
        """Removes the shout edge named by an Undo of a Like.

        Returns:
            True if an edge was removed, False if the actor had not liked the post.

        Raises:
            NotFoundError: If the actor has no local record or the post does not exist.
        """
        activity = self.parse_activity(activity)
        like = self._embedded_object(activity)
        post_id = id_from_activity_id(self._iri_of(like.object))
        actor = await self._resolver.find(activity.actor)
        if actor is None:
            raise NotFoundError(f"No user for actor {activity.actor}")
        credential = self._credentials.issue(actor)
        removed = self._repository.unshout(credential, post_id)
        if not removed:
            logger.info("Undo like of %s by %s: no like present", post_id, activity.actor)
        return removed

    # Collections -----------------------------------------------------------

    async def _collection_owner(self, actor_id: str) -> ActorProfile:
        owner = await self._resolver.find(actor_id)
        if owner is None:
            raise NotFoundError(f"No user for actor {actor_id}")
        return owner

    def _actor_iri(self, actor: ActorProfile) -> str:
        return actor.actor_id or self._codec.id_from_name(actor.slug)

    async def get_followers_collection(self, actor_id: str) -> OrderedCollection:
        owner = await self._collection_owner(actor_id)
        collection = ordered_collection(
            owner.slug, "followers", base_url=self._settings.activitypub_base_url
        )
        collection.totalItems = self._repository.count_followers(owner.id)
        return collection

    async def get_followers_collection_page(self, actor_id: str) -> OrderedCollectionPage:
        owner = await self._collection_owner(actor_id)
        followers = self._repository.list_followers(owner.id)
        page = ordered_collection_page(
            owner.slug, "followers", base_url=self._settings.activitypub_base_url
        )
        page.totalItems = len(followers)
        page.orderedItems.extend(self._actor_iri(follower) for follower in followers)
        return page

    async def get_following_collection(self, actor_id: str) -> OrderedCollection:
        owner = await self._collection_owner(actor_id)
        collection = ordered_collection(
            owner.slug, "following", base_url=self._settings.activitypub_base_url
        )
        collection.totalItems = self._repository.count_following(owner.id)
        return collection

    async def get_following_collection_page(self, actor_id: str) -> OrderedCollectionPage:
        owner = await self._collection_owner(actor_id)
        following = self._repository.list_following(owner.id)
        page = ordered_collection_page(
            owner.slug, "following", base_url=self._settings.activitypub_base_url
        )
        page.totalItems = len(following)
        page.orderedItems.extend(self._actor_iri(user) for user in following)
        return page

    async def get_outbox_collection(self, actor_id: str) -> OrderedCollection:
        owner = await self._collection_owner(actor_id)
        collection = ordered_collection(
            owner.slug, "outbox", base_url=self._settings.activitypub_base_url
        )
        collection.totalItems = self._repository.count_posts_by_author(owner.id)
        return collection

    async def get_outbox_collection_page(self, actor_id: str) -> OrderedCollectionPage:
        owner = await self._collection_owner(actor_id)
        posts = self._repository.list_posts_by_author(owner.id)
        owner_iri = self._actor_iri(owner)
        page = ordered_collection_page(
            owner.slug, "outbox", base_url=self._settings.activitypub_base_url
        )
        page.totalItems = len(posts)
        page.orderedItems.extend(
            article_object(
                post.activity_id,
                post.object_id,
                post.content,
                owner_iri,
                post.id,
                post.created_at,
                post.updated_at,
                excerpt_length=self._settings.content_excerpt_length,
            )
            for post in posts
        )
        return page

    # Shared inboxes --------------------------------------------------------

    async def add_shared_inbox_endpoint(self, uri: str) -> bool:
        """Registers a remote server's shared inbox.

        Returns:
            True if the endpoint is new, False if it was already registered.
        """
        parsed = urlparse(uri or "")
        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            raise MalformedInputError(f"invalid shared inbox URI {uri!r}")
        return self._repository.add_shared_inbox_endpoint(uri)

    async def get_shared_inbox_endpoints(self) -> List[str]:
        return self._repository.list_shared_inbox_endpoints()

    # Actor lookups ---------------------------------------------------------

    async def _user_by_name(self, name: str) -> ActorProfile:
        actor = self._repository.get_actor_by_slug(name)
        if actor is None:
            raise NotFoundError(f"No user with name: {name}")
        return actor

    async def get_actor_id(self, name: str) -> str:
        """Actor IRI stored for a local name, falling back to the canonical IRI."""
        return self._actor_iri(await self._user_by_name(name))

    async def get_public_key(self, name: str) -> Optional[str]:
        return (await self._user_by_name(name)).public_key

    async def get_encrypted_private_key(self, name: str) -> Optional[str]:
        return (await self._user_by_name(name)).private_key

    async def user_exists(self, name: str) -> bool:
        return self._repository.get_actor_by_slug(name) is not None

    # Helpers ---------------------------------------------------------------

    @staticmethod
    def _embedded_object(activity: Activity) -> ActivityObject:
        if not isinstance(activity.object, ActivityObject):
            raise MalformedInputError(
                f"{activity.type} activity {activity.id} must embed its object"
            )
        return activity.object

    @staticmethod
    def _iri_of(value: Any) -> str:
        if isinstance(value, ActivityObject):
            value = value.id
        elif isinstance(value, Mapping):
            value = value.get("id")
        if not isinstance(value, str) or not value:
            raise MalformedInputError("referenced object has no id")
        return value

    def _object_iri(self, activity: Activity) -> str:
        return self._iri_of(activity.object)

    @staticmethod
    def _required_content(obj: ActivityObject) -> str:
        if obj.content is None:
            raise MalformedInputError(f"object {obj.id} has no content")
        return obj.content


__all__ = ["FederationAdapter"]
