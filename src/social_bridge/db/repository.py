from __future__ import annotations

import time
import uuid
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import Table, and_, delete, func, insert, select
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from social_bridge.core.credentials import CredentialIssuer
from social_bridge.core.errors import NotAuthorizedError, NotFoundError
from social_bridge.schemas import ActorProfile, CommentRecord, PostRecord

from .base import DatabaseSessionManager
from .models import (
    Category,
    Comment,
    Post,
    SharedInboxEndpoint,
    User,
    follows,
    post_categories,
    shouts,
)


_CONFLICT_AWARE_INSERTS = {
    "sqlite": sqlite_insert,
    "postgresql": postgresql_insert,
}


def _insert_ignore(
    session: Session,
    table: Table,
    values: Dict[str, Any],
    conflict_columns: Sequence[str],
) -> bool:
    """Inserts a row unless one with the same conflict columns exists.

    Uses a single ``INSERT ... ON CONFLICT DO NOTHING`` where the dialect
    supports it, so concurrent inserts of the same key cannot both succeed.

    Returns:
        True if a row was inserted, False if it already existed.
    """
    factory = _CONFLICT_AWARE_INSERTS.get(session.get_bind().dialect.name)
    if factory is not None:
        statement = (
            factory(table)
            .values(**values)
            .on_conflict_do_nothing(index_elements=list(conflict_columns))
        )
        return session.execute(statement).rowcount == 1

    match = and_(*(table.c[column] == values[column] for column in conflict_columns))
    if session.execute(select(1).select_from(table).where(match)).first():
        return False
    session.execute(insert(table).values(**values))
    return True


def _to_profile(user: User) -> ActorProfile:
    return ActorProfile(
        id=user.id,
        slug=user.slug,
        name=user.name,
        actor_id=user.actor_id,
        public_key=user.public_key,
        private_key=user.private_key,
    )


def _to_post_record(post: Post) -> PostRecord:
    return PostRecord(
        id=post.id,
        activity_id=post.activity_id,
        object_id=post.object_id,
        title=post.title,
        content=post.content,
        content_excerpt=post.content_excerpt,
        author_id=post.author_id,
        created_at=post.created_at,
        updated_at=post.updated_at,
    )


def _to_comment_record(comment: Comment) -> CommentRecord:
    return CommentRecord(
        id=comment.id,
        content=comment.content,
        activity_id=comment.activity_id,
        author_id=comment.author_id,
        post_id=comment.post_id,
        created_at=comment.created_at,
    )


class SocialRepository:
    """Persistence primitives backed by SQLAlchemy for the social graph.

    Every mutating method takes the caller's credential and acts as the actor
    it names. Each method runs in its own transaction.
    """

    def __init__(self, db: DatabaseSessionManager, credentials: CredentialIssuer) -> None:
        """Initializes the SocialRepository.

        Args:
            db: The DatabaseSessionManager instance.
            credentials: Verifies the credentials passed to mutating calls.
        """
        self._db = db
        self._credentials = credentials

    def _acting_user(self, session: Session, credential: Optional[str]) -> User:
        """Resolves the user a credential was issued for.

        Raises:
            NotAuthorizedError: If the credential is invalid or its subject is gone.
        """
        user_id = self._credentials.verify(credential)
        user = session.get(User, user_id)
        if user is None:
            raise NotAuthorizedError("Not Authorised: credential subject does not exist")
        return user

    # Users -------------------------------------------------------------------

    def get_actor_by_slug(self, slug: str) -> Optional[ActorProfile]:
        """Retrieves a user by slug.

        Args:
            slug: The unique slug of the user.

        Returns:
            An ActorProfile if found, otherwise None.
        """
        with self._db.session() as session:
            user = session.scalars(select(User).where(User.slug == slug)).first()
            return _to_profile(user) if user else None

    def merge_actor(
        self,
        *,
        slug: str,
        name: Optional[str],
        actor_id: Optional[str],
        public_key: Optional[str] = None,
        private_key: Optional[str] = None,
    ) -> Tuple[str, bool]:
        """Returns the id of the user with ``slug``, creating it when absent.

        The create is a conflict-ignoring insert on the unique slug followed by
        a read in the same transaction, so two concurrent first contacts end up
        with the same record.

        Args:
            slug: The unique slug of the user.
            name: Display name stored on creation.
            actor_id: Federation IRI stored on creation.
            public_key: Optional PEM public key stored on creation.
            private_key: Optional encrypted private key stored on creation.

        Returns:
            A tuple of the local user id and whether it was created by this call.
        """
        with self._db.session() as session:
            existing = session.scalar(select(User.id).where(User.slug == slug))
            if existing:
                return existing, False
            created = _insert_ignore(
                session,
                User.__table__,
                {
                    "id": str(uuid.uuid4()),
                    "slug": slug,
                    "name": name,
                    "actor_id": actor_id,
                    "public_key": public_key,
                    "private_key": private_key,
                    "created_at": int(time.time()),
                },
                ("slug",),
            )
            user_id = session.scalar(select(User.id).where(User.slug == slug))
            return user_id, created

    # Follow edges ------------------------------------------------------------

    def follow(self, credential: Optional[str], followee_id: str) -> bool:
        """Creates a follow edge from the acting user to ``followee_id``.

        Returns:
            True if the edge was created, False if it already existed or is a self-follow.

        Raises:
            NotFoundError: If the followee does not exist.
        """
        with self._db.session() as session:
            follower = self._acting_user(session, credential)
            if session.get(User, followee_id) is None:
                raise NotFoundError(f"user {followee_id} does not exist")
            if follower.id == followee_id:
                return False
            return _insert_ignore(
                session,
                follows,
                {"follower_id": follower.id, "followee_id": followee_id},
                ("follower_id", "followee_id"),
            )

    def unfollow(self, credential: Optional[str], followee_id: str) -> bool:
        """Removes the follow edge from the acting user to ``followee_id``.

        Returns:
            True if an edge was removed, False if there was none.
        """
        with self._db.session() as session:
            follower = self._acting_user(session, credential)
            result = session.execute(
                delete(follows).where(
                    follows.c.follower_id == follower.id,
                    follows.c.followee_id == followee_id,
                )
            )
            return result.rowcount > 0

    def count_followers(self, user_id: str) -> int:
        with self._db.session() as session:
            return session.scalar(
                select(func.count()).select_from(follows).where(follows.c.followee_id == user_id)
            )

    def list_followers(self, user_id: str) -> List[ActorProfile]:
        with self._db.session() as session:
            users = session.scalars(
                select(User)
                .join(follows, follows.c.follower_id == User.id)
                .where(follows.c.followee_id == user_id)
                .order_by(User.slug)
            ).all()
            return [_to_profile(user) for user in users]

    def count_following(self, user_id: str) -> int:
        with self._db.session() as session:
            return session.scalar(
                select(func.count()).select_from(follows).where(follows.c.follower_id == user_id)
            )

    def list_following(self, user_id: str) -> List[ActorProfile]:
        with self._db.session() as session:
            users = session.scalars(
                select(User)
                .join(follows, follows.c.followee_id == User.id)
                .where(follows.c.follower_id == user_id)
                .order_by(User.slug)
            ).all()
            return [_to_profile(user) for user in users]

    # Posts -------------------------------------------------------------------

    def create_post(
        self,
        credential: Optional[str],
        *,
        post_id: str,
        title: str,
        content: str,
        content_excerpt: str,
        activity_id: Optional[str] = None,
        object_id: Optional[str] = None,
        category_ids: Iterable[str] = (),
    ) -> Optional[PostRecord]:
        """Creates a post authored by the acting user.

        Args:
            credential: Credential of the author.
            post_id: Local id of the post, taken from its object IRI.
            title: Derived title.
            content: HTML content.
            content_excerpt: Truncated HTML excerpt.
            activity_id: IRI of the Create activity.
            object_id: IRI of the created object.
            category_ids: Categories to reference, created on demand.

        Returns:
            The stored PostRecord, or None if a post with this id already exists.
        """
        now = int(time.time())
        with self._db.session() as session:
            author = self._acting_user(session, credential)
            values = {
                "id": post_id,
                "activity_id": activity_id,
                "object_id": object_id,
                "title": title,
                "content": content,
                "content_excerpt": content_excerpt,
                "author_id": author.id,
                "created_at": now,
                "updated_at": now,
            }
            if not _insert_ignore(session, Post.__table__, values, ("id",)):
                return None
            for category_id in category_ids:
                _insert_ignore(session, Category.__table__, {"id": category_id}, ("id",))
                _insert_ignore(
                    session,
                    post_categories,
                    {"post_id": post_id, "category_id": category_id},
                    ("post_id", "category_id"),
                )
            return PostRecord(**values)

    def update_post(
        self,
        credential: Optional[str],
        *,
        post_id: str,
        title: str,
        content: str,
        content_excerpt: str,
    ) -> bool:
        """Overwrites the content of a post owned by the acting user.

        Returns:
            True if the post was updated, False if no post has this id.

        Raises:
            NotAuthorizedError: If the acting user is not the author.
        """
        with self._db.session() as session:
            actor = self._acting_user(session, credential)
            post = session.get(Post, post_id)
            if post is None:
                return False
            if post.author_id != actor.id:
                raise NotAuthorizedError("Not Authorised: only the author may update a post")
            post.title = title
            post.content = content
            post.content_excerpt = content_excerpt
            post.updated_at = int(time.time())
            return True

    def delete_post(self, credential: Optional[str], post_id: str) -> bool:
        """Deletes a post owned by the acting user together with its comments and edges.

        Returns:
            True if the post was deleted, False if no post has this id.

        Raises:
            NotAuthorizedError: If the acting user is not the author.
        """
        with self._db.session() as session:
            actor = self._acting_user(session, credential)
            post = session.get(Post, post_id)
            if post is None:
                return False
            if post.author_id != actor.id:
                raise NotAuthorizedError("Not Authorised: only the author may delete a post")
            session.execute(delete(Comment).where(Comment.post_id == post_id))
            session.execute(delete(shouts).where(shouts.c.post_id == post_id))
            session.execute(delete(post_categories).where(post_categories.c.post_id == post_id))
            session.delete(post)
            return True

    def get_post(self, post_id: str) -> Optional[PostRecord]:
        with self._db.session() as session:
            post = session.get(Post, post_id)
            return _to_post_record(post) if post else None

    def get_post_category_ids(self, post_id: str) -> List[str]:
        with self._db.session() as session:
            return list(
                session.scalars(
                    select(post_categories.c.category_id)
                    .where(post_categories.c.post_id == post_id)
                    .order_by(post_categories.c.category_id)
                )
            )

    def count_posts_by_author(self, user_id: str) -> int:
        with self._db.session() as session:
            return session.scalar(
                select(func.count()).select_from(Post).where(Post.author_id == user_id)
            )

    def list_posts_by_author(self, user_id: str) -> List[PostRecord]:
        """Lists the posts of a user, newest first."""
        with self._db.session() as session:
            posts = session.scalars(
                select(Post)
                .where(Post.author_id == user_id)
                .order_by(Post.created_at.desc(), Post.id)
            ).all()
            return [_to_post_record(post) for post in posts]

    # Comments ----------------------------------------------------------------

    def create_comment(
        self,
        credential: Optional[str],
        *,
        comment_id: str,
        content: str,
        post_id: str,
        activity_id: Optional[str] = None,
    ) -> CommentRecord:
        """Creates a comment, links its author and attaches it to a post.

        The three graph writes share one transaction: either the comment exists
        with both links, or nothing was written.

        Returns:
            The stored CommentRecord. A redelivered comment returns the existing record.

        Raises:
            NotFoundError: If the post does not exist.
        """
        with self._db.session() as session:
            author = self._acting_user(session, credential)
            existing = session.get(Comment, comment_id)
            if existing is not None:
                return _to_comment_record(existing)
            if session.get(Post, post_id) is None:
                raise NotFoundError("Comment cannot be created without a post!")
            values = {
                "id": comment_id,
                "content": content,
                "activity_id": activity_id,
                "author_id": author.id,
                "post_id": post_id,
                "created_at": int(time.time()),
            }
            if not _insert_ignore(session, Comment.__table__, values, ("id",)):
                # Written by a concurrent delivery of the same activity.
                return _to_comment_record(session.get(Comment, comment_id))
            return CommentRecord(**values)

    # Shouts ------------------------------------------------------------------

    def shout(self, credential: Optional[str], post_id: str) -> bool:
        """Creates a like edge from the acting user to a post.

        Returns:
            True if the edge was created, False if it already existed.

        Raises:
            NotFoundError: If the post does not exist.
        """
        with self._db.session() as session:
            actor = self._acting_user(session, credential)
            if session.get(Post, post_id) is None:
                raise NotFoundError(f"post {post_id} does not exist")
            return _insert_ignore(
                session,
                shouts,
                {"user_id": actor.id, "post_id": post_id},
                ("user_id", "post_id"),
            )

    def unshout(self, credential: Optional[str], post_id: str) -> bool:
        """Removes the like edge from the acting user to a post.

        Returns:
            True if an edge was removed, False if there was none.

        Raises:
            NotFoundError: If the post does not exist.
        """
        with self._db.session() as session:
            actor = self._acting_user(session, credential)
            if session.get(Post, post_id) is None:
                raise NotFoundError(f"post {post_id} does not exist")
            result = session.execute(
                delete(shouts).where(
                    shouts.c.user_id == actor.id, shouts.c.post_id == post_id
                )
            )
            return result.rowcount > 0

    def count_shouts(self, post_id: str) -> int:
        with self._db.session() as session:
            return session.scalar(
                select(func.count()).select_from(shouts).where(shouts.c.post_id == post_id)
            )

    # Shared inboxes ----------------------------------------------------------

    def add_shared_inbox_endpoint(self, uri: str) -> bool:
        """Registers a shared inbox URI.

        Returns:
            True if the URI was new, False if it was already registered.
        """
        with self._db.session() as session:
            return _insert_ignore(
                session,
                SharedInboxEndpoint.__table__,
                {"id": str(uuid.uuid4()), "uri": uri},
                ("uri",),
            )

    def list_shared_inbox_endpoints(self) -> List[str]:
        with self._db.session() as session:
            return list(
                session.scalars(select(SharedInboxEndpoint.uri).order_by(SharedInboxEndpoint.uri))
            )
