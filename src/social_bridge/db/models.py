from __future__ import annotations

from sqlalchemy import BigInteger, Column, ForeignKey, String, Table, Text

from .base import Base


# Directed follow edges between users.
follows = Table(
    "follows",
    Base.metadata,
    Column("follower_id", String(64), ForeignKey("users.id"), primary_key=True),
    Column("followee_id", String(64), ForeignKey("users.id"), primary_key=True),
)

# Like edges from a user to a post.
shouts = Table(
    "shouts",
    Base.metadata,
    Column("user_id", String(64), ForeignKey("users.id"), primary_key=True),
    Column("post_id", String(128), ForeignKey("posts.id"), primary_key=True),
)

post_categories = Table(
    "post_categories",
    Base.metadata,
    Column("post_id", String(128), ForeignKey("posts.id"), primary_key=True),
    Column("category_id", String(64), ForeignKey("categories.id"), primary_key=True),
)


class User(Base):
    """Represents a local user, either registered here or created on first federated contact."""

    __tablename__ = "users"

    id = Column(String(64), primary_key=True)
    slug = Column(String(255), unique=True, nullable=False)
    name = Column(String(255), nullable=True)
    actor_id = Column(Text, nullable=True)
    public_key = Column(Text, nullable=True)
    private_key = Column(Text, nullable=True)  # Stored encrypted, never decrypted here
    created_at = Column(BigInteger, nullable=False)


class Category(Base):
    """A category that posts can reference."""

    __tablename__ = "categories"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=True)


class Post(Base):
    """A content item owned by a user, keyed by the local id of its federated object."""

    __tablename__ = "posts"

    id = Column(String(128), primary_key=True)
    activity_id = Column(Text, nullable=True)
    object_id = Column(Text, nullable=True)
    title = Column(Text, nullable=False)
    content = Column(Text, nullable=False)
    content_excerpt = Column(Text, nullable=False)
    author_id = Column(String(64), ForeignKey("users.id"), nullable=False, index=True)
    created_at = Column(BigInteger, nullable=False)
    updated_at = Column(BigInteger, nullable=False)


class Comment(Base):
    """A reply to a post, authored by a user."""

    __tablename__ = "comments"

    id = Column(String(128), primary_key=True)
    content = Column(Text, nullable=False)
    activity_id = Column(Text, nullable=True)
    author_id = Column(String(64), ForeignKey("users.id"), nullable=False)
    post_id = Column(String(128), ForeignKey("posts.id"), nullable=False, index=True)
    created_at = Column(BigInteger, nullable=False)


class SharedInboxEndpoint(Base):
    """Delivery URI of a remote server's shared inbox."""

    __tablename__ = "shared_inbox_endpoints"

    id = Column(String(64), primary_key=True)
    uri = Column(Text, unique=True, nullable=False)
