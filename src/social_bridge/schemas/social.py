from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class ActorProfile(BaseModel):
    """Schema for a local user record as returned by the repository."""

    id: str
    slug: str
    name: Optional[str] = None
    actor_id: Optional[str] = None
    public_key: Optional[str] = None
    private_key: Optional[str] = Field(
        default=None, description="Encrypted private key, opaque to the bridge."
    )


class PostRecord(BaseModel):
    """Schema for a stored post."""

    id: str
    activity_id: Optional[str] = None
    object_id: Optional[str] = None
    title: str
    content: str
    content_excerpt: str
    author_id: str
    created_at: int
    updated_at: int


class CommentRecord(BaseModel):
    """Schema for a stored comment together with its author and post links."""

    id: str
    content: str
    activity_id: Optional[str] = None
    author_id: str
    post_id: str
    created_at: int


class SharedInboxRequest(BaseModel):
    """Schema for registering a shared inbox endpoint of a remote server."""

    uri: str = Field(min_length=8, description="Absolute http(s) URI of the shared inbox.")
