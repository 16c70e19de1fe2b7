from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

AS_CONTEXT = "https://www.w3.org/ns/activitystreams"
PUBLIC_AUDIENCE = "https://www.w3.org/ns/activitystreams#Public"


def _as_audience(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return [str(item) for item in value]


def _as_iri(value: Any) -> Any:
    # Actors and targets may be embedded objects; only their id matters here.
    if isinstance(value, dict) and "id" in value:
        return value["id"]
    return value


class ActivityObject(BaseModel):
    """Schema for an object embedded in an inbound activity (Article, Note, Follow, Like, Tombstone)."""

    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    type: Optional[str] = None
    actor: Optional[str] = None
    object: Optional[Union[str, Dict[str, Any]]] = None
    content: Optional[str] = None
    summary: Optional[str] = None
    inReplyTo: Optional[str] = None
    to: List[str] = Field(default_factory=list)

    @field_validator("to", mode="before")
    @classmethod
    def normalize_to(cls, value: Any) -> List[str]:
        return _as_audience(value)

    @field_validator("actor", "inReplyTo", mode="before")
    @classmethod
    def normalize_iri(cls, value: Any) -> Any:
        return _as_iri(value)


class Activity(BaseModel):
    """Schema for an already-authenticated inbound ActivityPub activity."""

    model_config = ConfigDict(extra="allow")

    id: str = Field(min_length=1)
    type: str = Field(min_length=1)
    actor: str = Field(min_length=1)
    object: Union[str, ActivityObject]
    to: List[str] = Field(default_factory=list)

    @field_validator("to", mode="before")
    @classmethod
    def normalize_to(cls, value: Any) -> List[str]:
        return _as_audience(value)

    @field_validator("actor", mode="before")
    @classmethod
    def normalize_actor(cls, value: Any) -> Any:
        return _as_iri(value)


class Article(BaseModel):
    """Schema for an ActivityPub Article object, representing a local post."""

    model_config = ConfigDict(populate_by_name=True)

    context: str = Field(alias="@context", default=AS_CONTEXT)
    id: str
    type: str = "Article"
    content: str
    summary: str
    attributedTo: str
    to: List[str] = Field(default_factory=lambda: [PUBLIC_AUDIENCE])
    published: str
    updated: str


class OrderedCollection(BaseModel):
    """Schema for the entry point of a followers, following or outbox collection."""

    model_config = ConfigDict(populate_by_name=True)

    context: str = Field(alias="@context", default=AS_CONTEXT)
    id: str
    type: str = "OrderedCollection"
    totalItems: int = 0
    first: str


class OrderedCollectionPage(BaseModel):
    """Schema for the single page of a collection. Items are IRIs or embedded articles."""

    model_config = ConfigDict(populate_by_name=True)

    context: str = Field(alias="@context", default=AS_CONTEXT)
    id: str
    type: str = "OrderedCollectionPage"
    totalItems: int = 0
    partOf: str
    orderedItems: List[Union[str, Article]] = Field(default_factory=list)
