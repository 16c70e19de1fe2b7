from .activitypub import (
    AS_CONTEXT,
    PUBLIC_AUDIENCE,
    Activity,
    ActivityObject,
    Article,
    OrderedCollection,
    OrderedCollectionPage,
)
from .social import ActorProfile, CommentRecord, PostRecord, SharedInboxRequest

__all__ = [
    "AS_CONTEXT",
    "PUBLIC_AUDIENCE",
    "Activity",
    "ActivityObject",
    "Article",
    "OrderedCollection",
    "OrderedCollectionPage",
    "ActorProfile",
    "CommentRecord",
    "PostRecord",
    "SharedInboxRequest",
]
