from .base import DatabaseSessionManager, Base
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

__all__ = [
    "DatabaseSessionManager",
    "Base",
    "Category",
    "Comment",
    "Post",
    "SharedInboxEndpoint",
    "User",
    "follows",
    "post_categories",
    "shouts",
]
