from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping, Optional, Union

from bs4 import BeautifulSoup, Comment, NavigableString

from social_bridge.schemas import (
    PUBLIC_AUDIENCE,
    ActivityObject,
    Article,
    OrderedCollection,
    OrderedCollectionPage,
)

ELLIPSIS = "…"
TITLE_WORDS = 5


def collection_id(owner_slug: str, kind: str, *, base_url: str) -> str:
    return f"{base_url.rstrip('/')}/activitypub/users/{owner_slug}/{kind}"


def ordered_collection(owner_slug: str, kind: str, *, base_url: str) -> OrderedCollection:
    """Skeleton collection for ``owner_slug``. The caller sets ``totalItems``."""
    cid = collection_id(owner_slug, kind, base_url=base_url)
    return OrderedCollection(id=cid, first=f"{cid}?page=true")


def ordered_collection_page(
    owner_slug: str, kind: str, *, base_url: str
) -> OrderedCollectionPage:
    """Skeleton page for ``owner_slug``. The caller sets ``totalItems`` and fills ``orderedItems``."""
    cid = collection_id(owner_slug, kind, base_url=base_url)
    return OrderedCollectionPage(id=f"{cid}?page=true", partOf=cid)


def truncate_html(html: str, limit: int = 120) -> str:
    """
    Truncate HTML to ``limit`` visible characters while keeping it well formed.

    Text after the cut is dropped and the cut text gets an ellipsis. Tags are
    left balanced by the parser.
    """
    soup = BeautifulSoup(html or "", "html.parser")
    remaining = limit
    cut = False
    for node in list(soup.find_all(string=True)):
        if isinstance(node, Comment):
            node.extract()
            continue
        if cut:
            node.extract()
            continue
        if len(node) <= remaining:
            remaining -= len(node)
            continue
        node.replace_with(NavigableString(node[:remaining].rstrip() + ELLIPSIS))
        cut = True
    if cut:
        for tag in reversed(soup.find_all(True)):
            if not tag.get_text() and tag.name not in ("br", "img", "hr"):
                tag.decompose()
    return str(soup)


def html_to_text(html: str) -> str:
    return BeautifulSoup(html or "", "html.parser").get_text(" ", strip=True)


def derive_title(summary: Optional[str], content: Optional[str]) -> str:
    """Explicit summary, else the first five words of the content."""
    if summary:
        return summary
    return " ".join(html_to_text(content or "").split()[:TITLE_WORDS])


def format_timestamp(timestamp: int) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


def article_object(
    activity_id: Optional[str],
    object_id: Optional[str],
    content: str,
    actor_id: str,
    local_id: str,
    created_at: int,
    updated_at: int,
    *,
    excerpt_length: int = 120,
) -> Article:
    """Build a public Article for a stored post.

    Posts that arrived without federation IRIs get an id under their author's
    actor IRI.
    """
    article_id = object_id or activity_id or f"{actor_id.rstrip('/')}/status/{local_id}"
    return Article(
        id=article_id,
        content=content,
        summary=truncate_html(content, excerpt_length),
        attributedTo=actor_id,
        to=[PUBLIC_AUDIENCE],
        published=format_timestamp(created_at),
        updated=format_timestamp(updated_at),
    )


def is_public_addressed(obj: Union[ActivityObject, Mapping[str, Any], None]) -> bool:
    """True iff the object's ``to`` audience contains the public collection.

    Direct addressing is not supported, callers skip persistence for it.
    """
    if obj is None:
        return False
    audience = obj.to if isinstance(obj, ActivityObject) else obj.get("to")
    if isinstance(audience, str):
        audience = [audience]
    return PUBLIC_AUDIENCE in (audience or [])


__all__ = [
    "article_object",
    "collection_id",
    "derive_title",
    "format_timestamp",
    "html_to_text",
    "is_public_addressed",
    "ordered_collection",
    "ordered_collection_page",
    "truncate_html",
]
