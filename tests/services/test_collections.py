import pytest

from social_bridge.schemas import PUBLIC_AUDIENCE, ActivityObject
from social_bridge.services.activitypub import (
    ELLIPSIS,
    article_object,
    collection_id,
    derive_title,
    format_timestamp,
    is_public_addressed,
    ordered_collection,
    ordered_collection_page,
    truncate_html,
)

BASE_URL = "https://social.example"
ACTOR = "https://social.example/activitypub/users/alice"


def test_ordered_collection_points_at_its_page():
    collection = ordered_collection("alice", "followers", base_url=BASE_URL)
    assert collection.id == f"{BASE_URL}/activitypub/users/alice/followers"
    assert collection.type == "OrderedCollection"
    assert collection.first == f"{collection.id}?page=true"
    assert collection.totalItems == 0


def test_ordered_collection_page_is_part_of_collection():
    page = ordered_collection_page("alice", "outbox", base_url=BASE_URL)
    cid = collection_id("alice", "outbox", base_url=BASE_URL)
    assert page.id == f"{cid}?page=true"
    assert page.partOf == cid
    assert page.type == "OrderedCollectionPage"
    assert page.orderedItems == []


def test_collections_serialize_with_context():
    body = ordered_collection("alice", "following", base_url=BASE_URL).model_dump(by_alias=True)
    assert body["@context"] == "https://www.w3.org/ns/activitystreams"


@pytest.mark.parametrize(
    "obj, expected",
    [
        (ActivityObject(to=[PUBLIC_AUDIENCE]), True),
        (ActivityObject(to=PUBLIC_AUDIENCE), True),
        ({"to": PUBLIC_AUDIENCE}, True),
        ({"to": ["https://remote.example/users/bob", PUBLIC_AUDIENCE]}, True),
        (ActivityObject(to=[]), False),
        (ActivityObject(to=["https://remote.example/users/bob"]), False),
        ({}, False),
        (None, False),
    ],
)
def test_is_public_addressed(obj, expected):
    assert is_public_addressed(obj) is expected


def test_derive_title_uses_first_five_words():
    assert derive_title(None, "one two three four five six seven") == "one two three four five"


def test_derive_title_strips_markup():
    assert derive_title("", "<p>one <b>two</b> three four five six</p>") == "one two three four five"


def test_derive_title_prefers_summary():
    assert derive_title("A summary", "one two three four five six") == "A summary"


def test_truncate_html_leaves_short_content_alone():
    assert truncate_html("<p>hello</p>", 120) == "<p>hello</p>"


def test_truncate_html_cuts_text_and_appends_ellipsis():
    assert truncate_html("<p>" + "a" * 200 + "</p>", 10) == "<p>" + "a" * 10 + ELLIPSIS + "</p>"


def test_truncate_html_drops_elements_after_the_cut():
    html = "<p>hello <b>world</b></p><p>more</p>"
    assert truncate_html(html, 5) == f"<p>hello{ELLIPSIS}</p>"


def test_format_timestamp_is_iso8601_utc():
    assert format_timestamp(0) == "1970-01-01T00:00:00+00:00"


def test_article_object_prefers_object_id():
    article = article_object(
        "https://social.example/activities/1",
        "https://social.example/objects/1",
        "<p>hello</p>",
        ACTOR,
        "1",
        0,
        60,
    )
    assert article.id == "https://social.example/objects/1"
    assert article.type == "Article"
    assert article.attributedTo == ACTOR
    assert article.to == [PUBLIC_AUDIENCE]
    assert article.summary == "<p>hello</p>"
    assert article.published == "1970-01-01T00:00:00+00:00"
    assert article.updated == "1970-01-01T00:01:00+00:00"


def test_article_object_without_iris_lives_under_actor():
    article = article_object(None, None, "text", ACTOR, "p1", 0, 0)
    assert article.id == f"{ACTOR}/status/p1"


def test_article_summary_is_truncated():
    article = article_object(None, None, "x" * 300, ACTOR, "p1", 0, 0, excerpt_length=20)
    assert article.summary == "x" * 20 + ELLIPSIS
