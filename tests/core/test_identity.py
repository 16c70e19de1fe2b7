import pytest

from social_bridge.core.errors import MalformedInputError
from social_bridge.core.identity import (
    IdentityCodec,
    host_of,
    id_from_activity_id,
    name_from_id,
)

codec = IdentityCodec("https://social.example")


@pytest.mark.parametrize(
    "iri, expected",
    [
        ("https://social.example/activitypub/users/alice/status/0b9e", "0b9e"),
        ("https://remote.example/notes/42/", "42"),
        ("https://remote.example/objects/abc?page=2#frag", "abc"),
    ],
)
def test_id_from_activity_id(iri, expected):
    assert id_from_activity_id(iri) == expected


@pytest.mark.parametrize("iri", ["", "   ", None, 42, "https://remote.example", "https://remote.example/"])
def test_id_from_activity_id_rejects_malformed(iri):
    with pytest.raises(MalformedInputError):
        id_from_activity_id(iri)


def test_name_from_id_prefers_segment_after_users():
    assert name_from_id("https://social.example/activitypub/users/alice") == "alice"
    assert name_from_id("https://remote.example/users/bob/") == "bob"
    assert name_from_id("https://remote.example/@carol") == "@carol"


def test_name_from_id_without_path_is_malformed():
    with pytest.raises(MalformedInputError):
        name_from_id("https://remote.example")


def test_id_from_name_round_trips_local_iris():
    iri = "https://social.example/activitypub/users/alice"
    assert codec.id_from_name(name_from_id(iri)) == iri


def test_id_from_name_rejects_empty_name():
    with pytest.raises(MalformedInputError):
        codec.id_from_name("")


def test_remote_slug_is_prefixed_with_host():
    local = codec.slug_for("https://social.example/activitypub/users/alice")
    remote = codec.slug_for("https://remote.example/users/alice")
    assert local == "alice"
    assert remote == "remote.example-alice"
    assert local != remote


def test_is_local():
    assert codec.is_local("https://social.example/activitypub/users/alice")
    assert not codec.is_local("https://remote.example/users/alice")


def test_host_of_requires_host():
    assert host_of("https://Remote.Example/users/bob") == "remote.example"
    with pytest.raises(MalformedInputError):
        host_of("/users/bob")


@pytest.mark.parametrize(
    "collection_iri",
    [
        "https://remote.example/users/bob/following?page=true",
        "https://remote.example/users/bob/followers",
        "https://remote.example/users/bob/outbox/",
        "https://remote.example/users/bob",
    ],
)
def test_owner_from_collection_id(collection_iri):
    assert codec.owner_from_collection_id(collection_iri) == "https://remote.example/users/bob"
