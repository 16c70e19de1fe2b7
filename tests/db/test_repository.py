import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

from social_bridge.core.errors import NotAuthorizedError, NotFoundError, StoreUnavailableError
from social_bridge.db import DatabaseSessionManager
from social_bridge.db.repository import SocialRepository


def _actor(repository, credentials, slug):
    user_id, _ = repository.merge_actor(slug=slug, name=slug, actor_id=f"https://remote.example/users/{slug}")
    return user_id, credentials.issue(repository.get_actor_by_slug(slug))


def _post(repository, credential, post_id="p1", content="<p>hello</p>"):
    return repository.create_post(
        credential,
        post_id=post_id,
        title="hello",
        content=content,
        content_excerpt=content,
        category_ids=("federated",),
    )


def _count(db_manager, table):
    return db_manager.run(f"SELECT COUNT(*) AS n FROM {table}")[0]["n"]


def test_merge_actor_reports_creation(repository):
    first_id, created = repository.merge_actor(slug="alice", name="alice", actor_id=None)
    second_id, created_again = repository.merge_actor(slug="alice", name="other", actor_id=None)

    assert created is True
    assert created_again is False
    assert first_id == second_id
    assert repository.get_actor_by_slug("alice").name == "alice"


def test_follow_requires_valid_credential(repository, credentials):
    followee_id, _ = _actor(repository, credentials, "bob")
    with pytest.raises(NotAuthorizedError):
        repository.follow("garbage", followee_id)
    with pytest.raises(NotAuthorizedError):
        repository.follow(None, followee_id)


def test_follow_is_idempotent_and_ignores_self_follow(repository, credentials):
    alice_id, alice = _actor(repository, credentials, "alice")
    bob_id, _ = _actor(repository, credentials, "bob")

    assert repository.follow(alice, bob_id) is True
    assert repository.follow(alice, bob_id) is False
    assert repository.follow(alice, alice_id) is False
    assert repository.count_following(alice_id) == 1
    assert [user.slug for user in repository.list_followers(bob_id)] == ["alice"]


def test_follow_unknown_user_is_not_found(repository, credentials):
    _, alice = _actor(repository, credentials, "alice")
    with pytest.raises(NotFoundError):
        repository.follow(alice, "missing")


def test_unfollow_without_edge(repository, credentials):
    _, alice = _actor(repository, credentials, "alice")
    bob_id, _ = _actor(repository, credentials, "bob")
    assert repository.unfollow(alice, bob_id) is False


def test_create_post_links_categories_and_ignores_duplicates(repository, credentials):
    alice_id, alice = _actor(repository, credentials, "alice")

    record = _post(repository, alice)
    assert record.author_id == alice_id
    assert repository.get_post_category_ids("p1") == ["federated"]
    assert _post(repository, alice) is None
    assert repository.count_posts_by_author(alice_id) == 1


def test_update_and_delete_require_author(repository, credentials):
    _, alice = _actor(repository, credentials, "alice")
    _, bob = _actor(repository, credentials, "bob")
    _post(repository, alice)

    with pytest.raises(NotAuthorizedError):
        repository.update_post(bob, post_id="p1", title="x", content="x", content_excerpt="x")
    with pytest.raises(NotAuthorizedError):
        repository.delete_post(bob, "p1")
    assert repository.update_post(alice, post_id="missing", title="x", content="x", content_excerpt="x") is False
    assert repository.delete_post(alice, "missing") is False


def test_delete_post_removes_comments_and_shouts(repository, credentials, db_manager):
    _, alice = _actor(repository, credentials, "alice")
    _, bob = _actor(repository, credentials, "bob")
    _post(repository, alice)
    repository.create_comment(bob, comment_id="c1", content="nice", post_id="p1")
    repository.shout(bob, "p1")

    assert repository.delete_post(alice, "p1") is True
    assert repository.get_post("p1") is None
    assert _count(db_manager, "comments") == 0
    assert _count(db_manager, "shouts") == 0
    assert _count(db_manager, "post_categories") == 0


def test_comment_without_post_writes_nothing(repository, credentials, db_manager):
    _, bob = _actor(repository, credentials, "bob")

    with pytest.raises(NotFoundError, match="Comment cannot be created without a post!"):
        repository.create_comment(bob, comment_id="c1", content="hi", post_id="missing")
    assert _count(db_manager, "comments") == 0


def test_comment_requires_credential(repository, credentials):
    _, alice = _actor(repository, credentials, "alice")
    _post(repository, alice)
    with pytest.raises(NotAuthorizedError, match="Not Authorised"):
        repository.create_comment(None, comment_id="c1", content="hi", post_id="p1")


def test_shout_edges(repository, credentials):
    _, alice = _actor(repository, credentials, "alice")
    _post(repository, alice)

    assert repository.shout(alice, "p1") is True
    assert repository.shout(alice, "p1") is False
    assert repository.count_shouts("p1") == 1
    assert repository.unshout(alice, "p1") is True
    assert repository.unshout(alice, "p1") is False
    with pytest.raises(NotFoundError):
        repository.shout(alice, "missing")


def test_shared_inbox_endpoints_are_a_set(repository):
    assert repository.add_shared_inbox_endpoint("https://b.example/inbox") is True
    assert repository.add_shared_inbox_endpoint("https://a.example/inbox") is True
    assert repository.add_shared_inbox_endpoint("https://b.example/inbox") is False
    assert repository.list_shared_inbox_endpoints() == [
        "https://a.example/inbox",
        "https://b.example/inbox",
    ]


def test_run_binds_parameters(db_manager, repository):
    repository.merge_actor(slug="alice", name="alice", actor_id=None)
    hostile = "alice' OR '1'='1"

    assert db_manager.run("SELECT slug FROM users WHERE slug = :slug", {"slug": hostile}) == []
    assert db_manager.run("SELECT slug FROM users WHERE slug = :slug", {"slug": "alice"}) == [
        {"slug": "alice"}
    ]


def test_unreachable_store_is_reported(tmp_path: Path):
    manager = DatabaseSessionManager(f"sqlite+pysqlite:///{tmp_path / 'missing' / 'social.db'}")
    with pytest.raises(StoreUnavailableError):
        manager.run("SELECT 1")


def _run_interleaved(monkeypatch, call):
    """Runs ``call`` twice in parallel, both past the credential check before either writes."""
    barrier = threading.Barrier(2, timeout=5)
    acting_user = SocialRepository._acting_user

    def _synchronized(self, session, credential):
        user = acting_user(self, session, credential)
        barrier.wait()
        return user

    monkeypatch.setattr(SocialRepository, "_acting_user", _synchronized)
    with ThreadPoolExecutor(max_workers=2) as pool:
        futures = [pool.submit(call) for _ in range(2)]
        return [future.result() for future in futures]


def test_concurrent_duplicate_post_is_a_noop(repository, credentials, db_manager, monkeypatch):
    _, alice = _actor(repository, credentials, "alice")

    results = _run_interleaved(monkeypatch, lambda: _post(repository, alice))

    assert sum(result is not None for result in results) == 1
    assert results.count(None) == 1
    assert _count(db_manager, "posts") == 1
    assert repository.get_post_category_ids("p1") == ["federated"]


def test_concurrent_duplicate_comment_returns_one_record(repository, credentials, db_manager, monkeypatch):
    _, alice = _actor(repository, credentials, "alice")
    _, bob = _actor(repository, credentials, "bob")
    _post(repository, alice)

    results = _run_interleaved(
        monkeypatch,
        lambda: repository.create_comment(bob, comment_id="c1", content="nice", post_id="p1"),
    )

    assert results[0].id == results[1].id == "c1"
    assert results[0].post_id == results[1].post_id == "p1"
    assert _count(db_manager, "comments") == 1
