"""Tests for the friend event handler - event to store mapping."""

from types import SimpleNamespace

import pytest

from conftest import test_session_factory as session_factory
from friendrec.core.exceptions import StoreUnavailable
from friendrec.models import DlqEventType, DlqStatus
from friendrec.services.friend_events import (
    FriendEventHandler,
    InteractionType,
    build_dedup_key,
    create_friend_event_handler,
    get_friend_event_handler,
)


@pytest.fixture
def handler(friendships, interactions):
    return FriendEventHandler(friendships, interactions)


def test_build_dedup_key():
    assert build_dedup_key(InteractionType.POST_LIKE, 42, 7) == "POST_LIKE:42:7"


async def test_friend_added_and_removed(handler, friendships):
    await handler.on_friend_added(1, 2)
    assert await friendships.get_friends(2) == {1}

    await handler.on_friend_removed(1, 2)
    assert await friendships.get_friends(1) == set()
    assert await friendships.get_friends(2) == set()


async def test_redelivered_interaction_counts_once(handler, interactions):
    assert await handler.on_interaction(InteractionType.POST_LIKE, 10, 1, 4) is True
    assert await handler.on_interaction(InteractionType.POST_LIKE, 10, 1, 4) is False
    assert await handler.on_interaction(InteractionType.COMMENT, 10, 1, 4) is True

    assert await interactions.get_scores_batch(4, [1]) == [pytest.approx(2.0)]


async def test_self_interaction_ignored(handler, interactions):
    assert await handler.on_interaction(InteractionType.COMMENT_LIKE, 5, 3, 3) is False
    assert await interactions.get_top_scores(3, 10) == []


async def test_member_withdrawn_clears_both_stores(handler, friendships, interactions, redis):
    await handler.on_friend_added(1, 2)
    await handler.on_friend_added(1, 3)
    await handler.on_interaction(InteractionType.ROLLING_PAPER, 9, 2, 1)

    await handler.on_member_withdrawn(1)

    assert await friendships.get_friends(2) == set()
    assert await friendships.get_friends(3) == set()
    assert not await redis.exists("friends:1")
    assert not await redis.exists("interactions:1")
    assert await interactions.get_scores_batch(2, [1]) == [None]


# ---------------------------------------------------------------------------
# Redis outages and the dead-letter table
# ---------------------------------------------------------------------------


async def _unavailable(*args, **kwargs):
    raise StoreUnavailable("friendship", "write")


@pytest.fixture
def parking_handler(friendships, interactions, dead_letters):
    return FriendEventHandler(friendships, interactions, dead_letters)


async def test_friend_added_during_outage_is_parked(parking_handler, friendships, dead_letters, monkeypatch):
    monkeypatch.setattr(friendships, "add_friend", _unavailable)

    await parking_handler.on_friend_added(1, 2)

    (event,) = await dead_letters.pending(10)
    assert event.event_type == DlqEventType.FRIEND_ADD
    assert (event.member_id, event.target_id) == (1, 2)
    assert event.status == DlqStatus.PENDING
    assert event.retry_count == 0


async def test_interaction_during_outage_is_parked(parking_handler, interactions, dead_letters, monkeypatch):
    monkeypatch.setattr(interactions, "add_interaction_score", _unavailable)

    applied = await parking_handler.on_interaction(InteractionType.POST_LIKE, 10, 1, 4)

    assert applied is False
    (event,) = await dead_letters.pending(10)
    assert event.event_type == DlqEventType.SCORE_UP
    assert (event.member_id, event.target_id) == (1, 4)
    assert event.dedup_key == "POST_LIKE:10:1"


async def test_withdrawal_during_outage_is_parked(parking_handler, interactions, dead_letters, monkeypatch):
    monkeypatch.setattr(interactions, "delete_on_withdraw", _unavailable)

    await parking_handler.on_member_withdrawn(7)

    (event,) = await dead_letters.pending(10)
    assert event.event_type == DlqEventType.MEMBER_WITHDRAW
    assert event.member_id == 7
    assert event.target_id is None


async def test_outage_without_dead_letters_propagates(handler, friendships, monkeypatch):
    monkeypatch.setattr(friendships, "remove_friend", _unavailable)

    with pytest.raises(StoreUnavailable):
        await handler.on_friend_removed(1, 2)


# ---------------------------------------------------------------------------
# App wiring
# ---------------------------------------------------------------------------


async def test_created_handler_parks_through_session_factory(redis, friendships, monkeypatch):
    handler = create_friend_event_handler(redis, session_factory)

    await handler.on_friend_added(1, 2)
    assert await friendships.get_friends(1) == {2}

    monkeypatch.setattr(handler.friendships, "add_friend", _unavailable)
    await handler.on_friend_added(1, 3)

    (event,) = await handler.dead_letters.pending(10)
    assert (event.member_id, event.target_id) == (1, 3)


def test_get_friend_event_handler_reads_app_state(handler):
    request = SimpleNamespace(app=SimpleNamespace(state=SimpleNamespace(friend_events=handler)))

    assert get_friend_event_handler(request) is handler
