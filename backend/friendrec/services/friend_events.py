"""Friend event handler - applies domain events to the graph and score stores.

Producers deliver at least once, so every handler here must be safe to
repeat: friend sets absorb duplicate adds and score increments are keyed by
the originating event. Events that hit a Redis outage are parked in the
dead-letter table and replayed later by ``DlqReplayWorker``.
"""

import enum
import logging

import redis.asyncio as aioredis
from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from friendrec.core.exceptions import StoreUnavailable
from friendrec.models.friend_event_dlq import DlqEventType, FriendEventDlq
from friendrec.services.dead_letter import FriendEventDlqRepository
from friendrec.stores.friendship import FriendshipGraphStore
from friendrec.stores.interaction import InteractionScoreStore

logger = logging.getLogger(__name__)


class InteractionType(str, enum.Enum):
    POST_LIKE = "POST_LIKE"
    COMMENT = "COMMENT"
    COMMENT_LIKE = "COMMENT_LIKE"
    ROLLING_PAPER = "ROLLING_PAPER"


def build_dedup_key(event_type: InteractionType, entity_id: int, actor_id: int) -> str:
    """e.g. ``POST_LIKE:42:7`` - member 7 liked post 42."""
    return f"{event_type.value}:{entity_id}:{actor_id}"


class FriendEventHandler:
    def __init__(
        self,
        friendships: FriendshipGraphStore,
        interactions: InteractionScoreStore,
        dead_letters: FriendEventDlqRepository | None = None,
    ):
        self.friendships = friendships
        self.interactions = interactions
        self.dead_letters = dead_letters

    async def on_friend_added(self, member_id: int, friend_id: int) -> None:
        try:
            await self.friendships.add_friend(member_id, friend_id)
        except StoreUnavailable as e:
            await self._park(e, DlqEventType.FRIEND_ADD, member_id, friend_id)

    async def on_friend_removed(self, member_id: int, friend_id: int) -> None:
        try:
            await self.friendships.remove_friend(member_id, friend_id)
        except StoreUnavailable as e:
            await self._park(e, DlqEventType.FRIEND_REMOVE, member_id, friend_id)

    async def on_interaction(
        self,
        event_type: InteractionType,
        entity_id: int,
        actor_id: int,
        target_id: int,
    ) -> bool:
        """Credit an interaction between actor and the content owner.

        Returns False for self-interactions, for events already counted, and
        for events parked for replay.
        """
        if actor_id == target_id:
            return False
        dedup_key = build_dedup_key(event_type, entity_id, actor_id)
        try:
            applied = await self.interactions.add_interaction_score(actor_id, target_id, dedup_key)
        except StoreUnavailable as e:
            await self._park(e, DlqEventType.SCORE_UP, actor_id, target_id, dedup_key)
            return False
        if not applied:
            logger.debug(
                "Duplicate %s event for entity %s by member %s ignored",
                event_type.value, entity_id, actor_id,
            )
        return applied

    async def on_member_withdrawn(self, member_id: int) -> None:
        """Erase a withdrawn member from both stores."""
        try:
            await self._withdraw(member_id)
        except StoreUnavailable as e:
            await self._park(e, DlqEventType.MEMBER_WITHDRAW, member_id)
            return
        logger.info("Cleared graph and interaction data for withdrawn member %s", member_id)

    async def replay(self, event: FriendEventDlq) -> None:
        """Apply a parked event. Store errors propagate so the caller can count the retry."""
        if event.event_type == DlqEventType.FRIEND_ADD:
            await self.friendships.add_friend(event.member_id, event.target_id)
        elif event.event_type == DlqEventType.FRIEND_REMOVE:
            await self.friendships.remove_friend(event.member_id, event.target_id)
        elif event.event_type == DlqEventType.SCORE_UP:
            await self.interactions.add_interaction_score(event.member_id, event.target_id, event.dedup_key)
        elif event.event_type == DlqEventType.MEMBER_WITHDRAW:
            await self._withdraw(event.member_id)
        else:
            raise ValueError(f"Unknown dead-letter event type: {event.event_type}")

    async def _withdraw(self, member_id: int) -> None:
        await self.friendships.delete_withdraw_targeted(member_id)
        await self.interactions.delete_on_withdraw(member_id)

    async def _park(
        self,
        error: StoreUnavailable,
        event_type: DlqEventType,
        member_id: int,
        target_id: int | None = None,
        dedup_key: str | None = None,
    ) -> None:
        if self.dead_letters is None:
            raise error
        event_id = await self.dead_letters.park(event_type, member_id, target_id, dedup_key)
        logger.warning(
            "%s event for member %s parked as dead letter %s: %s",
            event_type.value, member_id, event_id, error,
        )


def create_friend_event_handler(
    redis: aioredis.Redis, session_factory: async_sessionmaker[AsyncSession]
) -> FriendEventHandler:
    """Handler over the shared Redis client, parking failures through ``session_factory``."""
    return FriendEventHandler(
        FriendshipGraphStore(redis),
        InteractionScoreStore(redis),
        FriendEventDlqRepository(session_factory),
    )


def get_friend_event_handler(request: Request) -> FriendEventHandler:
    """FastAPI dependency - the handler built once in the lifespan."""
    return request.app.state.friend_events
