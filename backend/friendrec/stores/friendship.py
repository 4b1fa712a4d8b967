"""Friendship graph store - per-member friend sets cached in Redis."""

import logging
from collections.abc import Sequence

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from friendrec.config import settings
from friendrec.core.exceptions import StoreUnavailable

logger = logging.getLogger(__name__)

STORE_NAME = "friendship"


def _to_ids(members) -> set[int]:
    return {int(m) for m in members or ()}


class FriendshipGraphStore:
    """Undirected friendship edges stored as two set memberships.

    Key: ``friends:{memberId}``, members are friend ids.
    """

    def __init__(self, redis: aioredis.Redis, chunk_size: int | None = None):
        self.redis = redis
        self.chunk_size = chunk_size or settings.FRIEND_BATCH_CHUNK_SIZE

    def _friends_key(self, member_id: int) -> str:
        return f"friends:{member_id}"

    async def add_friend(self, member_id: int, friend_id: int) -> None:
        """Record a friendship on both sides. Re-adding is a no-op."""
        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.sadd(self._friends_key(member_id), friend_id)
                pipe.sadd(self._friends_key(friend_id), member_id)
                await pipe.execute()
        except RedisError as e:
            raise StoreUnavailable(STORE_NAME, "add_friend", e) from e

    async def remove_friend(self, member_id: int, friend_id: int) -> None:
        """Drop a friendship on both sides (unfriend)."""
        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.srem(self._friends_key(member_id), friend_id)
                pipe.srem(self._friends_key(friend_id), member_id)
                await pipe.execute()
        except RedisError as e:
            raise StoreUnavailable(STORE_NAME, "remove_friend", e) from e

    async def get_friends(self, member_id: int) -> set[int]:
        """Full friend set of a member."""
        try:
            members = await self.redis.smembers(self._friends_key(member_id))
        except RedisError as e:
            raise StoreUnavailable(STORE_NAME, "get_friends", e) from e
        return _to_ids(members)

    async def sample_friends(self, member_id: int, max_count: int) -> set[int]:
        """Up to ``max_count`` distinct friends, chosen arbitrarily."""
        if max_count <= 0:
            return set()
        try:
            members = await self.redis.srandmember(self._friends_key(member_id), max_count)
        except RedisError as e:
            raise StoreUnavailable(STORE_NAME, "sample_friends", e) from e
        return _to_ids(members)

    async def batch_sample_friends(
        self,
        member_ids: Sequence[int],
        max_count: int,
        chunk_size: int | None = None,
    ) -> list[set[int]]:
        """Sample friends of many members, one pipeline round-trip per chunk.

        The result list lines up with ``member_ids``.
        """
        chunk_size = chunk_size or self.chunk_size
        results: list[set[int]] = []
        if max_count <= 0:
            return [set() for _ in member_ids]

        try:
            for start in range(0, len(member_ids), chunk_size):
                chunk = member_ids[start:start + chunk_size]
                async with self.redis.pipeline(transaction=False) as pipe:
                    for member_id in chunk:
                        pipe.srandmember(self._friends_key(member_id), max_count)
                    raw = await pipe.execute()
                results.extend(_to_ids(members) for members in raw)
        except RedisError as e:
            raise StoreUnavailable(STORE_NAME, "batch_sample_friends", e) from e
        return results

    async def delete_withdraw_targeted(self, member_id: int) -> int:
        """Remove a withdrawing member from the graph.

        Strips the member out of every friend's set, then deletes the member's
        own set. Cost grows with the member's friend count, so this belongs on
        the withdrawal path only. Returns the number of friend sets touched.
        """
        own_key = self._friends_key(member_id)
        try:
            friend_ids = _to_ids(await self.redis.smembers(own_key))
            friend_list = list(friend_ids)
            for start in range(0, len(friend_list), self.chunk_size):
                chunk = friend_list[start:start + self.chunk_size]
                async with self.redis.pipeline(transaction=False) as pipe:
                    for friend_id in chunk:
                        pipe.srem(self._friends_key(friend_id), member_id)
                    await pipe.execute()
            await self.redis.delete(own_key)
        except RedisError as e:
            raise StoreUnavailable(STORE_NAME, "delete_withdraw_targeted", e) from e

        logger.info("Removed member %s from %d friend sets", member_id, len(friend_ids))
        return len(friend_ids)
