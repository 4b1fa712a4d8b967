"""Interaction score store - decaying, symmetric member-to-member scores in Redis."""

import hashlib
import logging
from collections.abc import Sequence

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from friendrec.config import settings
from friendrec.core.exceptions import StoreUnavailable
from friendrec.schemas.recommendation import ScoreEntry

logger = logging.getLogger(__name__)

STORE_NAME = "interaction"
INTERACTION_PREFIX = "interactions:"
DEDUP_PREFIX = "interaction-dedup:"

# KEYS: score key of a, score key of b, dedup marker
# ARGV: b, a, increment, score limit, dedup ttl
ADD_SCORE_SCRIPT = """
if not redis.call('SET', KEYS[3], '1', 'NX', 'EX', ARGV[5]) then
    return 0
end

local limit = tonumber(ARGV[4])

local current1 = redis.call('ZSCORE', KEYS[1], ARGV[1])
if not current1 or tonumber(current1) <= limit then
    redis.call('ZINCRBY', KEYS[1], ARGV[3], ARGV[1])
end

local current2 = redis.call('ZSCORE', KEYS[2], ARGV[2])
if not current2 or tonumber(current2) <= limit then
    redis.call('ZINCRBY', KEYS[2], ARGV[3], ARGV[2])
end

return 1
"""

# KEYS: one score key
# ARGV: decay rate, removal threshold
DECAY_SCRIPT = """
local rate = tonumber(ARGV[1])
local threshold = tonumber(ARGV[2])
local entries = redis.call('ZRANGE', KEYS[1], '0', '-1', 'WITHSCORES')
for i = 1, #entries, 2 do
    local decayed = tonumber(entries[i + 1]) * rate
    if decayed < threshold then
        redis.call('ZREM', KEYS[1], entries[i])
    else
        redis.call('ZADD', KEYS[1], string.format('%.17g', decayed), entries[i])
    end
end
return redis.call('ZCARD', KEYS[1])
"""


def dedup_marker(member_id: int, target_id: int, dedup_key: str) -> str:
    """Stable marker for one event between an unordered member pair."""
    low, high = sorted((member_id, target_id))
    digest = hashlib.sha256(f"{low}:{high}:{dedup_key}".encode("utf-8")).hexdigest()
    return f"{DEDUP_PREFIX}{digest}"


class InteractionScoreStore:
    """Weighted edges kept on both sides: ``interactions:{memberId}`` is a
    sorted set whose members are counterpart ids and whose scores are the
    accumulated interaction score.
    """

    def __init__(
        self,
        redis: aioredis.Redis,
        increment: float | None = None,
        score_limit: float | None = None,
        dedup_ttl: int | None = None,
        decay_rate: float | None = None,
        decay_threshold: float | None = None,
        chunk_size: int | None = None,
    ):
        self.redis = redis
        self.increment = increment if increment is not None else settings.INTERACTION_SCORE_INCREMENT
        self.score_limit = score_limit if score_limit is not None else settings.INTERACTION_SCORE_LIMIT
        self.dedup_ttl = dedup_ttl or settings.INTERACTION_DEDUP_TTL
        self.decay_rate = decay_rate if decay_rate is not None else settings.DECAY_RATE
        self.decay_threshold = decay_threshold if decay_threshold is not None else settings.DECAY_THRESHOLD
        self.chunk_size = chunk_size or settings.SCORE_BATCH_CHUNK_SIZE

        self._add_script = redis.register_script(ADD_SCORE_SCRIPT)
        self._decay_script = redis.register_script(DECAY_SCRIPT)

    def _score_key(self, member_id: int) -> str:
        return f"{INTERACTION_PREFIX}{member_id}"

    async def add_interaction_score(self, member_id: int, target_id: int, dedup_key: str) -> bool:
        """Raise the pair's score once per dedup key.

        Returns True if the scores were incremented, False if this event was
        already counted (retries and duplicate deliveries land here).

        The dedup marker only lives ``dedup_ttl`` seconds
        (``INTERACTION_DEDUP_TTL``, one hour by default). A redelivery that
        arrives after the marker has expired is counted again.
        """
        if member_id == target_id:
            raise ValueError("A member cannot interact with themselves")

        try:
            result = await self._add_script(
                keys=[
                    self._score_key(member_id),
                    self._score_key(target_id),
                    dedup_marker(member_id, target_id, dedup_key),
                ],
                args=[target_id, member_id, self.increment, self.score_limit, self.dedup_ttl],
            )
        except RedisError as e:
            raise StoreUnavailable(STORE_NAME, "add_interaction_score", e) from e
        return int(result) == 1

    async def get_scores_batch(
        self, member_id: int, target_ids: Sequence[int]
    ) -> list[float | None]:
        """Score of each target against ``member_id``; None where none exists."""
        key = self._score_key(member_id)
        scores: list[float | None] = []
        try:
            for start in range(0, len(target_ids), self.chunk_size):
                chunk = target_ids[start:start + self.chunk_size]
                async with self.redis.pipeline(transaction=False) as pipe:
                    for target_id in chunk:
                        pipe.zscore(key, target_id)
                    raw = await pipe.execute()
                scores.extend(None if value is None else float(value) for value in raw)
        except RedisError as e:
            raise StoreUnavailable(STORE_NAME, "get_scores_batch", e) from e
        return scores

    async def get_top_scores(self, member_id: int, limit: int) -> list[ScoreEntry]:
        """Highest-scored counterparts, best first."""
        if limit <= 0:
            return []
        try:
            raw = await self.redis.zrevrange(self._score_key(member_id), 0, limit - 1, withscores=True)
        except RedisError as e:
            raise StoreUnavailable(STORE_NAME, "get_top_scores", e) from e
        return [ScoreEntry(target_id=int(target), score=float(score)) for target, score in raw]

    async def apply_decay(self) -> int:
        """Decay every member's scores once and drop the ones that fall below threshold.

        Each member collection is decayed by a single script call, so readers
        see either the old or the new value of any score. Returns the number
        of collections processed.
        """
        processed = 0
        try:
            async for key in self.redis.scan_iter(match=f"{INTERACTION_PREFIX}*", count=100):
                await self._decay_script(keys=[key], args=[self.decay_rate, self.decay_threshold])
                processed += 1
        except RedisError as e:
            raise StoreUnavailable(STORE_NAME, "apply_decay", e) from e
        return processed

    async def delete_on_withdraw(self, member_id: int) -> int:
        """Drop a withdrawing member's scores and their entry in every other collection.

        Returns the number of counterpart collections scanned.
        """
        scanned = 0
        try:
            await self.redis.delete(self._score_key(member_id))
            async for key in self.redis.scan_iter(match=f"{INTERACTION_PREFIX}*", count=100):
                await self.redis.zrem(key, member_id)
                scanned += 1
        except RedisError as e:
            raise StoreUnavailable(STORE_NAME, "delete_on_withdraw", e) from e

        logger.info("Removed member %s from %d interaction collections", member_id, scanned)
        return scanned
