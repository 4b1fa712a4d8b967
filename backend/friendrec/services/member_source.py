"""Relational collaborators of the recommendation engine: blacklist, recent members, friendships."""

from collections.abc import Collection
from typing import Protocol

from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from friendrec.core.exceptions import BlacklistCheckFailed, StoreUnavailable
from friendrec.models.blacklist import MemberBlacklist
from friendrec.models.friendship import Friendship
from friendrec.models.member import Member

STORE_NAME = "members"
FRIENDSHIP_STORE_NAME = "friendship-db"

# Keeps IN (...) lists well under driver parameter limits
IN_CLAUSE_CHUNK_SIZE = 500


class BlacklistGate(Protocol):
    async def blocked_ids(self, requester_id: int, candidate_ids: Collection[int]) -> set[int]:
        """Subset of ``candidate_ids`` the requester has blocked."""
        ...


class RecentMemberSource(Protocol):
    async def exists(self, member_id: int) -> bool:
        ...

    async def fetch_recent(self, exclude_ids: Collection[int], count: int) -> list[int]:
        """Newest members first, skipping ``exclude_ids``.

        Implementations raise StoreUnavailable when the source cannot be read.
        """
        ...


class FriendSource(Protocol):
    """Read-only friendship lookups, used when the Redis graph cannot be read."""

    async def friend_ids(self, member_id: int, limit: int | None = None) -> set[int]:
        ...

    async def friend_ids_batch(self, member_ids: list[int], limit: int | None = None) -> list[set[int]]:
        """One set per input id, in input order. Raises StoreUnavailable."""
        ...


class SqlBlacklistGate:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def blocked_ids(self, requester_id: int, candidate_ids: Collection[int]) -> set[int]:
        ids = list(candidate_ids)
        blocked: set[int] = set()
        try:
            for start in range(0, len(ids), IN_CLAUSE_CHUNK_SIZE):
                chunk = ids[start:start + IN_CLAUSE_CHUNK_SIZE]
                result = await self.db.execute(
                    select(MemberBlacklist.black_member_id)
                    .where(MemberBlacklist.request_member_id == requester_id)
                    .where(MemberBlacklist.black_member_id.in_(chunk))
                )
                blocked.update(result.scalars().all())
        except SQLAlchemyError as e:
            raise BlacklistCheckFailed(requester_id, e) from e
        return blocked


class SqlRecentMemberSource:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def exists(self, member_id: int) -> bool:
        try:
            result = await self.db.execute(select(Member.id).where(Member.id == member_id))
        except SQLAlchemyError as e:
            raise StoreUnavailable(STORE_NAME, "exists", e) from e
        return result.scalar_one_or_none() is not None

    async def fetch_recent(self, exclude_ids: Collection[int], count: int) -> list[int]:
        if count <= 0:
            return []
        stmt = select(Member.id).order_by(Member.created_at.desc(), Member.id.desc()).limit(count)
        if exclude_ids:
            stmt = stmt.where(Member.id.not_in(list(exclude_ids)))
        try:
            result = await self.db.execute(stmt)
        except SQLAlchemyError as e:
            raise StoreUnavailable(STORE_NAME, "fetch_recent", e) from e
        return list(result.scalars().all())


class SqlFriendSource:
    """Friend lookups against the ``friendship`` table (rows are stored once per pair)."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def friend_ids(self, member_id: int, limit: int | None = None) -> set[int]:
        return (await self.friend_ids_batch([member_id], limit))[0]

    async def friend_ids_batch(self, member_ids: list[int], limit: int | None = None) -> list[set[int]]:
        friends: dict[int, set[int]] = {member_id: set() for member_id in member_ids}
        ids = list(friends)
        try:
            for start in range(0, len(ids), IN_CLAUSE_CHUNK_SIZE):
                chunk = ids[start:start + IN_CLAUSE_CHUNK_SIZE]
                result = await self.db.execute(
                    select(Friendship.member_id, Friendship.friend_id).where(
                        or_(Friendship.member_id.in_(chunk), Friendship.friend_id.in_(chunk))
                    )
                )
                for left, right in result.all():
                    if left in friends:
                        friends[left].add(right)
                    if right in friends:
                        friends[right].add(left)
        except SQLAlchemyError as e:
            raise StoreUnavailable(FRIENDSHIP_STORE_NAME, "friend_ids", e) from e

        if limit is not None:
            for member_id, found in friends.items():
                if len(found) > limit:
                    friends[member_id] = set(sorted(found)[:limit])
        return [set(friends[member_id]) for member_id in member_ids]
