"""Dead-letter storage for friend events that could not be applied to Redis."""

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from friendrec.core.exceptions import StoreUnavailable
from friendrec.models.friend_event_dlq import DlqEventType, DlqStatus, FriendEventDlq

STORE_NAME = "friend-event-dlq"


class FriendEventDlqRepository:
    """Each call runs in its own short session, independent of any request."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def park(
        self,
        event_type: DlqEventType,
        member_id: int,
        target_id: int | None = None,
        dedup_key: str | None = None,
    ) -> int:
        event = FriendEventDlq(
            event_type=event_type,
            member_id=member_id,
            target_id=target_id,
            dedup_key=dedup_key,
            status=DlqStatus.PENDING,
            retry_count=0,
        )
        try:
            async with self.session_factory() as session, session.begin():
                session.add(event)
                await session.flush()
                return event.id
        except SQLAlchemyError as e:
            raise StoreUnavailable(STORE_NAME, "park", e) from e

    async def pending(self, limit: int) -> list[FriendEventDlq]:
        """Oldest pending events first."""
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(FriendEventDlq)
                    .where(FriendEventDlq.status == DlqStatus.PENDING)
                    .order_by(FriendEventDlq.id)
                    .limit(limit)
                )
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise StoreUnavailable(STORE_NAME, "pending", e) from e

    async def mark_processed(self, event_id: int) -> None:
        try:
            async with self.session_factory() as session, session.begin():
                event = await session.get(FriendEventDlq, event_id)
                if event is not None:
                    event.status = DlqStatus.PROCESSED
        except SQLAlchemyError as e:
            raise StoreUnavailable(STORE_NAME, "mark_processed", e) from e

    async def mark_retry(self, event_id: int, max_retries: int) -> DlqStatus | None:
        """Count a failed replay; the event becomes FAILED once it reaches ``max_retries``."""
        try:
            async with self.session_factory() as session, session.begin():
                event = await session.get(FriendEventDlq, event_id)
                if event is None:
                    return None
                event.retry_count += 1
                if event.retry_count >= max_retries:
                    event.status = DlqStatus.FAILED
                return event.status
        except SQLAlchemyError as e:
            raise StoreUnavailable(STORE_NAME, "mark_retry", e) from e
