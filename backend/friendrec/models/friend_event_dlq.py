"""Friend event dead-letter queue - graph/score writes that failed against Redis."""

import enum
from datetime import datetime

from sqlalchemy import String, Integer, DateTime, Enum, func
from sqlalchemy.orm import Mapped, mapped_column

from friendrec.db.database import Base


class DlqEventType(str, enum.Enum):
    FRIEND_ADD = "FRIEND_ADD"
    FRIEND_REMOVE = "FRIEND_REMOVE"
    SCORE_UP = "SCORE_UP"
    MEMBER_WITHDRAW = "MEMBER_WITHDRAW"


class DlqStatus(str, enum.Enum):
    PENDING = "PENDING"
    PROCESSED = "PROCESSED"
    FAILED = "FAILED"  # gave up after the retry limit


class FriendEventDlq(Base):
    __tablename__ = "friend_event_dlq"

    id: Mapped[int] = mapped_column(primary_key=True)
    event_type: Mapped[DlqEventType] = mapped_column(Enum(DlqEventType, native_enum=False, length=20))
    member_id: Mapped[int] = mapped_column(Integer)
    target_id: Mapped[int | None] = mapped_column(Integer, nullable=True)  # unset for withdrawals
    dedup_key: Mapped[str | None] = mapped_column(String(200), nullable=True)  # SCORE_UP only

    status: Mapped[DlqStatus] = mapped_column(
        Enum(DlqStatus, native_enum=False, length=20), default=DlqStatus.PENDING, index=True
    )
    retry_count: Mapped[int] = mapped_column(Integer, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )
