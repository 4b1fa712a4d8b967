"""Friendship model - the relational record of accepted friendships.

One row per friendship; either column may hold either member. The Redis
friend sets are a cache of this table.
"""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from friendrec.db.database import Base


class Friendship(Base):
    __tablename__ = "friendship"
    __table_args__ = (UniqueConstraint("member_id", "friend_id"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    member_id: Mapped[int] = mapped_column(ForeignKey("members.id"), index=True)
    friend_id: Mapped[int] = mapped_column(ForeignKey("members.id"), index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
