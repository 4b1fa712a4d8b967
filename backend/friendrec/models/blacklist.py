"""Blacklist model - members a member has blocked."""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from friendrec.db.database import Base


class MemberBlacklist(Base):
    __tablename__ = "member_blacklist"
    __table_args__ = (UniqueConstraint("request_member_id", "black_member_id"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    request_member_id: Mapped[int] = mapped_column(ForeignKey("members.id"), index=True)
    black_member_id: Mapped[int] = mapped_column(ForeignKey("members.id"))

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
