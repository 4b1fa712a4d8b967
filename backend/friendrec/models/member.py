"""Member model - the read-only slice of the member table used for recommendations."""

from datetime import datetime

from sqlalchemy import String, DateTime, func
from sqlalchemy.orm import Mapped, mapped_column

from friendrec.db.database import Base


class Member(Base):
    __tablename__ = "members"

    id: Mapped[int] = mapped_column(primary_key=True)
    nickname: Mapped[str] = mapped_column(String(100))

    # Newest members fill short recommendation pages
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), index=True)
