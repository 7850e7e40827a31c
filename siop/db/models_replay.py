"""SQLAlchemy model for redeemed authorization codes."""

from datetime import datetime

from sqlalchemy import DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column

from siop.db.base import BaseEntity


class ConsumedCodeEntity(BaseEntity):
    """An authorization code that has been redeemed once.

    The primary key on ``code_hash`` is what makes redemption single-use:
    a second insert for the same code violates it.
    """

    __tablename__ = "consumed_codes"

    code_hash: Mapped[str] = mapped_column(String(64), primary_key=True)
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )
    consumed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
