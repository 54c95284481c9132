"""
Counter records for atomic identifier allocation.

One row per sequence name. The row is incremented with a single UPDATE, so
the database's row/writer lock serializes concurrent allocations.
"""

from datetime import datetime, timezone

from sqlalchemy import String, DateTime, BigInteger
from sqlalchemy.orm import Mapped, mapped_column

from storefront.database import Base


class IdSequence(Base):
    """Named monotonically increasing counter."""
    __tablename__ = "id_sequences"

    name: Mapped[str] = mapped_column(String(50), primary_key=True)
    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<IdSequence(name='{self.name}', current_value={self.current_value})>"
