"""
Module: auction_kernel.models.user
Responsibility: Read-only mapping of the CMS ``users`` table.  The worker
    reads bidder names for published bid results and never writes users.
Architecture position: Kernel > Models.  May import from db/base.py only.
"""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from auction_kernel.db.base import TimestampedBase


class User(TimestampedBase):
    """Marketplace account (bidder, seller, or both)."""

    __tablename__ = "users"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)

    def __repr__(self) -> str:
        return f"<User {self.id}: {self.name}>"
