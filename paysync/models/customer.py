"""Customer model — maps a local user to its Stripe customer."""

import uuid

from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from paysync.database import Base, TimestampMixin, UUIDPrimaryKeyMixin


class Customer(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """One Stripe customer per user (UNIQUE on user_id), updated in place."""

    __tablename__ = "customers"

    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
        index=True,
    )
    stripe_customer_id: Mapped[str] = mapped_column(
        String(255), unique=True, nullable=False, index=True
    )

    def __repr__(self) -> str:
        return f"<Customer user_id={self.user_id} stripe_customer_id={self.stripe_customer_id!r}>"
