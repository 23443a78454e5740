"""Price model — mirror of Stripe prices."""

from typing import Any

from sqlalchemy import BigInteger, Boolean, CheckConstraint, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from paysync.database import Base, JSONType, TimestampMixin

PRICING_TYPES = ("one_time", "recurring")
PRICING_INTERVALS = ("day", "week", "month", "year")


class Price(TimestampMixin, Base):
    """A Stripe price; interval fields are set only for recurring prices."""

    __tablename__ = "prices"
    __table_args__ = (
        CheckConstraint(
            "type = 'one_time' OR (interval IS NOT NULL AND interval_count IS NOT NULL)",
            name="recurring_requires_interval",
        ),
    )

    # Stripe price ID (e.g. price_1234)
    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    product_id: Mapped[str] = mapped_column(
        ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    unit_amount: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    type: Mapped[str] = mapped_column(Enum(*PRICING_TYPES, name="pricing_type"), nullable=False)
    interval: Mapped[str | None] = mapped_column(
        Enum(*PRICING_INTERVALS, name="pricing_plan_interval"), nullable=True
    )
    interval_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    trial_period_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    metadata_: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSONType, nullable=False, default=dict
    )

    def __repr__(self) -> str:
        return f"<Price id={self.id!r} product_id={self.product_id!r} type={self.type}>"
