"""Product model — mirror of Stripe products."""

from typing import Any

from sqlalchemy import Boolean, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from paysync.database import Base, JSONType, TimestampMixin


class Product(TimestampMixin, Base):
    """A Stripe product. Deleting one only flips ``active`` to False."""

    __tablename__ = "products"

    # Stripe product ID (e.g. prod_1234)
    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    image: Mapped[str | None] = mapped_column(Text, nullable=True)
    metadata_: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSONType, nullable=False, default=dict
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id!r} name={self.name!r} active={self.active}>"
