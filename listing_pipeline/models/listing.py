import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import DateTime

from listing_pipeline.models.base import AuditMixin, Base, JsonType


def gen_listing_id() -> str:
    return str(uuid.uuid4())


class Listing(AuditMixin, Base):
    """
    Row in the system of record. Written directly only by the fallback path;
    the async job service owns writes otherwise.
    """
    __tablename__ = "listings"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=gen_listing_id)
    user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    price: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=0)

    # human path ("Elektronik > Telefon") plus resolved ids
    category: Mapped[str] = mapped_column(String(300), nullable=False, default="")
    category_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    category_path: Mapped[list | None] = mapped_column(JsonType, nullable=True)

    location: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    images: Mapped[list] = mapped_column(JsonType, nullable=False, default=list)
    main_image_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    attributes: Mapped[dict | None] = mapped_column(JsonType, nullable=True)
    condition: Mapped[list] = mapped_column(JsonType, nullable=False, default=list)
    urgency: Mapped[str] = mapped_column(String(20), nullable=False, default="medium")
    geolocation: Mapped[str | None] = mapped_column(String(120), nullable=True)

    is_featured: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_urgent_premium: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_showcase: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # "pending_approval" | "active" | "rejected" | ...
    status: Mapped[str] = mapped_column(String(30), nullable=False, default="pending_approval", index=True)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
