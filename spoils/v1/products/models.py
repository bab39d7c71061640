from typing import Any

from sqlalchemy import JSON, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from spoils.infra.database import Base
from spoils.v1.ingredients.models import TimestampMixin


class Product(Base, TimestampMixin):
    """Packaged product fetched by barcode."""

    __tablename__ = "products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    barcode: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    product_name: Mapped[str | None] = mapped_column(Text)
    brands: Mapped[str | None] = mapped_column(Text)
    categories: Mapped[str | None] = mapped_column(Text)
    quantity: Mapped[str | None] = mapped_column(String(255))
    image_url: Mapped[str | None] = mapped_column(Text)
    ingredients_text: Mapped[str | None] = mapped_column(Text)
    allergens: Mapped[str | None] = mapped_column(Text)
    full_response: Mapped[dict[str, Any] | None] = mapped_column(
        JSON, comment="Raw provider product object"
    )
