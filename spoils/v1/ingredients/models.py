from datetime import datetime

from sqlalchemy import Boolean, Float, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from spoils.infra.database import Base, UTCDateTime, utcnow


class TimestampMixin:
    """Mixin for timestamp fields."""

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, server_default=func.now(), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        server_default=func.now(),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )


class Ingredient(Base, TimestampMixin):
    """Named nutritional entity, unique by case-insensitive name."""

    __tablename__ = "ingredients"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(500), nullable=False)
    name_key: Mapped[str] = mapped_column(
        String(500), nullable=False, unique=True, comment="Normalised name identity"
    )
    branded: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    source_id: Mapped[str | None] = mapped_column(
        Text, comment="Identifier of the matched nutrition record"
    )

    # Macro-nutrients, grams per gram
    gram_protein_per_gram: Mapped[float | None] = mapped_column(Float)
    gram_carbs_per_gram: Mapped[float | None] = mapped_column(Float)
    gram_fat_per_gram: Mapped[float | None] = mapped_column(Float)
    gram_fiber_per_gram: Mapped[float | None] = mapped_column(Float)
    gram_trans_fat_per_gram: Mapped[float | None] = mapped_column(Float)

    ingredients_text: Mapped[str | None] = mapped_column(
        Text, comment="Ingredient statement from the nutrition record"
    )

    # Relationships
    components: Mapped[list["IngredientComponent"]] = relationship(
        back_populates="parent",
        cascade="all, delete-orphan",
        order_by="IngredientComponent.position",
        lazy="selectin",
    )


class IngredientComponent(Base):
    """
    Sub-ingredient reference, by name key.

    The referenced ingredient may not exist yet when the parent is created;
    it is resolved by joining on ingredients.name_key.
    """

    __tablename__ = "ingredient_components"

    parent_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("ingredients.id", ondelete="CASCADE"), primary_key=True
    )
    position: Mapped[int] = mapped_column(Integer, primary_key=True)
    component_key: Mapped[str] = mapped_column(String(500), nullable=False, index=True)
    component_name: Mapped[str] = mapped_column(String(500), nullable=False)

    parent: Mapped["Ingredient"] = relationship(back_populates="components")
