from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator


class IngredientLookup(BaseModel):
    """
    Result of a find-or-enqueue lookup.

    Either ``ingredient_id`` is set (already known), or ``job_id`` points at
    the create_ingredient job that will produce it.
    """

    name: str
    ingredient_id: int | None = None
    job_id: UUID | None = None
    enqueued: bool = False
    deduplicated: bool = False

    @property
    def available(self) -> bool:
        return self.ingredient_id is not None


class ResolveRequest(BaseModel):
    """Resolve a single ingredient name or a whole ingredient statement."""

    name: str | None = Field(default=None, description="Single ingredient name")
    text: str | None = Field(default=None, description="Free-text ingredient statement")

    @model_validator(mode="after")
    def check_one_input(self) -> "ResolveRequest":
        if bool(self.name) == bool(self.text):
            raise ValueError("Provide exactly one of 'name' or 'text'")
        return self


class ComponentResponse(BaseModel):
    name: str
    ingredient_id: int | None = None


class IngredientResponse(BaseModel):
    """Schema for ingredient API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    branded: bool
    source_id: str | None = None
    gram_protein_per_gram: float | None = None
    gram_carbs_per_gram: float | None = None
    gram_fat_per_gram: float | None = None
    gram_fiber_per_gram: float | None = None
    gram_trans_fat_per_gram: float | None = None
    ingredients_text: str | None = None
    sub_ingredients: list[ComponentResponse] = Field(default_factory=list)
    parent_ingredients: list[ComponentResponse] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime
