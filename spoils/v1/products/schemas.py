from datetime import datetime

from pydantic import BaseModel, ConfigDict


class ProductResponse(BaseModel):
    """Schema for product API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    barcode: str
    product_name: str | None = None
    brands: str | None = None
    categories: str | None = None
    quantity: str | None = None
    image_url: str | None = None
    ingredients_text: str | None = None
    allergens: str | None = None
    created_at: datetime
    updated_at: datetime
