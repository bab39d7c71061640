"""
Task types and their payload models.

The set is closed: each task type has exactly one payload model, and the
registry resolves both from the job's task_type column.
"""

from pydantic import BaseModel, Field, field_validator

from spoils.v1.ingredients.decomposition import clean_name

FETCH_PRODUCT = "fetch_product"
ANALYZE_INGREDIENTS = "analyze_ingredients"
CREATE_INGREDIENT = "create_ingredient"
SEND_NOTIFICATION = "send_notification"
CLEANUP = "cleanup"


class FetchProductPayload(BaseModel):
    barcode: str = Field(..., min_length=1, max_length=255)

    @field_validator("barcode")
    @classmethod
    def strip_barcode(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("barcode must not be blank")
        return value


class AnalyzeIngredientsPayload(BaseModel):
    product_id: int


class CreateIngredientPayload(BaseModel):
    name: str = Field(..., max_length=500)

    @field_validator("name")
    @classmethod
    def clean(cls, value: str) -> str:
        value = clean_name(value)
        if not value:
            raise ValueError("name must not be blank")
        return value


class SendNotificationPayload(BaseModel):
    user_id: int
    notification_type: str = Field(..., min_length=1)
    message: str


class CleanupPayload(BaseModel):
    retention_days: int | None = Field(default=None, ge=0)
