"""
Nutrition data providers.

Supports two backends: stub (in-memory, for development and testing) and
usda (FoodData Central search API).
"""

import logging
from collections.abc import Mapping
from typing import Any

import httpx
from pydantic import BaseModel, Field

from spoils.config.settings import Settings

logger = logging.getLogger(__name__)

# FoodData Central nutrient numbers for the macro-nutrients we keep
MACRO_NUTRIENT_NUMBERS = {
    "203": "protein",
    "205": "carbs",
    "204": "fat",
    "291": "fiber",
    "605": "trans_fat",
}
MACRO_NUTRIENT_NAMES = {
    "protein": "protein",
    "carbohydrate, by difference": "carbs",
    "total lipid (fat)": "fat",
    "fiber, total dietary": "fiber",
    "fatty acids, total trans": "trans_fat",
}


class NutritionRecord(BaseModel):
    """Best-match nutrition record for a name, with amounts per 100 g."""

    description: str
    source_id: str | None = None
    branded: bool = False
    per_100: dict[str, float] = Field(
        default_factory=dict, description="Macro-nutrient grams per 100 g"
    )
    ingredients_text: str | None = None

    def per_gram(self, nutrient: str) -> float | None:
        """Convert a per-100 figure to grams per gram."""
        value = self.per_100.get(nutrient)
        if value is None:
            return None
        return value / 100


class StubNutritionProvider:
    """
    In-memory nutrition provider.

    Looks names up case-insensitively in a fixed catalog; with no catalog
    every ingredient resolves as basic (no data). No network access.
    """

    def __init__(self, records: Mapping[str, NutritionRecord] | None = None):
        self.records = {
            name.strip().casefold(): record for name, record in (records or {}).items()
        }
        self.calls: list[str] = []

    async def search(self, name: str) -> NutritionRecord | None:
        self.calls.append(name)
        return self.records.get(name.strip().casefold())

    async def aclose(self) -> None:
        return None


def parse_food(food: dict[str, Any]) -> NutritionRecord | None:
    """Build a NutritionRecord from one FoodData Central search hit."""
    if not isinstance(food, dict):
        return None

    description = food.get("description")
    if not isinstance(description, str) or not description.strip():
        return None

    per_100: dict[str, float] = {}
    for nutrient in food.get("foodNutrients") or []:
        if not isinstance(nutrient, dict):
            continue
        key = MACRO_NUTRIENT_NUMBERS.get(str(nutrient.get("nutrientNumber", "")))
        if key is None:
            key = MACRO_NUTRIENT_NAMES.get(str(nutrient.get("nutrientName", "")).lower())
        value = nutrient.get("value")
        if key is None or not isinstance(value, (int, float)):
            continue
        per_100.setdefault(key, float(value))

    ingredients_text = food.get("ingredients")
    if not isinstance(ingredients_text, str) or not ingredients_text.strip():
        ingredients_text = None

    fdc_id = food.get("fdcId")
    return NutritionRecord(
        description=description.strip(),
        source_id=str(fdc_id) if fdc_id is not None else None,
        branded=food.get("dataType") == "Branded",
        per_100=per_100,
        ingredients_text=ingredients_text,
    )


class UsdaNutritionProvider:
    """
    FoodData Central search client.

    Transport errors, non-200 responses, unparseable bodies and empty result
    sets all come back as None.
    """

    def __init__(self, settings: Settings, client: httpx.AsyncClient | None = None):
        self.settings = settings
        self.base_url = settings.usda_base_url.rstrip("/")
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.settings.provider_timeout_s,
                headers={"User-Agent": self.settings.provider_user_agent},
            )
        return self._client

    async def search(self, name: str) -> NutritionRecord | None:
        params = {
            "query": name,
            "pageSize": 1,
            "api_key": self.settings.usda_api_key or "DEMO_KEY",
        }

        try:
            response = await self._get_client().get(
                f"{self.base_url}/foods/search", params=params
            )
        except httpx.HTTPError as e:
            logger.warning(
                "Nutrition lookup failed", extra={"query": name, "error": str(e)}
            )
            return None

        if response.status_code != 200:
            logger.warning(
                "Nutrition lookup returned non-200",
                extra={"query": name, "status_code": response.status_code},
            )
            return None

        try:
            data = response.json()
        except ValueError:
            logger.warning("Nutrition response is not JSON", extra={"query": name})
            return None

        foods = data.get("foods") if isinstance(data, dict) else None
        if not foods:
            logger.info("No nutrition data found", extra={"query": name})
            return None

        return parse_food(foods[0])

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
