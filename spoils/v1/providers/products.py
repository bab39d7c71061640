"""
Barcode product lookups against OpenFoodFacts.
"""

import logging
from typing import Any

import httpx
from pydantic import BaseModel, Field

from spoils.config.settings import Settings
from spoils.v1.core.exceptions import ProviderError

logger = logging.getLogger(__name__)


class ProductRecord(BaseModel):
    """Structured product record from a product data provider."""

    barcode: str
    product_name: str | None = None
    brands: str | None = None
    categories: str | None = None
    quantity: str | None = None
    image_url: str | None = None
    ingredients_text: str | None = None
    allergens: str | None = None
    full_response: dict[str, Any] = Field(default_factory=dict)


def _text(product: dict[str, Any], field: str) -> str | None:
    value = product.get(field)
    return value if isinstance(value, str) and value else None


def parse_product(barcode: str, product: dict[str, Any]) -> ProductRecord:
    """Extract the fields we keep from an OpenFoodFacts product object."""
    return ProductRecord(
        barcode=barcode,
        product_name=_text(product, "product_name"),
        brands=_text(product, "brands"),
        categories=_text(product, "categories"),
        quantity=_text(product, "quantity"),
        image_url=_text(product, "image_url"),
        ingredients_text=_text(product, "ingredients_text"),
        allergens=_text(product, "allergens"),
        full_response=product,
    )


class OpenFoodFactsProvider:
    """OpenFoodFacts v2 product API client."""

    def __init__(self, settings: Settings, client: httpx.AsyncClient | None = None):
        self.settings = settings
        self.base_url = settings.openfoodfacts_base_url.rstrip("/")
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.settings.provider_timeout_s,
                headers={"User-Agent": self.settings.provider_user_agent},
            )
        return self._client

    async def fetch(self, barcode: str) -> ProductRecord | None:
        """
        Fetch a product by barcode.

        Returns None when OpenFoodFacts does not know the barcode; raises
        ProviderError when it cannot be reached or answers with garbage.
        """
        url = f"{self.base_url}/api/v2/product/{barcode}"
        try:
            response = await self._get_client().get(url)
        except httpx.HTTPError as e:
            raise ProviderError(
                f"Failed to query OpenFoodFacts: {e}", {"barcode": barcode}
            ) from e

        if response.status_code == 404:
            logger.info("Product not found", extra={"barcode": barcode})
            return None
        if response.status_code != 200:
            raise ProviderError(
                f"OpenFoodFacts returned {response.status_code}",
                {"barcode": barcode, "status_code": response.status_code},
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderError(
                "Failed to parse OpenFoodFacts response", {"barcode": barcode}
            ) from e

        if not isinstance(data, dict):
            raise ProviderError(
                "Unexpected OpenFoodFacts response", {"barcode": barcode}
            )

        product = data.get("product")
        if data.get("status") != 1 or not isinstance(product, dict):
            logger.info("Product not found", extra={"barcode": barcode})
            return None

        return parse_product(barcode, product)

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
