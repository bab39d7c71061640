"""
Initialize provider registries.

Registers nutrition provider factories and builds the configured providers.
"""

from fastapi import Depends

from spoils.config.settings import Settings, get_settings
from spoils.v1.core.exceptions import ConfigurationError
from spoils.v1.core.registries import (
    NutritionProvider,
    ProductProvider,
    nutrition_provider_registry,
)
from spoils.v1.providers.nutrition import StubNutritionProvider, UsdaNutritionProvider
from spoils.v1.providers.products import OpenFoodFactsProvider


def init_nutrition_provider_registry() -> None:
    """Register available nutrition provider factories."""
    if nutrition_provider_registry.is_frozen():
        return

    nutrition_provider_registry.register("stub", lambda settings: StubNutritionProvider())
    nutrition_provider_registry.register("usda", UsdaNutritionProvider)
    nutrition_provider_registry.freeze()


def build_nutrition_provider(settings: Settings) -> NutritionProvider:
    """Instantiate the nutrition provider selected by settings."""
    init_nutrition_provider_registry()

    try:
        factory = nutrition_provider_registry.get(settings.nutrition_provider.value)
    except KeyError as e:
        raise ConfigurationError(
            f"Configured nutrition provider '{settings.nutrition_provider.value}' "
            f"not available. Available providers: {nutrition_provider_registry.list()}"
        ) from e

    return factory(settings)


def build_product_provider(settings: Settings) -> ProductProvider:
    """Instantiate the product provider."""
    return OpenFoodFactsProvider(settings)


_nutrition_provider: NutritionProvider | None = None


def get_nutrition_provider(settings: Settings = Depends(get_settings)) -> NutritionProvider:
    """Get or build the process-wide nutrition provider."""
    global _nutrition_provider
    if _nutrition_provider is None:
        _nutrition_provider = build_nutrition_provider(settings)
    return _nutrition_provider
