"""
Job registry initialization.

Builds the closed set of task types with their payload models, handlers and
policies, then freezes the registry.
"""

import logging

from fastapi import Depends

from spoils.config.settings import Settings, get_settings
from spoils.v1.core.registries import (
    JobDefinition,
    JobPolicy,
    JobRegistry,
    NutritionProvider,
    ProductProvider,
    exponential_backoff,
)
from spoils.v1.infra.jobs.handlers import (
    AnalyzeIngredientsHandler,
    CleanupHandler,
    CreateIngredientHandler,
    FetchProductHandler,
    SendNotificationHandler,
)
from spoils.v1.infra.jobs.payloads import (
    ANALYZE_INGREDIENTS,
    CLEANUP,
    CREATE_INGREDIENT,
    FETCH_PRODUCT,
    SEND_NOTIFICATION,
    AnalyzeIngredientsPayload,
    CleanupPayload,
    CreateIngredientPayload,
    FetchProductPayload,
    SendNotificationPayload,
)
from spoils.v1.infra.jobs.store import JobStore
from spoils.v1.ingredients.decomposition import normalize_name
from spoils.v1.ingredients.service import IngredientService
from spoils.v1.products.service import ProductService
from spoils.v1.providers.registry_init import (
    build_nutrition_provider,
    build_product_provider,
)

logger = logging.getLogger(__name__)

CLEANUP_SCHEDULE = "0 2 * * *"


def build_job_registry(
    settings: Settings,
    nutrition_provider: NutritionProvider | None = None,
    product_provider: ProductProvider | None = None,
) -> JobRegistry:
    """Register all task types and return the frozen registry."""

    logger.info("Registering job handlers")

    registry = JobRegistry()
    store = JobStore(settings, registry)
    products = ProductService()
    ingredients = IngredientService(
        settings, nutrition_provider or build_nutrition_provider(settings)
    )

    # Product flow
    registry.add(
        JobDefinition(
            task_type=FETCH_PRODUCT,
            payload_model=FetchProductPayload,
            handler=FetchProductHandler(
                product_provider or build_product_provider(settings), products
            ),
            policy=JobPolicy(
                max_retries=3, backoff=exponential_backoff(60), unique=True
            ),
        )
    )

    registry.add(
        JobDefinition(
            task_type=ANALYZE_INGREDIENTS,
            payload_model=AnalyzeIngredientsPayload,
            handler=AnalyzeIngredientsHandler(ingredients, products),
            policy=JobPolicy(max_retries=2, unique=True),
        )
    )

    # Ingredient resolution; one job per case-insensitive name
    registry.add(
        JobDefinition(
            task_type=CREATE_INGREDIENT,
            payload_model=CreateIngredientPayload,
            handler=CreateIngredientHandler(ingredients),
            policy=JobPolicy(max_retries=3, unique=True),
            unique_by=lambda payload: {"name": normalize_name(payload.name)},
        )
    )

    registry.add(
        JobDefinition(
            task_type=SEND_NOTIFICATION,
            payload_model=SendNotificationPayload,
            handler=SendNotificationHandler(),
            policy=JobPolicy(max_retries=5),
        )
    )

    # Maintenance
    registry.add(
        JobDefinition(
            task_type=CLEANUP,
            payload_model=CleanupPayload,
            handler=CleanupHandler(settings, store),
            policy=JobPolicy(max_retries=1, unique=True, cron=CLEANUP_SCHEDULE),
        )
    )

    registry.freeze()

    logger.info(
        "Job handlers registered", extra={"registered_handlers": registry.list()}
    )
    return registry


_job_registry: JobRegistry | None = None


def get_job_registry(settings: Settings = Depends(get_settings)) -> JobRegistry:
    """Get or build the process-wide job registry."""
    global _job_registry
    if _job_registry is None:
        _job_registry = build_job_registry(settings)
    return _job_registry


def get_job_store(
    settings: Settings = Depends(get_settings),
    registry: JobRegistry = Depends(get_job_registry),
) -> JobStore:
    """Dependency injection for the job store."""
    return JobStore(settings, registry)
