"""
Ingredient resolution API endpoints.
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from spoils.config.settings import Settings, SettingsDep
from spoils.infra.database import get_session
from spoils.v1.core.exceptions import NotFoundError, create_success_response
from spoils.v1.core.registries import NutritionProvider
from spoils.v1.infra.jobs.queue import SessionJobQueue
from spoils.v1.infra.jobs.registry_init import get_job_store
from spoils.v1.infra.jobs.store import JobStore
from spoils.v1.ingredients.schemas import IngredientResponse, ResolveRequest
from spoils.v1.ingredients.service import IngredientService
from spoils.v1.providers.registry_init import get_nutrition_provider

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/ingredients", tags=["ingredients"])


def get_ingredient_service(
    settings: Settings = SettingsDep,
    nutrition_provider: NutritionProvider = Depends(get_nutrition_provider),
) -> IngredientService:
    return IngredientService(settings, nutrition_provider)


@router.post("/resolve", response_model=dict)
async def resolve_ingredients(
    resolve_request: ResolveRequest,
    request: Request,
    session: AsyncSession = Depends(get_session),
    store: JobStore = Depends(get_job_store),
    service: IngredientService = Depends(get_ingredient_service),
) -> dict[str, Any]:
    """
    Find ingredients by name, enqueueing creation for any that are unknown.

    Accepts either a single name or a free-text ingredient statement.
    """
    request_id = getattr(request.state, "request_id", None)
    queue = SessionJobQueue(session, store, request_id)

    if resolve_request.name:
        lookups = [
            await service.find_or_enqueue_creation(session, queue, resolve_request.name)
        ]
    else:
        lookups = await service.resolve_statement(session, queue, resolve_request.text)

    logger.info(
        "Ingredients resolved via API",
        extra={
            "count": len(lookups),
            "enqueued": sum(1 for lookup in lookups if lookup.enqueued),
        },
    )

    return create_success_response(
        data={"ingredients": [lookup.model_dump(mode="json") for lookup in lookups]},
        request_id=request_id,
    )


@router.get("/{name}", response_model=dict)
async def get_ingredient(
    name: str,
    session: AsyncSession = Depends(get_session),
    service: IngredientService = Depends(get_ingredient_service),
) -> dict[str, Any]:
    """Get an ingredient by case-insensitive name, with sub and parent names."""
    ingredient = await service.find_by_name(session, name)
    if not ingredient:
        raise NotFoundError("Ingredient not found", {"name": name})

    response = IngredientResponse.model_validate(ingredient)
    response.sub_ingredients = await service.sub_ingredients(session, ingredient)
    response.parent_ingredients = await service.parent_ingredients(session, ingredient)

    return create_success_response(data=response.model_dump(mode="json"))
