"""
Ingredient resolution workflow built on the job engine.

Resolution is a non-atomic check-then-act across the ingredients table and
the job store: between "not found" and the create_ingredient job's
uniqueness key being registered, a concurrent caller may also miss. The
job store's uniqueness constraint collapses those callers onto one job, and
the unique name_key on ingredients turns any remaining duplicate insert into
a recoverable conflict.
"""

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from spoils.config.settings import Settings
from spoils.v1.core.exceptions import ValidationError
from spoils.v1.core.registries import JobQueueHandle, NutritionProvider
from spoils.v1.infra.jobs.payloads import CREATE_INGREDIENT
from spoils.v1.ingredients.decomposition import (
    clean_name,
    normalize_name,
    split_ingredient_statement,
)
from spoils.v1.ingredients.models import Ingredient, IngredientComponent
from spoils.v1.ingredients.schemas import ComponentResponse, IngredientLookup
from spoils.v1.providers.nutrition import NutritionRecord

logger = logging.getLogger(__name__)


class IngredientService:
    """Service for finding, creating and decomposing ingredients."""

    def __init__(self, settings: Settings, nutrition_provider: NutritionProvider):
        self.settings = settings
        self.nutrition_provider = nutrition_provider

    async def find_by_name(self, session: AsyncSession, name: str) -> Ingredient | None:
        """Case-insensitive lookup by name."""
        result = await session.execute(
            select(Ingredient).where(Ingredient.name_key == normalize_name(name))
        )
        return result.scalar_one_or_none()

    async def find_or_enqueue_creation(
        self, session: AsyncSession, queue: JobQueueHandle, name: str
    ) -> IngredientLookup:
        """
        Return the ingredient's id if it exists, otherwise enqueue its creation.

        Concurrent callers for the same missing name collapse onto one
        create_ingredient job through its uniqueness key.
        """
        display_name = clean_name(name)
        if not display_name:
            raise ValidationError("Ingredient name must not be empty")

        existing = await self.find_by_name(session, display_name)
        if existing:
            return IngredientLookup(name=existing.name, ingredient_id=existing.id)

        result = await queue.enqueue(CREATE_INGREDIENT, {"name": display_name})
        return IngredientLookup(
            name=display_name,
            job_id=result.job_id,
            enqueued=True,
            deduplicated=result.deduplicated,
        )

    async def resolve_statement(
        self, session: AsyncSession, queue: JobQueueHandle, statement: str
    ) -> list[IngredientLookup]:
        """Find-or-enqueue every ingredient named in a free-text statement."""
        lookups = []
        for fragment in split_ingredient_statement(statement):
            lookups.append(await self.find_or_enqueue_creation(session, queue, fragment))
        return lookups

    async def create_ingredient(
        self, session: AsyncSession, queue: JobQueueHandle, name: str
    ) -> dict[str, Any]:
        """
        Create one ingredient from the nutrition source and fan out its parts.

        Each name in the matched record's ingredient statement goes through
        find-or-enqueue, with no cycle detection: the uniqueness key and the
        existing-ingredient check are what bound the recursion.

        The row is committed before the fan-out, so a retried job that finds
        its ingredient already stored replays the fan-out over the stored
        components instead of assuming every part was enqueued.
        """
        display_name = clean_name(name)
        name_key = normalize_name(display_name)

        existing = await self.find_by_name(session, display_name)
        if existing:
            logger.info(
                "Ingredient already exists",
                extra={"ingredient_id": existing.id, "ingredient_name": existing.name},
            )
            return await self._existing_result(session, queue, existing)

        record = await self.nutrition_provider.search(display_name)
        components = (
            split_ingredient_statement(record.ingredients_text) if record else []
        )

        ingredient = Ingredient(name=display_name, name_key=name_key, branded=False)
        if record:
            self._apply_nutrition(ingredient, record)
        ingredient.components = self._build_components(components)

        try:
            session.add(ingredient)
            await session.commit()
        except IntegrityError:
            # A racing job created the same name first
            await session.rollback()
            winner = await self.find_by_name(session, display_name)
            logger.info(
                "Ingredient created concurrently",
                extra={
                    "ingredient_name": display_name,
                    "ingredient_id": winner.id if winner else None,
                },
            )
            if winner is None:
                raise
            return await self._existing_result(session, queue, winner)

        logger.info(
            "Ingredient created",
            extra={
                "ingredient_id": ingredient.id,
                "ingredient_name": display_name,
                "has_nutrition": record is not None,
                "component_count": len(components),
            },
        )

        # Committed above, so fan-out enqueues never wait on this session
        lookups = await self._fan_out(session, queue, components)

        return {
            "status": "created",
            "ingredient_id": ingredient.id,
            "has_nutrition": record is not None,
            "sub_ingredients": components,
            **self._fan_out_counts(lookups),
        }

    async def _existing_result(
        self, session: AsyncSession, queue: JobQueueHandle, ingredient: Ingredient
    ) -> dict[str, Any]:
        names = [component.component_name for component in ingredient.components]
        lookups = await self._fan_out(session, queue, names)
        return {
            "status": "exists",
            "ingredient_id": ingredient.id,
            **self._fan_out_counts(lookups),
        }

    async def _fan_out(
        self, session: AsyncSession, queue: JobQueueHandle, names: list[str]
    ) -> list[IngredientLookup]:
        return [
            await self.find_or_enqueue_creation(session, queue, component)
            for component in names
        ]

    @staticmethod
    def _fan_out_counts(lookups: list[IngredientLookup]) -> dict[str, int]:
        return {
            "enqueued": sum(1 for lookup in lookups if lookup.enqueued and not lookup.deduplicated),
            "deduplicated": sum(1 for lookup in lookups if lookup.deduplicated),
        }

    def _apply_nutrition(self, ingredient: Ingredient, record: NutritionRecord) -> None:
        ingredient.branded = record.branded
        ingredient.source_id = record.source_id
        ingredient.ingredients_text = record.ingredients_text
        ingredient.gram_protein_per_gram = record.per_gram("protein")
        ingredient.gram_carbs_per_gram = record.per_gram("carbs")
        ingredient.gram_fat_per_gram = record.per_gram("fat")
        ingredient.gram_fiber_per_gram = record.per_gram("fiber")
        ingredient.gram_trans_fat_per_gram = record.per_gram("trans_fat")

    def _build_components(self, names: list[str]) -> list[IngredientComponent]:
        components = []
        seen: set[str] = set()
        for name in names:
            key = normalize_name(name)
            if key in seen:
                continue
            seen.add(key)
            components.append(
                IngredientComponent(
                    position=len(components), component_key=key, component_name=name
                )
            )
        return components

    async def sub_ingredients(
        self, session: AsyncSession, ingredient: Ingredient
    ) -> list[ComponentResponse]:
        """Parts of an ingredient, in statement order; unresolved parts have no id."""
        result = await session.execute(
            select(IngredientComponent.component_name, Ingredient.id)
            .outerjoin(Ingredient, Ingredient.name_key == IngredientComponent.component_key)
            .where(IngredientComponent.parent_id == ingredient.id)
            .order_by(IngredientComponent.position)
        )
        return [
            ComponentResponse(name=name, ingredient_id=ingredient_id)
            for name, ingredient_id in result.all()
        ]

    async def parent_ingredients(
        self, session: AsyncSession, ingredient: Ingredient
    ) -> list[ComponentResponse]:
        """Ingredients whose statement names this one (back-references only)."""
        result = await session.execute(
            select(Ingredient.name, Ingredient.id)
            .join(IngredientComponent, IngredientComponent.parent_id == Ingredient.id)
            .where(IngredientComponent.component_key == ingredient.name_key)
            .order_by(Ingredient.id)
        )
        return [
            ComponentResponse(name=name, ingredient_id=parent_id)
            for name, parent_id in result.all()
        ]
