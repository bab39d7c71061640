"""
Job handlers for the registered task types.

This module contains job handlers that implement the JobHandler protocol
and are registered in the job registry for background processing.
"""

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from spoils.config.settings import Settings
from spoils.v1.core.exceptions import ExecutorFailure, ProviderError
from spoils.v1.core.registries import JobQueueHandle, ProductProvider
from spoils.v1.infra.jobs.payloads import (
    ANALYZE_INGREDIENTS,
    AnalyzeIngredientsPayload,
    CleanupPayload,
    CreateIngredientPayload,
    FetchProductPayload,
    SendNotificationPayload,
)
from spoils.v1.infra.jobs.store import JobStore
from spoils.v1.ingredients.service import IngredientService
from spoils.v1.products.service import ProductService

logger = logging.getLogger(__name__)


class FetchProductHandler:
    """
    Job handler that fetches a product by barcode and queues its analysis.

    An unknown barcode is a successful outcome; provider failures are
    retried under the task type's backoff.
    """

    def __init__(self, product_provider: ProductProvider, products: ProductService):
        self.product_provider = product_provider
        self.products = products

    async def handle(
        self,
        session: AsyncSession,
        queue: JobQueueHandle,
        payload: FetchProductPayload,
    ) -> dict[str, Any] | None:
        try:
            record = await self.product_provider.fetch(payload.barcode)
        except ProviderError as e:
            raise ExecutorFailure(e.message, e.details) from e

        if record is None:
            logger.info("Product not found", extra={"barcode": payload.barcode})
            return {"status": "not_found", "barcode": payload.barcode}

        product = await self.products.upsert(session, record)
        analysis = await queue.enqueue(ANALYZE_INGREDIENTS, {"product_id": product.id})

        return {
            "status": "fetched",
            "product_id": product.id,
            "analysis_job_id": str(analysis.job_id),
        }


class AnalyzeIngredientsHandler:
    """
    Job handler that seeds ingredient resolution from a product's statement.

    Payload expected:
    {
        "product_id": 123
    }
    """

    def __init__(self, ingredients: IngredientService, products: ProductService):
        self.ingredients = ingredients
        self.products = products

    async def handle(
        self,
        session: AsyncSession,
        queue: JobQueueHandle,
        payload: AnalyzeIngredientsPayload,
    ) -> dict[str, Any] | None:
        product = await self.products.get(session, payload.product_id)
        if product is None:
            raise ExecutorFailure(
                "Product not found", {"product_id": payload.product_id}
            )

        if not product.ingredients_text:
            logger.info(
                "Product has no ingredient statement",
                extra={"product_id": product.id},
            )
            return {"status": "skipped", "reason": "no_ingredients_text"}

        lookups = await self.ingredients.resolve_statement(
            session, queue, product.ingredients_text
        )

        return {
            "status": "analyzed",
            "product_id": product.id,
            "ingredients": [lookup.name for lookup in lookups],
            "known": sum(1 for lookup in lookups if lookup.available),
            "enqueued": sum(1 for lookup in lookups if lookup.enqueued),
        }


class CreateIngredientHandler:
    """Job handler that creates one ingredient and fans out its parts."""

    def __init__(self, ingredients: IngredientService):
        self.ingredients = ingredients

    async def handle(
        self,
        session: AsyncSession,
        queue: JobQueueHandle,
        payload: CreateIngredientPayload,
    ) -> dict[str, Any] | None:
        return await self.ingredients.create_ingredient(session, queue, payload.name)


class SendNotificationHandler:
    """Job handler that records a notification delivery."""

    async def handle(
        self,
        session: AsyncSession,
        queue: JobQueueHandle,
        payload: SendNotificationPayload,
    ) -> dict[str, Any] | None:
        logger.info(
            "Notification sent",
            extra={
                "user_id": payload.user_id,
                "notification_type": payload.notification_type,
            },
        )
        return {
            "status": "sent",
            "user_id": payload.user_id,
            "notification_type": payload.notification_type,
        }


class CleanupHandler:
    """Job handler for periodic removal of old finished jobs."""

    def __init__(self, settings: Settings, store: JobStore):
        self.settings = settings
        self.store = store

    async def handle(
        self,
        session: AsyncSession,
        queue: JobQueueHandle,
        payload: CleanupPayload,
    ) -> dict[str, Any] | None:
        retention_days = (
            payload.retention_days
            if payload.retention_days is not None
            else self.settings.job_cleanup_after_days
        )
        deleted_count = await self.store.cleanup_old_jobs(session, retention_days)

        logger.info(
            "Job cleanup task completed",
            extra={"deleted_count": deleted_count, "retention_days": retention_days},
        )
        return {"status": "completed", "deleted_count": deleted_count}
