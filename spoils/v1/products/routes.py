"""
Product lookup API endpoints.
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from spoils.infra.database import get_session
from spoils.v1.core.exceptions import NotFoundError, create_success_response
from spoils.v1.infra.jobs.payloads import FETCH_PRODUCT
from spoils.v1.infra.jobs.registry_init import get_job_store
from spoils.v1.infra.jobs.store import JobStore
from spoils.v1.products.schemas import ProductResponse
from spoils.v1.products.service import ProductService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/products", tags=["products"])


@router.post("/{barcode}/fetch", response_model=dict)
async def fetch_product(
    barcode: str,
    request: Request,
    session: AsyncSession = Depends(get_session),
    store: JobStore = Depends(get_job_store),
) -> dict[str, Any]:
    """Enqueue a fetch of the product behind a barcode."""
    request_id = getattr(request.state, "request_id", None)

    result = await store.enqueue(
        session, FETCH_PRODUCT, {"barcode": barcode}, request_id=request_id
    )

    logger.info(
        "Product fetch enqueued via API",
        extra={
            "barcode": barcode,
            "job_id": str(result.job_id),
            "deduplicated": result.deduplicated,
        },
    )

    return create_success_response(
        data=result.model_dump(mode="json"), request_id=request_id
    )


@router.get("/{barcode}", response_model=dict)
async def get_product(
    barcode: str,
    session: AsyncSession = Depends(get_session),
) -> dict[str, Any]:
    """Get a stored product by barcode."""
    product = await ProductService().get_by_barcode(session, barcode)
    if not product:
        raise NotFoundError("Product not found", {"barcode": barcode})

    return create_success_response(
        data=ProductResponse.model_validate(product).model_dump(mode="json")
    )
