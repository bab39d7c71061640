"""
Product persistence for barcode lookups.
"""

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from spoils.v1.products.models import Product
from spoils.v1.providers.products import ProductRecord

logger = logging.getLogger(__name__)

PRODUCT_FIELDS = (
    "product_name",
    "brands",
    "categories",
    "quantity",
    "image_url",
    "ingredients_text",
    "allergens",
    "full_response",
)


class ProductService:
    """Service for storing and reading products."""

    async def get(self, session: AsyncSession, product_id: int) -> Product | None:
        result = await session.execute(select(Product).where(Product.id == product_id))
        return result.scalar_one_or_none()

    async def get_by_barcode(self, session: AsyncSession, barcode: str) -> Product | None:
        result = await session.execute(
            select(Product)
            .where(Product.barcode == barcode)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def upsert(self, session: AsyncSession, record: ProductRecord) -> Product:
        """
        Insert or refresh a product from a provider record.

        A concurrent insert of the same barcode is resolved by re-reading the
        winner and applying the record to it.
        """
        product = await self.get_by_barcode(session, record.barcode)
        created = product is None
        if product is None:
            product = Product(barcode=record.barcode)
            session.add(product)
        self._apply(product, record)

        try:
            await session.commit()
        except IntegrityError:
            await session.rollback()
            product = await self.get_by_barcode(session, record.barcode)
            if product is None:
                raise
            self._apply(product, record)
            await session.commit()
            created = False

        logger.info(
            "Product stored",
            extra={
                "product_id": product.id,
                "barcode": record.barcode,
                "was_created": created,
            },
        )
        return product

    @staticmethod
    def _apply(product: Product, record: ProductRecord) -> None:
        for field in PRODUCT_FIELDS:
            setattr(product, field, getattr(record, field))
