"""Fakes and helpers shared by the test modules."""

from datetime import timedelta
from uuid import UUID

from sqlalchemy import select, update

from spoils.infra.database import Database, utcnow
from spoils.v1.core.exceptions import ProviderError, StoreUnavailableError
from spoils.v1.infra.jobs.models import Job
from spoils.v1.providers.nutrition import NutritionRecord
from spoils.v1.providers.products import ProductRecord


class FakeProductProvider:
    """In-memory product provider; set ``error`` to simulate an outage."""

    def __init__(self):
        self.products: dict[str, ProductRecord] = {}
        self.error: ProviderError | None = None
        self.calls: list[str] = []

    async def fetch(self, barcode: str) -> ProductRecord | None:
        self.calls.append(barcode)
        if self.error is not None:
            raise self.error
        return self.products.get(barcode)


def nutrition_record(
    description: str,
    ingredients_text: str | None = None,
    **per_100: float,
) -> NutritionRecord:
    """Build a nutrition record for the stub catalog."""
    return NutritionRecord(
        description=description,
        source_id=f"fdc-{description.lower().replace(' ', '-')}",
        branded=ingredients_text is not None,
        per_100=per_100,
        ingredients_text=ingredients_text,
    )


async def all_jobs(database: Database, task_type: str | None = None) -> list[Job]:
    """Read every job row in a fresh session."""
    async with database.SessionLocal() as session:
        query = select(Job).order_by(Job.created_at)
        if task_type:
            query = query.where(Job.task_type == task_type)
        result = await session.execute(query)
        return list(result.scalars().all())


class FlakyQueue:
    """Enqueue handle that loses its store connection on one chosen call."""

    def __init__(self, queue, fail_on: int):
        self.queue = queue
        self.fail_on = fail_on
        self.calls = 0

    async def enqueue(self, task_type, payload=None, *, run_at=None):
        self.calls += 1
        if self.calls == self.fail_on:
            raise StoreUnavailableError("Job store unavailable")
        return await self.queue.enqueue(task_type, payload, run_at=run_at)


async def make_due(database: Database, job_id: UUID) -> None:
    """Pull a job's not_before into the past so the next lease picks it up."""
    async with database.SessionLocal() as session:
        await session.execute(
            update(Job)
            .where(Job.id == job_id)
            .values(not_before=utcnow() - timedelta(seconds=1))
        )
        await session.commit()
