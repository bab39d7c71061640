"""
Enqueue handles passed to job handlers and request code.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from spoils.infra.database import Database
from spoils.v1.infra.jobs.schemas import EnqueueResult
from spoils.v1.infra.jobs.store import JobStore


class JobQueue:
    """
    Enqueue handle that opens its own session per call.

    Handlers receive this so fan-out enqueues commit independently of the
    handler's own unit of work.
    """

    def __init__(
        self, database: Database, store: JobStore, request_id: str | None = None
    ):
        self.database = database
        self.store = store
        self.request_id = request_id

    async def enqueue(
        self,
        task_type: str,
        payload: dict[str, Any] | BaseModel | None = None,
        *,
        run_at: datetime | None = None,
    ) -> EnqueueResult:
        async with self.database.SessionLocal() as session:
            return await self.store.enqueue(
                session,
                task_type,
                payload,
                run_at=run_at,
                request_id=self.request_id,
            )


class SessionJobQueue:
    """Enqueue handle bound to an existing session (HTTP request scope)."""

    def __init__(
        self, session: AsyncSession, store: JobStore, request_id: str | None = None
    ):
        self.session = session
        self.store = store
        self.request_id = request_id

    async def enqueue(
        self,
        task_type: str,
        payload: dict[str, Any] | BaseModel | None = None,
        *,
        run_at: datetime | None = None,
    ) -> EnqueueResult:
        return await self.store.enqueue(
            self.session,
            task_type,
            payload,
            run_at=run_at,
            request_id=self.request_id,
        )
