from dataclasses import dataclass, field
from datetime import timedelta
from typing import TYPE_CHECKING, Any, Callable, Generic, Protocol, TypeVar

from croniter import croniter
from pydantic import BaseModel

from spoils.v1.core.exceptions import ConfigurationError, UnknownJobTypeError

if TYPE_CHECKING:
    from spoils.v1.providers.nutrition import NutritionRecord
    from spoils.v1.providers.products import ProductRecord

# Base registry implementation
T = TypeVar("T")


class Registry(Generic[T]):
    """Generic registry for pluggable implementations."""

    def __init__(self, name: str):
        self.name = name
        self._implementations: dict[str, T] = {}
        self._frozen = False

    def register(self, name: str, implementation: T) -> None:
        """Register an implementation with a given name."""
        if self._frozen:
            raise RuntimeError(
                f"Cannot register '{name}' in {self.name.lower()} registry: "
                "registry is frozen"
            )
        self._implementations[name] = implementation

    def get(self, name: str) -> T:
        """Get an implementation by name."""
        if name not in self._implementations:
            raise KeyError(
                f"No {self.name.lower()} implementation registered with name: {name}"
            )
        return self._implementations[name]

    def list(self) -> list[str]:
        """List all registered implementation names."""
        return list(self._implementations.keys())

    def __contains__(self, name: object) -> bool:
        return name in self._implementations

    def freeze(self) -> None:
        """Freeze the registry to prevent further modifications."""
        self._frozen = True

    def is_frozen(self) -> bool:
        """Check if the registry is frozen."""
        return self._frozen


# Provider Registry - external nutrition data sources
class NutritionProvider(Protocol):
    """Protocol for nutrition data sources."""

    async def search(self, name: str) -> "NutritionRecord | None":
        """
        Return the best textual match for an ingredient name.

        Non-200 responses, parse failures and empty result sets all
        return None; "no data" is never an error.
        """
        ...


class ProductProvider(Protocol):
    """Protocol for barcode product lookups."""

    async def fetch(self, barcode: str) -> "ProductRecord | None":
        """Return the product for a barcode, or None when it is unknown."""
        ...


class NutritionProviderRegistry(Registry[Callable[..., NutritionProvider]]):
    """Registry for nutrition provider factories (stub, usda)."""

    def __init__(self):
        super().__init__("NutritionProvider")


# Job Registry - background processing handlers
class JobQueueHandle(Protocol):
    """Handle given to job handlers for enqueueing follow-up work."""

    async def enqueue(self, task_type: str, payload: dict[str, Any]) -> Any:
        ...


class JobHandler(Protocol):
    """Protocol for job handlers that process background tasks."""

    async def handle(
        self,
        session: Any,  # AsyncSession
        queue: JobQueueHandle,
        payload: Any,  # instance of the job type's payload model
    ) -> dict[str, Any] | None:
        """
        Handle a background job.

        Args:
            session: Database session for job processing
            queue: Handle for enqueueing further jobs (fan-out)
            payload: Validated job payload

        Returns:
            Optional result dictionary to store with completed job
        """
        ...


def no_backoff(attempt: int) -> timedelta:
    """Retry immediately."""
    return timedelta(0)


def exponential_backoff(base_seconds: int = 60) -> Callable[[int], timedelta]:
    """Backoff of base * 2^attempt, attempt counted from 0 at the first retry."""

    def backoff(attempt: int) -> timedelta:
        return timedelta(seconds=base_seconds * (2 ** max(0, attempt)))

    return backoff


@dataclass(frozen=True)
class JobPolicy:
    """Retry, backoff, uniqueness and recurrence settings of a task type."""

    max_retries: int = 3
    backoff: Callable[[int], timedelta] = no_backoff
    unique: bool = False
    cron: str | None = None

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ConfigurationError(
                "max_retries must be >= 0", {"max_retries": self.max_retries}
            )
        if self.cron is not None and not croniter.is_valid(self.cron):
            raise ConfigurationError(
                f"Invalid cron expression: {self.cron}", {"cron": self.cron}
            )


@dataclass(frozen=True)
class JobDefinition:
    """A registered task type: payload model, handler and policy."""

    task_type: str
    payload_model: type[BaseModel]
    handler: JobHandler
    policy: JobPolicy = field(default_factory=JobPolicy)
    # Projection of the payload used for the uniqueness key (defaults to all of it)
    unique_by: Callable[[BaseModel], dict[str, Any]] | None = None

    def parse_payload(self, payload: dict[str, Any]) -> BaseModel:
        return self.payload_model.model_validate(payload)

    def uniqueness_payload(self, payload: BaseModel) -> dict[str, Any]:
        """Payload fields that identify the logical entity for deduplication."""
        if self.unique_by is not None:
            return self.unique_by(payload)
        return payload.model_dump(mode="json")


class JobRegistry(Registry[JobDefinition]):
    """Registry for background job definitions."""

    def __init__(self):
        super().__init__("Job")

    def register(self, name: str, implementation: JobDefinition) -> None:
        if name != implementation.task_type:
            raise ConfigurationError(
                f"Job definition '{implementation.task_type}' registered as '{name}'"
            )
        super().register(name, implementation)

    def add(self, definition: JobDefinition) -> None:
        """Register a definition under its own task type."""
        self.register(definition.task_type, definition)

    def get(self, name: str) -> JobDefinition:
        """Get a job definition; unknown task types are a configuration error."""
        try:
            return super().get(name)
        except KeyError:
            raise UnknownJobTypeError(name, self.list()) from None

    def recurring(self) -> list[JobDefinition]:
        """Definitions that carry a cron schedule."""
        return [
            definition
            for definition in self._implementations.values()
            if definition.policy.cron is not None
        ]


# Global registry instances (singletons)
nutrition_provider_registry = NutritionProviderRegistry()
