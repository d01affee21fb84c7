from typing import TYPE_CHECKING, Generic, Protocol, TypeVar

if TYPE_CHECKING:
    from auditlog.v1.audits.models import Audit
    from auditlog.v1.core.context import WorkerContext

# Base registry implementation
T = TypeVar("T")


class Registry(Generic[T]):
    """Generic registry for pluggable implementations."""

    def __init__(self, name: str):
        self.name = name
        self._implementations: dict[str, T] = {}
        self._frozen = False

    def _check_mutable(self, name: str) -> None:
        if self._frozen:
            raise RuntimeError(
                f"Cannot register '{name}' in {self.name.lower()} registry: "
                "registry is frozen"
            )

    def register(self, name: str, implementation: T) -> None:
        """Register an implementation with a given name."""
        self._check_mutable(name)
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

    def freeze(self) -> None:
        """Freeze the registry to prevent further modifications."""
        self._frozen = True

    def is_frozen(self) -> bool:
        """Check if the registry is frozen."""
        return self._frozen


class JobHandler(Protocol):
    """Protocol for jobs run against an audit event."""

    async def handle(self, ctx: "WorkerContext", event: "Audit") -> None:
        """
        Run the job for one event.

        Args:
            ctx: Transactional worker context; all writes go through ctx.session
            event: The claimed audit event

        Raising any exception marks the attempt as failed and rolls back
        everything written through ctx.session.
        """
        ...


class JobRegistry(Registry[tuple[JobHandler, ...]]):
    """
    Maps audit actions to the ordered jobs that run for them.

    Unknown actions are not an error: they simply have no jobs.
    """

    def __init__(self):
        super().__init__("Job")

    def register(self, name: str, *handlers: JobHandler) -> None:  # type: ignore[override]
        """Append jobs for an action, keeping registration order."""
        self._check_mutable(name)
        action = str(getattr(name, "value", name))
        self._implementations[action] = (
            self._implementations.get(action, ()) + tuple(handlers)
        )

    def handlers_for(self, action: str | None) -> tuple[JobHandler, ...]:
        if action is None:
            return ()
        return self._implementations.get(str(getattr(action, "value", action)), ())

    def has_jobs(self, action: str) -> bool:
        return len(self.handlers_for(action)) > 0


# Global registry instance, populated by auditlog.v1.worker.jobs at startup
job_registry = JobRegistry()
