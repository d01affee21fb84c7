"""
Worker context: the explicit bundle of collaborators handed to checkers,
runners and jobs.

A context is immutable. ``transacting()`` derives a copy bound to a fresh
session whose transaction commits when the block exits cleanly and rolls
back otherwise, so everything a job writes lives or dies together.
"""

from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from auditlog.config.settings import Settings
from auditlog.infra.database import Database
from auditlog.v1.core.registries import JobRegistry, job_registry
from auditlog.v1.worker.reporting import ExceptionReporter, LoggingExceptionReporter


@dataclass(frozen=True)
class WorkerContext:
    settings: Settings
    database: Database
    registry: JobRegistry = field(default_factory=lambda: job_registry)
    reporter: ExceptionReporter = field(default_factory=LoggingExceptionReporter)
    session: AsyncSession | None = None
    extras: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "extras", MappingProxyType(dict(self.extras)))

    @property
    def is_transacting(self) -> bool:
        return self.session is not None

    def with_(self, **overrides: Any) -> "WorkerContext":
        """
        Copy the context, replacing known fields and adding the rest as extras.

            ctx.with_(reporter=StderrReporter(), tenant="acme")
        """
        known = {k: overrides.pop(k) for k in list(overrides) if k in _FIELDS}
        if overrides:
            known["extras"] = {**self.extras, **overrides}
        return replace(self, **known)

    @asynccontextmanager
    async def transacting(self) -> AsyncIterator["WorkerContext"]:
        """Derive a context bound to a new transaction."""
        async with self.database.SessionLocal() as session:
            async with session.begin():
                yield replace(self, session=session)


_FIELDS = {"settings", "database", "registry", "reporter", "session"}
