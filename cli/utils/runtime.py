"""Helpers for running async service code from CLI commands"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

from auditlog.config.logging import setup_logging
from auditlog.config.settings import settings
from auditlog.infra.database import Database
from auditlog.v1.core.context import WorkerContext
from auditlog.v1.worker.jobs import init_job_registry

T = TypeVar("T")


def build_context() -> WorkerContext:
    """Worker context for this process, with the default jobs registered"""
    setup_logging()
    return WorkerContext(
        settings=settings,
        database=Database(settings),
        registry=init_job_registry(),
    )


def run_with_context(command: Callable[[WorkerContext], Awaitable[T]]) -> T:
    """Run ``command`` on a fresh context and dispose of the engine afterwards"""

    async def _main() -> T:
        ctx = build_context()
        try:
            return await command(ctx)
        finally:
            await ctx.database.close()

    return asyncio.run(_main())
