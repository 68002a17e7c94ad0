"""Service wiring shared by the HTTP app.

``build_services`` turns Settings into the object graph one server process
needs: a pooled engine, the query executor and guards, the status
broadcaster, the assistant backend and the conversation orchestrator.
"""

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncEngine

from deliverychat.config import Settings
from deliverychat.db.connection import create_engine
from deliverychat.orchestrator.backend.anthropic_backend import AnthropicAssistantBackend
from deliverychat.orchestrator.backend.base import AssistantBackend
from deliverychat.orchestrator.conversation import ConversationOrchestrator
from deliverychat.orchestrator.executor import QueryExecutor
from deliverychat.orchestrator.guard import QueryGuard
from deliverychat.orchestrator.system_prompt import build_system_prompt
from deliverychat.orchestrator.tools import QueryDatabaseTool
from deliverychat.services.status_broadcaster import StatusBroadcaster
from deliverychat.services.thread_store import ThreadStore

logger = logging.getLogger(__name__)

# SQLAlchemy dialect name -> sqlglot dialect
SQLGLOT_DIALECTS = {"postgresql": "postgres", "sqlite": "sqlite", "mysql": "mysql"}


@dataclass
class Services:
    settings: Settings
    engine: AsyncEngine
    executor: QueryExecutor
    public_guard: QueryGuard
    broadcaster: StatusBroadcaster
    backend: AssistantBackend
    orchestrator: ConversationOrchestrator

    async def aclose(self) -> None:
        """Disconnect listeners, stop backend work and dispose the pool."""
        self.broadcaster.close()
        await self.backend.aclose()
        await self.engine.dispose()


def build_services(settings: Settings, backend: AssistantBackend | None = None) -> Services:
    """Build the services for one process.

    Args:
        settings: Validated service settings.
        backend: Assistant backend to use; an Anthropic backend with its own
            thread store is created if None.
    """
    engine = create_engine(settings)
    dialect = SQLGLOT_DIALECTS.get(engine.dialect.name)
    executor = QueryExecutor(engine, read_only=settings.read_only, max_rows=settings.max_rows)

    public_guard = QueryGuard(settings.public_guard, dialect)
    if not public_guard.enabled:
        logger.warning("Public /query path runs without statement checks")
    tool = QueryDatabaseTool(executor, QueryGuard(settings.tool_guard, dialect), settings.tool_form)

    broadcaster = StatusBroadcaster()
    if backend is None:
        backend = AnthropicAssistantBackend(
            model=settings.model,
            max_tokens=settings.max_tokens,
            store=ThreadStore(run_expiry_seconds=settings.run_expiry_seconds),
        )
    orchestrator = ConversationOrchestrator(
        backend,
        [tool],
        build_system_prompt(settings.tool_form),
        broadcaster=broadcaster,
        poll_interval=settings.poll_interval,
        max_poll_attempts=settings.max_poll_attempts,
        max_tool_rounds=settings.max_tool_rounds,
    )
    return Services(
        settings=settings,
        engine=engine,
        executor=executor,
        public_guard=public_guard,
        broadcaster=broadcaster,
        backend=backend,
        orchestrator=orchestrator,
    )
