"""FastAPI dependencies resolving the services built by the lifespan.

Everything lives on ``app.state``; tests replace services there (or via
``dependency_overrides``) instead of patching module globals.
"""

from fastapi import Request

from deliverychat.config import Settings
from deliverychat.orchestrator.conversation import ConversationOrchestrator
from deliverychat.orchestrator.executor import QueryExecutor
from deliverychat.orchestrator.guard import QueryGuard
from deliverychat.services.status_broadcaster import StatusBroadcaster


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_orchestrator(request: Request) -> ConversationOrchestrator:
    return request.app.state.orchestrator


def get_broadcaster(request: Request) -> StatusBroadcaster:
    return request.app.state.broadcaster


def get_executor(request: Request) -> QueryExecutor:
    return request.app.state.executor


def get_public_guard(request: Request) -> QueryGuard:
    return request.app.state.public_guard
