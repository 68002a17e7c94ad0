"""Assistant backends."""

from deliverychat.orchestrator.backend.base import AssistantBackend

__all__ = ["AssistantBackend"]
