"""FastAPI route modules.

Exports all route modules for inclusion in the main application.
"""

from deliverychat.api.routes import chat, query, schema, status

__all__ = [
    "chat",
    "query",
    "schema",
    "status",
]
