"""Pydantic schemas for API request/response validation.

Field names follow the chat UI's JSON contract (``threadId``), so models
accept and emit camelCase aliases.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ChatRequest(BaseModel):
    """Request body for POST /chat."""

    model_config = ConfigDict(populate_by_name=True)

    message: str = Field(..., min_length=1)
    thread_id: str | None = Field(None, alias="threadId")


class ChatResponse(BaseModel):
    """Polling-mode reply for POST /chat."""

    model_config = ConfigDict(populate_by_name=True)

    message: str
    thread_id: str = Field(..., alias="threadId")


class QueryBody(BaseModel):
    """Request body for POST /query (public guarded query path)."""

    query: str = Field(..., min_length=1)
    params: dict[str, Any] | list[Any] = Field(default_factory=dict)


class QueryResponse(BaseModel):
    data: list[dict[str, Any]]


class ErrorResponse(BaseModel):
    """Failure body shared by every endpoint."""

    error: str
    details: str | None = None
