"""HTTP client for a running delivery chat server.

Thin wrapper around httpx that talks to the REST API. Error responses
raise ChatClientError, never typer.Exit, so the client is reusable from
scripts and tests.
"""

import json
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any

import httpx

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://127.0.0.1:8000"
THREAD_HEADER = "X-Thread-ID"


class ChatClientError(Exception):
    """Non-2xx response from the server."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


@dataclass
class ChatChunk:
    """A piece of an assistant reply; ``thread_id`` is set on every chunk."""

    thread_id: str
    text: str


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except json.JSONDecodeError:
        return resp.text
    if isinstance(body, dict):
        if body.get("details"):
            return f"{body.get('error', 'Request failed')}: {body['details']}"
        return str(body.get("error") or body.get("detail") or body)
    return str(body)


class ChatClient:
    """Client for the chat, query and status endpoints.

    Use as an async context manager::

        async with ChatClient("http://127.0.0.1:8000") as client:
            async for chunk in client.chat("show all pending deliveries"):
                print(chunk.text, end="")
    """

    def __init__(self, base_url: str = DEFAULT_BASE_URL, timeout: float = 120.0) -> None:
        self._base_url = base_url
        self._timeout = timeout
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "ChatClient":
        self._client = httpx.AsyncClient(base_url=self._base_url, timeout=self._timeout)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._client:
            await self._client.aclose()

    async def _raise_for_status(self, resp: httpx.Response) -> None:
        if resp.status_code >= 400:
            await resp.aread()
            raise ChatClientError(_error_message(resp), status_code=resp.status_code)

    async def chat(self, message: str, thread_id: str | None = None) -> AsyncIterator[ChatChunk]:
        """Send a message via POST /chat.

        Polling servers answer with one JSON body, streaming servers with a
        text body; both are yielded as chunks.
        """
        body: dict[str, Any] = {"message": message}
        if thread_id:
            body["threadId"] = thread_id
        async with self._client.stream("POST", "/chat", json=body) as resp:
            await self._raise_for_status(resp)
            if resp.headers.get("content-type", "").startswith("application/json"):
                await resp.aread()
                data = resp.json()
                yield ChatChunk(thread_id=data["threadId"], text=data["message"])
                return
            streamed_thread = resp.headers.get(THREAD_HEADER, "")
            async for text in resp.aiter_text():
                yield ChatChunk(thread_id=streamed_thread, text=text)

    async def query(self, statement: str, params: dict[str, Any] | list[Any] | None = None) -> list[dict[str, Any]]:
        """Run a statement via POST /query and return its rows."""
        resp = await self._client.post("/query", json={"query": statement, "params": params or {}})
        await self._raise_for_status(resp)
        return resp.json()["data"]

    async def stream_status(self) -> AsyncIterator[dict[str, Any]]:
        """Stream status events via GET /status.

        Yields:
            Decoded status events; keep-alive comments are skipped.
        """
        async with httpx.AsyncClient(base_url=self._base_url, timeout=None) as stream_client:
            async with stream_client.stream("GET", "/status") as resp:
                await self._raise_for_status(resp)
                async for line in resp.aiter_lines():
                    line = line.strip()
                    if not line.startswith("data:"):
                        continue
                    try:
                        yield json.loads(line[5:].strip())
                    except json.JSONDecodeError:
                        logger.debug("Skipping malformed status frame: %s", line)
