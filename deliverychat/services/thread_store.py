"""In-memory store of conversation threads and their runs.

Threads live for the process lifetime; nothing is persisted or deleted.
A thread accepts a new user message or run only while it has no active
run, which keeps each conversation to one run at a time.

Example:
    store = ThreadStore()
    thread = store.create_thread()
    store.add_user_message(thread.id, "show all pending deliveries")
    run = store.start_run(thread.id)
"""

import logging
from datetime import timedelta

from deliverychat.errors import RunNotFoundError, ThreadBusyError, ThreadNotFoundError
from deliverychat.orchestrator.models import Message, Run, RunStatus, Thread, utc_now

logger = logging.getLogger(__name__)


class ThreadStore:
    """Threads and runs keyed by id.

    Args:
        run_expiry_seconds: How long a run may wait in ``requires_action``
            before it is marked ``expired``.
    """

    def __init__(self, run_expiry_seconds: float = 600.0) -> None:
        self._threads: dict[str, Thread] = {}
        self._runs: dict[str, Run] = {}
        self._run_expiry = timedelta(seconds=run_expiry_seconds)

    def create_thread(self) -> Thread:
        thread = Thread()
        self._threads[thread.id] = thread
        logger.info("Created thread %s", thread.id)
        return thread

    def get_thread(self, thread_id: str) -> Thread:
        thread = self._threads.get(thread_id)
        if thread is None:
            raise ThreadNotFoundError(thread_id)
        return thread

    def list_threads(self) -> list[str]:
        return list(self._threads)

    def _active_run(self, thread: Thread) -> Run | None:
        if thread.active_run_id is None:
            return None
        run = self.get_run(thread.id, thread.active_run_id)
        if run.status.is_terminal:
            thread.active_run_id = None
            return None
        return run

    def _ensure_idle(self, thread: Thread) -> None:
        active = self._active_run(thread)
        if active is not None:
            raise ThreadBusyError(thread.id, active.id)

    def add_user_message(self, thread_id: str, text: str) -> Message:
        thread = self.get_thread(thread_id)
        self._ensure_idle(thread)
        message = Message(role="user", content=[{"type": "text", "text": text}])
        thread.messages.append(message)
        return message

    def start_run(self, thread_id: str) -> Run:
        thread = self.get_thread(thread_id)
        self._ensure_idle(thread)
        run = Run(thread_id=thread.id)
        self._runs[run.id] = run
        thread.active_run_id = run.id
        logger.info("Run %s queued on thread %s", run.id, thread.id)
        return run

    def get_run(self, thread_id: str, run_id: str) -> Run:
        run = self._runs.get(run_id)
        if run is None or run.thread_id != thread_id:
            raise RunNotFoundError(f"Run '{run_id}' not found on thread '{thread_id}'")
        if (
            run.status == RunStatus.requires_action
            and utc_now() - run.updated_at > self._run_expiry
        ):
            logger.warning("Run %s expired waiting for tool outputs", run.id)
            self.finish_run(run, RunStatus.expired, "Run expired waiting for tool outputs")
        return run

    def finish_run(self, run: Run, status: RunStatus, error: str | None = None) -> None:
        """Move a run to a terminal status and release its thread."""
        run.transition(status)
        run.required_action = []
        if error:
            run.last_error = error
        thread = self._threads.get(run.thread_id)
        if thread is not None and thread.active_run_id == run.id:
            thread.active_run_id = None
        logger.info("Run %s %s", run.id, status.value)
