"""Orchestration layer for delivery chat.

Turns a user message into an assistant run, executes the SQL the assistant
requests and returns the answer.

Main Entry Points:
    ConversationOrchestrator (deliverychat.orchestrator.conversation):
        drives one user turn in polling or streaming mode.
    QueryDatabaseTool: guarded ``query_database`` tool handler.

Supporting Components:
    QueryGuard: statement checks before execution.
    QueryExecutor: parameter binding and read-only execution.
    ToolCallAssembler: rebuilds tool calls from streamed fragments.
"""

from deliverychat.orchestrator.assembler import ToolCallAssembler
from deliverychat.orchestrator.executor import QueryExecutor, compile_named, compile_positional
from deliverychat.orchestrator.guard import QueryGuard
from deliverychat.orchestrator.models import (
    AssembledCall,
    Message,
    QueryRequest,
    QueryResult,
    Run,
    RunStatus,
    Thread,
    ToolCall,
    ToolOutput,
)
from deliverychat.orchestrator.tools import QUERY_DATABASE, QueryDatabaseTool, build_definition

__all__ = [
    # Components
    "QueryGuard",
    "QueryExecutor",
    "ToolCallAssembler",
    "QueryDatabaseTool",
    "QUERY_DATABASE",
    "build_definition",
    "compile_named",
    "compile_positional",
    # Models
    "AssembledCall",
    "Message",
    "QueryRequest",
    "QueryResult",
    "Run",
    "RunStatus",
    "Thread",
    "ToolCall",
    "ToolOutput",
]
