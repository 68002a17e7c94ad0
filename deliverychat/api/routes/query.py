"""Public query endpoint.

POST /query runs a caller-supplied statement with the public guard
(keyword filter plus statement check by default). Unlike the assistant
tool path, failures are returned to the caller as HTTP errors.
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from deliverychat.api.deps import get_executor, get_public_guard
from deliverychat.api.schemas import ErrorResponse, QueryBody, QueryResponse
from deliverychat.errors import DatabaseError, QueryValidationError, error_payload
from deliverychat.orchestrator.executor import QueryExecutor
from deliverychat.orchestrator.guard import QueryGuard
from deliverychat.orchestrator.models import QueryRequest

logger = logging.getLogger(__name__)

router = APIRouter(tags=["query"])


@router.post(
    "/query",
    response_model=QueryResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def run_query(
    body: QueryBody,
    guard: QueryGuard = Depends(get_public_guard),
    executor: QueryExecutor = Depends(get_executor),
):
    """Execute a read-only parameterized query.

    Returns:
        ``{"data": rows}`` on success, 400 when the statement or its
        parameters are rejected, 500 when the database fails.
    """
    try:
        guard.validate(body.query)
        result = await executor.execute(QueryRequest(statement=body.query, parameters=body.params))
    except QueryValidationError as e:
        return JSONResponse(status_code=400, content=error_payload(e, summary="Query rejected"))
    except DatabaseError as e:
        return JSONResponse(status_code=500, content=error_payload(e, summary="Failed to execute query"))

    return {"data": result.to_payload()["rows"]}
