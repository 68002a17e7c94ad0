"""Schema description endpoint (what the assistant is told about the tables)."""

from typing import Any

from fastapi import APIRouter

from deliverychat.db.models import describe_schema

router = APIRouter(tags=["schema"])


@router.get("/schema")
def get_schema() -> dict[str, Any]:
    return describe_schema()
