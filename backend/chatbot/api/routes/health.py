"""Operational endpoints: health check and Prometheus metrics.

/health checks DB connectivity and returns honest status with component
details. /metrics exposes every registered collector.
"""

from typing import Annotated, Any

from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.chatbot.db.engine import get_sessionmaker

router = APIRouter()


async def check_db(session_factory: async_sessionmaker[AsyncSession]) -> tuple[bool, str]:
    """Check database connectivity.

    Returns:
        (is_ok, status_message)
    """
    try:
        async with session_factory() as session:
            await session.execute(text("SELECT 1"))

        return (True, "ok")
    except Exception as e:
        return (False, f"error: {type(e).__name__}")


@router.get("/health", response_model=None, tags=["health"])
async def health(
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_sessionmaker)],
) -> dict[str, Any] | JSONResponse:
    """Health check endpoint.

    Returns:
        200 with component status if the database answers
        503 otherwise
    """
    db_ok, db_status = await check_db(session_factory)

    response_body = {
        "status": "ok" if db_ok else "degraded",
        "components": {"db": db_status},
    }

    if not db_ok:
        return JSONResponse(content=response_body, status_code=503)

    return response_body


@router.get("/metrics", tags=["metrics"])
async def metrics() -> Response:
    """Prometheus exposition of db_errors_total and the document_update_* series."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
