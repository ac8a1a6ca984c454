"""FastAPI application."""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from backend.chatbot.api.routes.auth import router as auth_router
from backend.chatbot.api.routes.chats import router as chats_router
from backend.chatbot.api.routes.documents import router as documents_router
from backend.chatbot.api.routes.health import router as health_router
from backend.chatbot.api.routes.history import router as history_router
from backend.chatbot.api.routes.tools import router as tools_router
from backend.chatbot.db.errors import DatabaseError
from backend.chatbot.errors import ChatbotError

logger = logging.getLogger(__name__)

app = FastAPI(title="Chatbot API", version="0.1.0")

# Register routes
app.include_router(health_router)
app.include_router(auth_router)
app.include_router(history_router)
app.include_router(chats_router)
app.include_router(documents_router)
app.include_router(tools_router)


@app.exception_handler(DatabaseError)
async def database_error_handler(request: Request, exc: DatabaseError) -> JSONResponse:
    """Map storage failures by kind; the cause stays in the logs."""
    logger.warning(
        f"Database error on {request.url.path}: {exc.message}",
        extra={"structured": {"operation": exc.operation, "kind": exc.kind.value}},
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )


@app.exception_handler(ChatbotError)
async def chatbot_error_handler(request: Request, exc: ChatbotError) -> JSONResponse:
    """Map domain errors to their HTTP status."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {"message": "Chatbot API", "version": "0.1.0"}
