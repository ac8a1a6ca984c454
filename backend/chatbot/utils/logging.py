"""Structured logging for document update streams."""

import logging
from typing import Any
from uuid import UUID

logger = logging.getLogger(__name__)


class StructuredStreamLogger:
    """Structured logger for document update runs."""

    def log_run(
        self,
        document_id: UUID,
        kind: str,
        outcome: str,
        latency_ms: float,
        deltas: int,
        persisted: bool,
        error_reason: str | None = None,
    ) -> None:
        """Log one document update run with structured data."""
        log_data: dict[str, Any] = {
            "document_id": str(document_id),
            "kind": kind,
            "outcome": outcome,
            "latency_ms": round(latency_ms, 2),
            "deltas": deltas,
            "persisted": persisted,
        }

        if error_reason:
            log_data["error_reason"] = error_reason

        log_msg = f"Document update: {document_id} - {outcome}"

        if outcome == "success":
            logger.info(log_msg, extra={"structured": log_data})
        else:
            logger.warning(log_msg, extra={"structured": log_data})
