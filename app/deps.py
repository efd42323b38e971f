from typing import Any, Dict, Iterator

from fastapi import Request
from sqlalchemy.orm import Session

from database import SessionLocal


def get_db() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def request_options(request: Request) -> Dict[str, Any]:
    """Request metadata recorded on audit-log entries."""
    return {
        "ip_address": request.client.host if request.client else None,
        "user_agent": request.headers.get("user-agent"),
        "source": "api",
        "request_id": request.headers.get("x-request-id"),
        "correlation_id": request.headers.get("x-correlation-id"),
        "session_id": request.headers.get("x-session-id"),
    }
