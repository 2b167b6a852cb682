"""
FastAPI dependencies.

The engine is built once at startup and kept on `app.state`; routers receive
it through `get_engine`.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Header, HTTPException, Request

from services.engine import Engine


def get_engine(request: Request) -> Engine:
    engine: Optional[Engine] = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(status_code=503, detail="Engine not initialized")
    return engine


def get_staff_name(x_staff_name: Optional[str] = Header(default=None)) -> str:
    """Operator name from the X-Staff-Name header (empty when absent)."""
    return (x_staff_name or "").strip()


__all__ = ["get_engine", "get_staff_name"]
