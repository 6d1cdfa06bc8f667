from __future__ import annotations

import secrets
from typing import Optional

from fastapi import Header, HTTPException, Request

from ..services.allocation import AllocationService


def get_allocation(request: Request) -> AllocationService:
    """The AllocationService built by create_app (engine + notifier injected there)."""
    return request.app.state.allocation


def require_admin(request: Request, x_admin_key: Optional[str] = Header(default=None)) -> None:
    """
    Gate for /admin routes. With ADMIN_API_KEY unset the gate is open,
    which is only meant for local development.
    """
    expected = request.app.state.settings.admin_api_key
    if not expected:
        return
    if not x_admin_key or not secrets.compare_digest(x_admin_key, expected):
        raise HTTPException(status_code=401, detail="Admin key required.")
