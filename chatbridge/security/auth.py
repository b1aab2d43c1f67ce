from __future__ import annotations
import secrets
from typing import Awaitable, Callable
from fastapi import Header, HTTPException
from chatbridge.config import Settings

def constant_time_equals(a: str, b: str) -> bool:
    return secrets.compare_digest(a.encode("utf-8"), b.encode("utf-8"))

def verify_client_key(settings: Settings, provided: str | None) -> bool:
    if not settings.require_client_auth:
        return True
    if not provided:
        return False
    return any(constant_time_equals(k, provided) for k in settings.client_api_keys)

def client_key_dependency(settings: Settings) -> Callable[..., Awaitable[bool]]:
    """FastAPI dependency guarding both the REST routes and the WS endpoint."""
    async def _require_client(x_api_key: str | None = Header(default=None)) -> bool:
        if not verify_client_key(settings, x_api_key):
            raise HTTPException(status_code=401, detail="unauthorized")
        return True
    return _require_client
