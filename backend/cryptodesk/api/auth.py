from __future__ import annotations

from fastapi import Header, HTTPException, status

from cryptodesk.config.settings import settings


def require_api_key(x_api_key: str | None = Header(default=None)) -> None:
    if not x_api_key or x_api_key != settings.api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "Invalid or missing API key"},
        )
