from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class ErrorKind(str, Enum):
    RATE_LIMITED = "rate_limited"
    NETWORK = "network"
    UPSTREAM = "upstream"
    STORAGE_CONFLICT = "storage_conflict"
    STORAGE_FATAL = "storage_fatal"


class FetchError(BaseModel):
    kind: ErrorKind
    message: str
    provider_code: str | None = None
    http_status: int | None = None


class ProviderResponse(BaseModel):
    endpoint: str
    status: str = "ok"
    data: list[Any] = Field(default_factory=list)
    error: FetchError | None = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"
