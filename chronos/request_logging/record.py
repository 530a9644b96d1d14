"""Request log record and the sanitizers that build it from raw request data."""

from __future__ import annotations

import math
from collections.abc import Mapping
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

MAX_STRING_LENGTH = 2000


class RequestLog(BaseModel):
    """One document in the ``request_logs`` collection."""

    model_config = ConfigDict(populate_by_name=True)

    method: str
    path: str
    query: Optional[dict[str, Any]] = None
    status_code: int = Field(alias="statusCode")
    duration_ms: float = Field(alias="durationMs")
    ip: Optional[str] = None
    user_agent: Optional[str] = Field(default=None, alias="userAgent")
    referer: Optional[str] = None
    request_id: Optional[str] = Field(default=None, alias="requestId")
    user_id: Optional[str] = Field(default=None, alias="userId")
    error_name: Optional[str] = Field(default=None, alias="errorName")
    error_message: Optional[str] = Field(default=None, alias="errorMessage")
    created_at: datetime = Field(alias="createdAt")

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


def safe_string(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    value = value.strip()
    if not value:
        return None
    return value[:MAX_STRING_LENGTH]


def safe_int(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value):
        return None
    return round(value)


def safe_object(value: Any) -> Optional[dict[str, Any]]:
    if isinstance(value, Mapping):
        return dict(value)
    if isinstance(value, (list, tuple)):
        return {"_values": list(value)}
    return None


def extract_user_id(user: Any) -> Optional[str]:
    if not isinstance(user, Mapping):
        user = getattr(user, "__dict__", None)
        if not isinstance(user, Mapping):
            return None
    for key in ("id", "_id", "userId", "sub"):
        candidate = user.get(key)
        if candidate is None:
            continue
        if isinstance(candidate, str):
            return candidate
        if isinstance(candidate, int) and not isinstance(candidate, bool):
            return str(candidate)
        return None
    return None


def _header(headers: Mapping[str, Any], *names: str) -> Optional[str]:
    for name in names:
        value = safe_string(headers.get(name))
        if value is not None:
            return value
    return None


def build_request_log(
    *,
    created_at: datetime,
    duration_ms: float,
    method: Any = None,
    path: Any = None,
    query: Any = None,
    status_code: Any = None,
    ip: Any = None,
    headers: Optional[Mapping[str, Any]] = None,
    user: Any = None,
    error: Optional[BaseException] = None,
    include_query: bool = True,
) -> RequestLog:
    """Assemble a record, substituting defaults for anything missing or malformed."""
    headers = headers or {}

    error_name = error_message = None
    if error is not None:
        error_name = safe_string(type(error).__name__) or "Error"
        error_message = safe_string(str(error))

    status = safe_int(status_code)
    return RequestLog(
        created_at=created_at,
        method=safe_string(method) or "UNKNOWN",
        path=safe_string(path) or "/",
        query=safe_object(query) if include_query else None,
        status_code=500 if status is None else status,
        duration_ms=duration_ms,
        ip=safe_string(ip),
        user_agent=_header(headers, "user-agent"),
        referer=_header(headers, "referer", "referrer"),
        request_id=_header(headers, "x-request-id", "x-correlation-id"),
        user_id=extract_user_id(user),
        error_name=error_name,
        error_message=error_message,
    )
