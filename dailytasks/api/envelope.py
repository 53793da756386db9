"""Uniform response envelope returned by every task endpoint."""

import json
from typing import Any, Optional

from pydantic import BaseModel, Field

STATUS_SUCCESS = "success"
STATUS_ERROR = "error"


class Envelope(BaseModel):
    """`{status, error, content, kind}`; `content` is always a JSON-encoded payload."""

    status: str = Field(..., description="'success' or 'error'")
    error: str = Field("", description="Human-readable error message (empty on success)")
    content: str = Field("", description="JSON-encoded payload (empty on error)")
    kind: Optional[str] = Field(None, description="Error kind on failure, e.g. 'validation' or 'not_found'")


def success(payload: Any) -> Envelope:
    """Wrap a JSON-ready payload."""
    return Envelope(status=STATUS_SUCCESS, content=json.dumps(payload, ensure_ascii=False))


def failure(message: str, kind: str) -> Envelope:
    return Envelope(status=STATUS_ERROR, error=message, kind=kind)
