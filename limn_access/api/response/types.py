"""Response type definitions for limn_access API."""

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class PermissionResponse(BaseModel):
    """JSON envelope returned by guarded routes."""

    model_config = ConfigDict(extra="forbid")

    success: bool = Field(description="Whether the request was allowed and succeeded")
    message: str = Field(description="Human-readable message")
    data: Optional[Any] = Field(None, description="Response payload")
    timestamp: str = Field(
        default_factory=_utcnow_iso, description="ISO-8601 time the envelope was built"
    )
