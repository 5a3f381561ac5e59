"""Pydantic models for events reported by the request middleware."""

from __future__ import annotations

from typing import Dict, List

from pydantic import BaseModel, ConfigDict, Field


class RequestEvent(BaseModel):
    """One HTTP request as reported to the collector."""

    model_config = ConfigDict(extra="forbid")

    url: str = Field(..., description="Request URI as sent by the client, including query string")
    path: str = Field(..., description="Decoded request path")
    method: str = Field(..., min_length=1, description="HTTP method")
    status_code: int = Field(200, ge=100, le=999, description="Status code written to the response")
    duration_ns: int = Field(..., ge=0, description="Time spent in the wrapped application")
    user_agent: str = Field("", description="User-Agent request header")
    header: Dict[str, List[str]] = Field(default_factory=dict, description="Request headers by canonical name")
