"""
Request/Response Types

Describes a single request to the backend without binding it to an HTTP
library, so pipeline code can be tested against any transport.
"""

from typing import Any, Literal

from pydantic import BaseModel, Field


class RequestDescriptor(BaseModel):
    """
    A request to the conversation backend.

    Either `service` + `resource` (resolved against the service catalog) or a
    raw `uri` must be set. `uri` wins when both are present.
    """

    method: Literal["GET", "POST", "PUT", "PATCH", "DELETE"] = "GET"
    service: str | None = None
    resource: str | None = None
    uri: str | None = None
    qs: dict[str, Any] = Field(default_factory=dict)
    body: Any = None


class TransportResponse(BaseModel):
    """Response from the backend."""

    status_code: int
    body: Any = None
