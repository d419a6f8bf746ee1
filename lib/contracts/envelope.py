"""Request-scoped models passed between the gate, router and upstream adapter."""
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class OriginDecision(BaseModel):
    """Outcome of the origin gate for one request.

    ``allow_origin`` is the literal ``Access-Control-Allow-Origin`` value to
    echo back, or ``None`` when no CORS header should be attached.
    """

    allowed: bool
    allow_origin: Optional[str] = None
    origin: Optional[str] = None
    user_agent: Optional[str] = None

    @property
    def access_type(self) -> Literal["cors", "direct"]:
        return "cors" if self.origin else "direct"


class UpstreamResult(BaseModel):
    """Either generated ``text`` or a failure with the upstream status."""

    text: Optional[str] = None
    status_code: int = 200
    details: Any = None

    @property
    def ok(self) -> bool:
        return self.text is not None


class QueryEnvelope(BaseModel):
    """Successful ``/api/query`` response."""

    response: str
    status: str = "success"
    timestamp: str
    model: str
    access_type: Literal["cors", "direct"] = "direct"


class ErrorBody(BaseModel):
    """Common shape of every error response; extra keys vary per error."""

    error: str
    message: Optional[str] = None
    debug: Any = None
    details: Any = None
    status: Optional[int] = None
    example: Optional[Dict[str, Any]] = None
    usage: Optional[Dict[str, Any]] = None
    received_method: Optional[str] = None
    required_method: Optional[str] = None
    received_path: Optional[str] = None
    available_endpoints: List[str] = Field(default_factory=list)

    def to_json(self) -> Dict[str, Any]:
        data = self.model_dump(exclude_none=True)
        if not self.available_endpoints:
            data.pop("available_endpoints", None)
        return data
