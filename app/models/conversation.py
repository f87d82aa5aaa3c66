"""Request and response envelope models."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class EnvelopeModel(BaseModel):
    """Base for wire models serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProcessRequest(BaseModel):
    """Request model for the processing endpoint."""

    text: str


class ProcessResponse(EnvelopeModel):
    """Successful processing response."""

    response: str
    request_id: str
    processing_time: float


class ErrorResponse(EnvelopeModel):
    """Error envelope for validation and stage failures."""

    error: str
    request_id: str
    processing_time: float | None = None


class HealthResponse(BaseModel):
    """Response model for health check endpoint."""

    status: str
    timestamp: datetime
    version: str
