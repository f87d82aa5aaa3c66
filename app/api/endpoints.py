"""API endpoints for the processing service."""

from collections.abc import Callable
from datetime import UTC, datetime

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from app import __version__
from app.errors import InputValidationError, PipelineError, UnknownError, envelope_message
from app.models.conversation import ErrorResponse, HealthResponse, ProcessRequest, ProcessResponse
from app.services.pipeline import ProcessingPipeline, get_pipeline
from app.utils.logging import get_logger, redact
from app.utils.tracing import RequestTrace

logger = get_logger(__name__)

router = APIRouter()

PipelineProvider = Callable[[], ProcessingPipeline]


def pipeline_provider() -> PipelineProvider:
    """Hand out the pipeline accessor so it is only called for valid input."""
    return get_pipeline


def _envelope(model: ProcessResponse | ErrorResponse, status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=model.model_dump(by_alias=True, exclude_none=True))


def _failure(trace: RequestTrace, error: PipelineError) -> JSONResponse:
    logger.error(
        f"Processing request {trace.request_id} failed after {trace.elapsed_ms():.2f}ms: {envelope_message(error)}",
        exc_info=error.__cause__,
    )
    envelope = ErrorResponse(
        error=envelope_message(error),
        request_id=trace.request_id,
        processing_time=round(trace.elapsed_ms(), 2),
    )
    return _envelope(envelope, error.status_code)


@router.post(
    "/api/process",
    response_model=ProcessResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    tags=["Processing"],
)
async def process_text(
    request: Request, provide_pipeline: PipelineProvider = Depends(pipeline_provider)
) -> JSONResponse:
    """Answer the user's text with a tool-augmented model reply.

    Missing or empty ``text`` is rejected with 400 before any external
    service is called. Stage failures return 500 with a stage-prefixed
    error message.
    """
    trace = RequestTrace()

    try:
        body = await request.json()
    except ValueError as e:
        error = UnknownError(f"Invalid JSON body: {e}")
        error.__cause__ = e
        return _failure(trace, error)

    try:
        payload = ProcessRequest.model_validate(body)
        if not payload.text:
            raise InputValidationError()
    except (ValidationError, InputValidationError):
        error = InputValidationError()
        logger.warning(
            f"Request {trace.request_id} missing text field after {trace.elapsed_ms():.2f}ms, body: {redact(body)}"
        )
        return _envelope(ErrorResponse(error=error.render(), request_id=trace.request_id), error.status_code)

    try:
        pipeline = provide_pipeline()
    except Exception as e:
        error = UnknownError(f"Service not configured: {e}")
        error.__cause__ = e
        return _failure(trace, error)

    trace.slow_span_warning_ms = pipeline.config.slow_span_warning_ms
    outcome = await pipeline.process(payload.text, trace)
    return _envelope(outcome.to_envelope(), outcome.status_code)


@router.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(UTC),
        version=__version__,
    )
