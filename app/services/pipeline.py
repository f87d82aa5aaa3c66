"""Four-stage processing pipeline: tools, draft completion, tool run, final completion."""

import asyncio
import os
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TypeVar

from app.clients.toolhouse import ToolhouseClient, ToolhouseConfig
from app.errors import (
    STAGE_ERRORS,
    PipelineError,
    PipelineStage,
    StageError,
    UnknownError,
    envelope_message,
)
from app.models.conversation import ErrorResponse, ProcessResponse
from app.models.messages import Conversation
from app.services.llm import LLMService, completion_provider_from_env, create_completion_client
from app.services.tools import ToolCatalog, ToolRunner
from app.utils.logging import get_logger, truncate_for_log
from app.utils.tracing import DEFAULT_SLOW_SPAN_WARNING_MS, RequestTrace

logger = get_logger(__name__)

FALLBACK_RESPONSE = "I couldn't generate a response."

T = TypeVar("T")


class PipelineState(StrEnum):
    """Lifecycle of a single processing request."""

    RECEIVED = "received"
    CATALOG_FETCHED = "catalog-fetched"
    FIRST_COMPLETION_DONE = "first-completion-done"
    TOOLS_EXECUTED = "tools-executed"
    FINAL_COMPLETION_DONE = "final-completion-done"
    RESPONDED = "responded"
    FAILED = "failed"


@dataclass(frozen=True)
class PipelineConfig:
    """Deployment-level pipeline settings."""

    provider: str = "openai"
    stage_timeout: float | None = None
    slow_span_warning_ms: float = DEFAULT_SLOW_SPAN_WARNING_MS
    fallback_response: str = FALLBACK_RESPONSE

    @classmethod
    def from_env(cls) -> "PipelineConfig":
        stage_timeout = os.getenv("STAGE_TIMEOUT_SECONDS")
        return cls(
            provider=completion_provider_from_env(),
            stage_timeout=float(stage_timeout) if stage_timeout else None,
            slow_span_warning_ms=float(os.getenv("SLOW_SPAN_WARNING_MS", DEFAULT_SLOW_SPAN_WARNING_MS)),
        )


@dataclass
class PipelineOutcome:
    """Result of one pipeline run, success or failure."""

    request_id: str
    processing_time: float
    state: PipelineState
    response: str | None = None
    error: PipelineError | None = None
    spans: dict[str, float] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def failed_stage(self) -> PipelineStage | None:
        if isinstance(self.error, StageError):
            return self.error.stage
        return None

    @property
    def status_code(self) -> int:
        return 200 if self.error is None else self.error.status_code

    def to_envelope(self) -> ProcessResponse | ErrorResponse:
        """Build the wire envelope for this outcome."""
        if self.error is None:
            return ProcessResponse(
                response=self.response or "",
                request_id=self.request_id,
                processing_time=self.processing_time,
            )
        return ErrorResponse(
            error=envelope_message(self.error),
            request_id=self.request_id,
            processing_time=self.processing_time,
        )


class ProcessingPipeline:
    """Drives the four stages strictly in order for each request.

    The pipeline holds only immutably configured, shared clients. Every
    request gets its own trace, conversation and stage results.
    """

    def __init__(
        self,
        catalog: ToolCatalog,
        llm: LLMService,
        runner: ToolRunner,
        config: PipelineConfig | None = None,
    ):
        self.catalog = catalog
        self.llm = llm
        self.runner = runner
        self.config = config or PipelineConfig()

    def new_trace(self) -> RequestTrace:
        return RequestTrace(slow_span_warning_ms=self.config.slow_span_warning_ms)

    async def process(
        self, text: str, trace: RequestTrace | None = None, *, timeout: float | None = None
    ) -> PipelineOutcome:
        """Turn the user's text into a tool-augmented reply.

        Never raises for stage failures; they are returned as a failed
        outcome carrying the stage-tagged error.

        Args:
            text: Non-empty user text
            trace: Request trace (created if not given)
            timeout: Per-stage deadline in seconds, overriding the config

        Returns:
            The outcome with answer or error, request id and elapsed time
        """
        trace = trace or self.new_trace()
        request_id = trace.request_id
        stage_timeout = timeout if timeout is not None else self.config.stage_timeout
        state = PipelineState.RECEIVED

        logger.info(f"Processing request {request_id} started")
        logger.debug(f"Processing text for request {request_id}: {truncate_for_log(text)} ({len(text)} chars)")

        try:
            conversation = Conversation.start(text)

            tools = await self._run_stage(PipelineStage.CATALOG, trace, stage_timeout, self.catalog.fetch_tools)
            state = PipelineState.CATALOG_FETCHED
            logger.debug(f"Got {len(tools)} tools for request {request_id}")

            draft = await self._run_stage(
                PipelineStage.INITIAL_COMPLETION,
                trace,
                stage_timeout,
                lambda: self.llm.complete(conversation.messages, tools),
            )
            state = PipelineState.FIRST_COMPLETION_DONE

            # Runs even when no tools were requested; the result is then empty.
            tool_messages = await self._run_stage(
                PipelineStage.TOOL_EXECUTION,
                trace,
                stage_timeout,
                lambda: self.runner.run_tools(draft),
            )
            state = PipelineState.TOOLS_EXECUTED
            conversation.extend(tool_messages)
            logger.debug(f"Tools executed for request {request_id}, got {len(tool_messages)} tool messages")

            final = await self._run_stage(
                PipelineStage.FINAL_COMPLETION,
                trace,
                stage_timeout,
                lambda: self.llm.complete(conversation.messages, tools),
            )
            state = PipelineState.FINAL_COMPLETION_DONE

            answer = final.content or self.config.fallback_response
        except StageError as e:
            return self._failed(trace, state, e)
        except Exception as e:
            error = UnknownError(str(e) or type(e).__name__)
            error.__cause__ = e
            return self._failed(trace, state, error)

        outcome = PipelineOutcome(
            request_id=request_id,
            processing_time=round(trace.elapsed_ms(), 2),
            state=PipelineState.RESPONDED,
            response=answer,
            spans=dict(trace.spans),
        )
        logger.debug(f"Final response for request {request_id}: {truncate_for_log(answer)} ({len(answer)} chars)")
        logger.info(f"Processing request {request_id} completed in {outcome.processing_time:.2f}ms")
        logger.debug(f"Trace for request {request_id}: {trace.as_dict()}")
        return outcome

    async def _run_stage(
        self,
        stage: PipelineStage,
        trace: RequestTrace,
        timeout: float | None,
        call: Callable[[], Awaitable[T]],
    ) -> T:
        """Run one stage inside its span and deadline, tagging any failure with the stage."""
        error_kind = STAGE_ERRORS[stage]
        logger.debug(f"Starting stage {stage} for request {trace.request_id}")

        with trace.span(stage.value):
            try:
                async with asyncio.timeout(timeout):
                    return await call()
            except StageError as e:
                if isinstance(e, error_kind) and e.stage is None:
                    e.stage = stage
                    raise
                raise error_kind(e.message, stage=stage) from e
            except TimeoutError as e:
                raise error_kind(f"timed out after {timeout}s", stage=stage) from e
            except Exception as e:
                raise error_kind(str(e) or type(e).__name__, stage=stage) from e

    def _failed(self, trace: RequestTrace, state: PipelineState, error: PipelineError) -> PipelineOutcome:
        outcome = PipelineOutcome(
            request_id=trace.request_id,
            processing_time=round(trace.elapsed_ms(), 2),
            state=PipelineState.FAILED,
            error=error,
            spans=dict(trace.spans),
        )
        logger.error(
            f"Processing request {trace.request_id} failed after {outcome.processing_time:.2f}ms "
            f"(last state: {state}): {envelope_message(error)}",
            exc_info=error,
        )
        return outcome

    async def close(self) -> None:
        """Close the shared provider and tool service clients."""
        await self.llm.close()
        for client in {self.catalog.client, self.runner.client}:
            await client.close()


_pipeline: ProcessingPipeline | None = None


def get_pipeline() -> ProcessingPipeline:
    """Get or create the process-wide pipeline instance."""
    global _pipeline
    if _pipeline is None:
        config = PipelineConfig.from_env()
        toolhouse = ToolhouseClient(config=ToolhouseConfig.from_env(provider=config.provider))
        _pipeline = ProcessingPipeline(
            catalog=ToolCatalog(toolhouse),
            llm=LLMService(create_completion_client(config.provider)),
            runner=ToolRunner(toolhouse),
            config=config,
        )
    return _pipeline


async def close_pipeline() -> None:
    """Close the pipeline's clients if the pipeline was ever built."""
    global _pipeline
    if _pipeline is not None:
        await _pipeline.close()
        _pipeline = None
