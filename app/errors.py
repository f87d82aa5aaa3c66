"""Error taxonomy for the processing pipeline."""

from enum import StrEnum

PROCESSING_FAILED_PREFIX = "Processing failed"
NO_TEXT_PROVIDED = "No text provided"


class PipelineStage(StrEnum):
    """The four sequential stages of a processing request."""

    CATALOG = "catalog"
    INITIAL_COMPLETION = "initial-completion"
    TOOL_EXECUTION = "tool-execution"
    FINAL_COMPLETION = "final-completion"


# Wire prefixes are part of the public error contract; keep them stable.
STAGE_PREFIXES: dict[PipelineStage, str] = {
    PipelineStage.CATALOG: "Failed to get tools",
    PipelineStage.INITIAL_COMPLETION: "OpenAI call failed",
    PipelineStage.TOOL_EXECUTION: "Failed to run tools",
    PipelineStage.FINAL_COMPLETION: "Final OpenAI call failed",
}


class PipelineError(Exception):
    """Base exception for all pipeline errors."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def render(self) -> str:
        """Human-readable message for the response envelope."""
        return self.message


class InputValidationError(PipelineError):
    """The request did not carry usable input text."""

    status_code = 400

    def __init__(self, message: str = NO_TEXT_PROVIDED) -> None:
        super().__init__(message)


class StageError(PipelineError):
    """A stage-scoped failure.

    ``stage`` is attached by the orchestrator when the error crosses a stage
    boundary; clients raise the error kind without knowing which pass they
    serve.
    """

    def __init__(self, message: str, *, stage: PipelineStage | None = None) -> None:
        super().__init__(message)
        self.stage = stage

    def render(self) -> str:
        if self.stage is None:
            return self.message
        return f"{STAGE_PREFIXES[self.stage]}: {self.message}"


class ToolCatalogUnavailable(StageError):
    """The tool catalog could not be fetched."""


class CompletionFailed(StageError):
    """A completion call to the language-model service failed."""


class ToolExecutionFailed(StageError):
    """Running the requested tools failed as a whole."""


class UnknownError(PipelineError):
    """Any failure that escaped the stage boundaries."""


STAGE_ERRORS: dict[PipelineStage, type[StageError]] = {
    PipelineStage.CATALOG: ToolCatalogUnavailable,
    PipelineStage.INITIAL_COMPLETION: CompletionFailed,
    PipelineStage.TOOL_EXECUTION: ToolExecutionFailed,
    PipelineStage.FINAL_COMPLETION: CompletionFailed,
}


def envelope_message(error: PipelineError) -> str:
    """Render the ``error`` field of the HTTP envelope."""
    if isinstance(error, InputValidationError):
        return error.render()
    return f"{PROCESSING_FAILED_PREFIX}: {error.render()}"
