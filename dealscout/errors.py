"""Error taxonomy shared by the extractor, stages, and orchestrator."""
from __future__ import annotations


class ScoutError(Exception):
    """Base class for all Deal Scout errors."""


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------


class ExtractError(ScoutError):
    """Model output did not contain a usable JSON value."""


class NoDelimiterFound(ExtractError):
    """Opening or closing delimiter of the expected shape is missing."""


class MalformedJSON(ExtractError):
    """The delimited span is not valid JSON."""


# ---------------------------------------------------------------------------
# Generator
# ---------------------------------------------------------------------------


class LLMCallError(ScoutError):
    """LLM call failed or returned no usable text."""
    def __init__(self, message: str, retryable: bool = False):
        super().__init__(message)
        self.retryable = retryable


class LLMUnavailableError(LLMCallError):
    """Provider could not be reached at all (network, auth, missing key)."""


# ---------------------------------------------------------------------------
# Stages and pipeline
# ---------------------------------------------------------------------------


class AnalysisError(ScoutError):
    """A single analysis stage failed for a single candidate."""
    def __init__(self, message: str, stage: str = "", target_id: str = ""):
        super().__init__(message)
        self.stage = stage
        self.target_id = target_id


class GenerationFailed(AnalysisError):
    """The generator call itself raised."""


class InvalidPayload(AnalysisError):
    """The response could not be extracted or validated."""


class PipelineFailure(ScoutError):
    """The run could not complete. The only error surfaced to callers."""
