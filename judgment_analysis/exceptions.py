"""
Error taxonomy for the judgment analysis pipeline.

ExtractionFailure aborts an ingestion outright. StepFailure aborts the
remaining analysis steps but carries the steps that already finished.
GenerationError (and its MalformedResponseError subclass) are the transient
backend failures the retry policy absorbs. ValidationWarning is a warning,
not an error: the step result is kept.
"""

from typing import Any, Mapping


class JudgmentAnalysisError(Exception):
    """Base class for every error raised by the pipeline."""


class ExtractionFailure(JudgmentAnalysisError):
    """
    The document could not be turned into page text.

    Attributes:
        phase: 'open', 'digital' or 'ocr'
    """

    def __init__(self, message: str, phase: str = "digital"):
        super().__init__(message)
        self.phase = phase


class GenerationError(JudgmentAnalysisError):
    """A generation backend call failed (timeout, connection, bad status)."""


class MalformedResponseError(GenerationError):
    """The backend answered, but not with a JSON object."""


class StepFailure(JudgmentAnalysisError):
    """
    An analysis step failed after retries were exhausted.

    Attributes:
        step: Name of the failing step
        completed_steps: Results of the steps that finished before the failure
    """

    def __init__(self, step: str, message: str, completed_steps: Mapping[str, Any] | None = None):
        super().__init__(f"Analysis step '{step}' failed: {message}")
        self.step = step
        self.completed_steps = dict(completed_steps or {})


class AnalysisCancelled(JudgmentAnalysisError):
    """The cancellation event was set while work was in progress."""


class ValidationWarning(UserWarning):
    """A step's parsed output is missing one or more required fields."""

    def __init__(self, step: str, missing_fields: list[str]):
        super().__init__(
            f"Step '{step}' is missing required field(s): {', '.join(missing_fields)}"
        )
        self.step = step
        self.missing_fields = list(missing_fields)
