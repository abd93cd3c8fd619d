"""
Step Orchestrator for judgment analysis.

Runs the ordered analysis steps over a judgment's chunks:
1. SELECT: positional window of at most MAX_CHUNKS_PER_STEP chunks
2. PROMPT: step instructions + chunk text + parsed results of all earlier steps
3. GENERATE: one backend call, retried with backoff on transient failure
4. PARSE: JSON object required; missing required fields only warn
5. ANCHOR: flatten every anchored sub-object into the step's anchor list

Steps run strictly one after another because each prompt depends on the
parsed output of every step before it. The first failing step stops the
run; results of the steps that already finished stay available through
completed_steps and on the StepFailure.
"""

import json
import threading
import time
import warnings
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Sequence

from judgment_analysis.ai import GenerationBackend, GenerationRequest
from judgment_analysis.chunking_engine import JudgmentChunk
from judgment_analysis.config import MAX_CHUNKS_PER_STEP, STEP_TEMPERATURE, STEP_TOKEN_BUDGET
from judgment_analysis.exceptions import (
    AnalysisCancelled,
    GenerationError,
    MalformedResponseError,
    StepFailure,
    ValidationWarning,
)
from judgment_analysis.logging_config import Timer, debug_log, info, warning

from .anchors import AnchorReference, extract_anchors
from .retry import DEFAULT_RETRY_POLICY, RetryPolicy, with_retry
from .steps import ANALYSIS_STEPS, ChunkWindow, StepDescriptor, render_prompt

# Progress callback signature: (phase: str, current: int, total: int, message: str)
ProgressCallback = Callable[[str, int, int, str], None]


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class AnalysisStepResult:
    """
    Outcome of one analysis step.

    Attributes:
        step: Step name
        parsed_result: The JSON object returned by the backend
        anchors: Every anchored sub-object of parsed_result
        backend: Backend identifier (model tag or 'offline')
        tokens_used: Generation units reported for this step
        timestamp: ISO time the step finished
        context_steps: Names of the earlier steps whose results were in the prompt
        validation_warnings: Required fields absent from parsed_result
    """

    step: str
    parsed_result: dict
    anchors: list[AnchorReference]
    backend: str
    tokens_used: int = 0
    timestamp: str = field(default_factory=_now_iso)
    context_steps: tuple[str, ...] = ()
    validation_warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "step": self.step,
            "result": self.parsed_result,
            "anchors": [anchor.to_dict() for anchor in self.anchors],
            "model": self.backend,
            "tokensUsed": self.tokens_used,
            "timestamp": self.timestamp,
            "validationWarnings": list(self.validation_warnings),
        }


@dataclass
class CompleteAnalysisResult:
    steps: dict[str, AnalysisStepResult]
    summary: dict | None
    total_tokens_used: int
    completed_at: str = field(default_factory=_now_iso)

    def to_dict(self) -> dict:
        return {
            "steps": {name: result.to_dict() for name, result in self.steps.items()},
            "summary": self.summary,
            "totalTokensUsed": self.total_tokens_used,
            "completedAt": self.completed_at,
        }


class PipelineStatus(Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class PipelineState:
    """
    NOT_STARTED -> RUNNING(step) -> RUNNING(next step) ... -> COMPLETED
                                 \\-> FAILED(step)

    COMPLETED and FAILED are terminal; reset() returns to NOT_STARTED for a
    fresh run from the first step.
    """

    def __init__(self):
        self.status = PipelineStatus.NOT_STARTED
        self.step: str | None = None

    def __repr__(self):
        return f"PipelineState({self.status.value}, step={self.step!r})"

    @property
    def is_terminal(self) -> bool:
        return self.status in (PipelineStatus.COMPLETED, PipelineStatus.FAILED)

    def enter_step(self, step: str):
        if self.status not in (PipelineStatus.NOT_STARTED, PipelineStatus.RUNNING):
            raise RuntimeError(f"Cannot start step '{step}' from {self!r}")
        self.status = PipelineStatus.RUNNING
        self.step = step

    def complete(self):
        if self.status not in (PipelineStatus.NOT_STARTED, PipelineStatus.RUNNING):
            raise RuntimeError(f"Cannot complete from {self!r}")
        self.status = PipelineStatus.COMPLETED
        self.step = None

    def fail(self):
        if self.status != PipelineStatus.RUNNING:
            raise RuntimeError(f"Cannot fail from {self!r}")
        self.status = PipelineStatus.FAILED

    def reset(self):
        if self.status == PipelineStatus.RUNNING:
            raise RuntimeError("Cannot reset a running pipeline")
        self.status = PipelineStatus.NOT_STARTED
        self.step = None


def parse_step_response(text: str | None, descriptor: StepDescriptor) -> tuple[dict, list[str]]:
    """
    Parse backend text as a JSON object and list missing required fields.

    Raises:
        MalformedResponseError: Empty text, invalid JSON, or JSON that is not an object
    """
    if not text or not text.strip():
        raise MalformedResponseError(f"No content in response for step {descriptor.name}")
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as e:
        raise MalformedResponseError(f"Failed to parse JSON response for step {descriptor.name}: {e}") from e
    if not isinstance(parsed, dict):
        raise MalformedResponseError(
            f"Response for step {descriptor.name} is a JSON {type(parsed).__name__}, expected an object"
        )
    missing = [name for name in descriptor.required_fields if name not in parsed]
    return parsed, missing


class StepOrchestrator:
    """
    Runs a fixed ordered sequence of analysis steps against a backend.

    Example:
        orchestrator = StepOrchestrator(backend=OfflineBackend())
        result = orchestrator.run(chunking_result.chunks)
        print(result.summary, result.total_tokens_used)
    """

    def __init__(
        self,
        backend: GenerationBackend,
        steps: Sequence[StepDescriptor] = ANALYSIS_STEPS,
        retry_policy: RetryPolicy = DEFAULT_RETRY_POLICY,
        max_chunks_per_step: int = MAX_CHUNKS_PER_STEP,
        temperature: float = STEP_TEMPERATURE,
        token_budget: int = STEP_TOKEN_BUDGET,
        sleep: Callable[[float], None] = time.sleep,
    ):
        names = [step.name for step in steps]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate step names in sequence: {names}")

        self.backend = backend
        self.steps = tuple(steps)
        self.retry_policy = retry_policy
        self.max_chunks_per_step = max_chunks_per_step
        self.temperature = temperature
        self.token_budget = token_budget
        self._sleep = sleep

        self.state = PipelineState()
        self._completed: dict[str, AnalysisStepResult] = {}
        self._context: dict[str, Any] = {}

        debug_log(f"[ORCHESTRATOR] Initialized with {len(self.steps)} steps, backend={backend.identifier}")

    @property
    def completed_steps(self) -> dict[str, AnalysisStepResult]:
        """Results of the steps finished in the current or last run, in order."""
        return dict(self._completed)

    def build_context(self) -> dict[str, Any]:
        """Parsed results of every step completed so far, keyed by step name."""
        return dict(self._context)

    def select_chunks(self, chunks: Sequence[JudgmentChunk], descriptor: StepDescriptor) -> list[JudgmentChunk]:
        """
        Pick the positional window of chunks a step reads.

        FRONT takes the first N, NARRATIVE starts 20% in, TAIL takes the last
        N and CENTER is centred on the middle of the document.
        """
        n = self.max_chunks_per_step
        total = len(chunks)

        if descriptor.window is ChunkWindow.FRONT:
            start = 0
        elif descriptor.window is ChunkWindow.NARRATIVE:
            start = int(total * 0.2)
        elif descriptor.window is ChunkWindow.TAIL:
            start = max(0, total - n)
        else:
            start = max(0, (total - n) // 2)

        return list(chunks[start:start + n])

    def run(
        self,
        chunks: Sequence[JudgmentChunk],
        steps: Sequence[StepDescriptor] | None = None,
        progress_callback: ProgressCallback | None = None,
        cancel_event: threading.Event | None = None,
    ) -> CompleteAnalysisResult:
        """
        Execute every step in order.

        Args:
            chunks: Chunks in reading order
            steps: Step sequence override (defaults to the orchestrator's)
            progress_callback: Called as (phase, current, total, message)
            cancel_event: Checked before each step and during retry backoff

        Returns:
            CompleteAnalysisResult with steps in execution order

        Raises:
            StepFailure: First step that could not be completed
            AnalysisCancelled: If cancel_event is set
        """
        steps = tuple(steps) if steps is not None else self.steps
        if self.state.is_terminal:
            self.state.reset()
        self._completed = {}
        self._context = {}
        total_tokens = 0

        info(f"[ORCHESTRATOR] Starting {len(steps)}-step analysis over {len(chunks)} chunks")

        for index, descriptor in enumerate(steps):
            self.state.enter_step(descriptor.name)

            if cancel_event is not None and cancel_event.is_set():
                self.state.fail()
                raise AnalysisCancelled(f"Analysis cancelled before step '{descriptor.name}'")

            self._notify_progress(progress_callback, "analysis", index, len(steps),
                                  f"Running step '{descriptor.name}'")
            try:
                with Timer(f"Analysis step {descriptor.name}"):
                    step_result = self._execute_step(descriptor, chunks, cancel_event)
            except AnalysisCancelled:
                self.state.fail()
                raise
            except StepFailure:
                self.state.fail()
                raise
            except Exception as e:
                self.state.fail()
                raise StepFailure(descriptor.name, str(e), self._completed) from e

            self._completed[descriptor.name] = step_result
            self._context[descriptor.name] = step_result.parsed_result
            total_tokens += step_result.tokens_used

            debug_log(
                f"[ORCHESTRATOR] Completed step {descriptor.name}: {len(step_result.anchors)} anchors, "
                f"{step_result.tokens_used} tokens"
            )

        self.state.complete()
        self._notify_progress(progress_callback, "analysis", len(steps), len(steps), "Analysis complete")

        summary = self._completed["summary"].parsed_result if "summary" in self._completed else None
        info(f"[ORCHESTRATOR] Analysis complete, {total_tokens} tokens used")
        return CompleteAnalysisResult(
            steps=dict(self._completed),
            summary=summary,
            total_tokens_used=total_tokens,
        )

    def _execute_step(self, descriptor: StepDescriptor, chunks: Sequence[JudgmentChunk],
                      cancel_event: threading.Event | None) -> AnalysisStepResult:
        selected = self.select_chunks(chunks, descriptor)
        chunk_text = "\n\n".join(chunk.text for chunk in selected)
        context = self.build_context()
        system_prompt, user_prompt = render_prompt(descriptor, chunk_text, context)

        debug_log(
            f"[ORCHESTRATOR] Step {descriptor.name}: {len(selected)} chunks ({descriptor.window.value}), "
            f"context from {list(context) or 'none'}"
        )

        request = GenerationRequest(
            system_instructions=system_prompt,
            user_content=user_prompt,
            response_format="json",
            temperature=self.temperature,
            token_budget=self.token_budget,
            step=descriptor.name,
            required_fields=descriptor.required_fields,
            source_text=chunk_text,
            prior_steps=tuple(context),
        )

        def attempt():
            response = self.backend.generate(request)
            parsed, missing = parse_step_response(response.text, descriptor)
            return response, parsed, missing

        try:
            response, parsed, missing = with_retry(
                attempt,
                policy=self.retry_policy,
                retry_on=(GenerationError,),
                description=f"Step '{descriptor.name}'",
                sleep=self._sleep,
                cancel_event=cancel_event,
            )
        except GenerationError as e:
            raise StepFailure(descriptor.name, str(e), self._completed) from e

        if missing:
            warning(f"[ORCHESTRATOR] Missing required field(s) {missing} in step {descriptor.name}")
            warnings.warn(ValidationWarning(descriptor.name, missing), stacklevel=2)

        return AnalysisStepResult(
            step=descriptor.name,
            parsed_result=parsed,
            anchors=extract_anchors(parsed),
            backend=response.backend or self.backend.identifier,
            tokens_used=response.token_usage,
            context_steps=tuple(context),
            validation_warnings=missing,
        )

    def _notify_progress(self, callback: ProgressCallback | None, phase: str, current: int,
                         total: int, message: str) -> None:
        """Send progress update if callback provided."""
        if callback:
            try:
                callback(phase, current, total, message)
            except Exception as e:
                debug_log(f"[ORCHESTRATOR] Progress callback error: {e}")
