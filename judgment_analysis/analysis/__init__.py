"""
Judgment analysis package.

Runs the ordered, context-chaining analysis steps over a judgment's chunks
and tracks background jobs.

Components:
- steps: StepDescriptor catalog (metadata -> facts -> ... -> summary)
- retry: RetryPolicy and the with_retry wrapper
- anchors: annotated value tree and anchor extraction
- orchestrator: StepOrchestrator, the sequential step pipeline
- status_store: StatusSink protocol and InMemoryStatusStore
- runner: AnalysisRunner and its AnalysisWorker threads

Usage:
    from judgment_analysis.analysis import AnalysisRunner, InMemoryStatusStore

    store = InMemoryStatusStore()
    runner = AnalysisRunner(store, documents={"J-1": "judgment.pdf"})
    analysis_id = runner.submit("J-1")
"""

from .anchors import AnchorReference, extract_anchors
from .orchestrator import (
    AnalysisStepResult,
    CompleteAnalysisResult,
    PipelineState,
    PipelineStatus,
    StepOrchestrator,
    parse_step_response,
)
from .retry import DEFAULT_RETRY_POLICY, RetryPolicy, with_retry
from .runner import AnalysisRunner, AnalysisWorker
from .status_store import InMemoryStatusStore, StatusRecord, StatusSink
from .steps import ANALYSIS_STEPS, STEP_NAMES, ChunkWindow, StepDescriptor, get_step, render_prompt

__all__ = [
    "ANALYSIS_STEPS",
    "STEP_NAMES",
    "AnalysisRunner",
    "AnalysisStepResult",
    "AnalysisWorker",
    "AnchorReference",
    "ChunkWindow",
    "CompleteAnalysisResult",
    "DEFAULT_RETRY_POLICY",
    "InMemoryStatusStore",
    "PipelineState",
    "PipelineStatus",
    "RetryPolicy",
    "StatusRecord",
    "StatusSink",
    "StepDescriptor",
    "StepOrchestrator",
    "extract_anchors",
    "get_step",
    "parse_step_response",
    "render_prompt",
    "with_retry",
]
