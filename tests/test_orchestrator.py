"""
Tests for the StepOrchestrator.

A recording fake backend answers every step with a JSON object carrying a
per-step marker, so prompts can be checked for exactly which earlier results
they contain.
"""

import json
import sys
import threading
from pathlib import Path
from unittest.mock import MagicMock

import pytest

# Add project root to path for imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from judgment_analysis.ai import GenerationBackend, GenerationResponse
from judgment_analysis.analysis import (
    PipelineState,
    PipelineStatus,
    RetryPolicy,
    StepOrchestrator,
    parse_step_response,
)
from judgment_analysis.analysis.steps import ANALYSIS_STEPS, STEP_NAMES, get_step
from judgment_analysis.chunking_engine import ChunkAnchor, JudgmentChunk
from judgment_analysis.exceptions import (
    AnalysisCancelled,
    GenerationError,
    MalformedResponseError,
    StepFailure,
    ValidationWarning,
)


class RecordingBackend(GenerationBackend):
    """Answers each step with a marker object and records every request."""

    def __init__(self, tokens=10, omit_fields_for=(), fail_on=None, on_generate=None):
        self.requests = []
        self.tokens = tokens
        self.omit_fields_for = set(omit_fields_for)
        self.fail_on = fail_on
        self.on_generate = on_generate

    @property
    def identifier(self):
        return "fake-model"

    def generate(self, request):
        self.requests.append(request)
        if self.on_generate:
            self.on_generate(request)
        if request.step == self.fail_on:
            raise GenerationError("backend unavailable")

        result = {
            "marker": f"MARKER-{request.step}",
            "items": [{"text": "point", "anchor": {"page": 1, "paragraph": 2}}],
        }
        if request.step not in self.omit_fields_for:
            result.update({name: "value" for name in request.required_fields})
        return GenerationResponse(text=json.dumps(result), token_usage=self.tokens, backend=self.identifier)


def make_chunks(count):
    chunks = []
    for i in range(count):
        text = f"<C{i:03d}> paragraph text"
        chunks.append(JudgmentChunk(
            chunk_id=f"J1-1-{i + 1}-{i}",
            text=text,
            anchor=ChunkAnchor(page_number=1, paragraph_number=i + 1, start_char=0, end_char=len(text)),
            word_count=3,
            char_count=len(text),
        ))
    return chunks


def chunk_indexes(request):
    return [int(token[2:5]) for token in request.source_text.split() if token.startswith("<C")]


@pytest.fixture
def no_sleep():
    return MagicMock()


class TestStepSequence:
    """Tests for ordering and context propagation."""

    def test_runs_all_steps_in_order(self, no_sleep):
        backend = RecordingBackend()
        result = StepOrchestrator(backend, sleep=no_sleep).run(make_chunks(5))

        assert [r.step for r in backend.requests] == list(STEP_NAMES)
        assert list(result.steps) == list(STEP_NAMES)
        assert result.total_tokens_used == 100
        assert result.summary["marker"] == "MARKER-summary"

    def test_each_step_sees_exactly_the_earlier_steps(self, no_sleep):
        backend = RecordingBackend()
        result = StepOrchestrator(backend, sleep=no_sleep).run(make_chunks(5))

        for k, request in enumerate(backend.requests):
            earlier = STEP_NAMES[:k]
            assert request.prior_steps == earlier
            assert result.steps[STEP_NAMES[k]].context_steps == earlier
            for name in STEP_NAMES:
                assert (f'"MARKER-{name}"' in request.user_content) == (name in earlier)

    def test_step_result_fields(self, no_sleep):
        result = StepOrchestrator(RecordingBackend(), sleep=no_sleep).run(make_chunks(3))
        facts = result.steps["facts"]

        assert facts.backend == "fake-model"
        assert facts.tokens_used == 10
        assert facts.parsed_result["marker"] == "MARKER-facts"
        assert [a.path for a in facts.anchors] == ["items[0]"]

        as_dict = facts.to_dict()
        assert as_dict["model"] == "fake-model"
        assert as_dict["tokensUsed"] == 10
        assert as_dict["anchors"] == [{"path": "items[0]", "anchor": {"page": 1, "paragraph": 2}}]
        assert set(result.to_dict()) == {"steps", "summary", "totalTokensUsed", "completedAt"}

    def test_request_parameters(self, no_sleep):
        backend = RecordingBackend()
        StepOrchestrator(backend, sleep=no_sleep).run(make_chunks(2), steps=[get_step("timeline")])

        request = backend.requests[0]
        assert request.response_format == "json"
        assert request.temperature == 0.3
        assert request.token_budget == 4000
        assert request.required_fields == ("events",)
        assert request.system_instructions == get_step("timeline").system_prompt

    def test_progress_callback(self, no_sleep):
        progress = MagicMock()
        StepOrchestrator(RecordingBackend(), sleep=no_sleep).run(make_chunks(2), progress_callback=progress)

        assert progress.call_count == len(STEP_NAMES) + 1
        assert progress.call_args_list[0].args[:3] == ("analysis", 0, 10)
        assert progress.call_args_list[-1].args[:3] == ("analysis", 10, 10)

    def test_duplicate_step_names_rejected(self):
        with pytest.raises(ValueError):
            StepOrchestrator(RecordingBackend(), steps=[get_step("facts"), get_step("facts")])


class TestChunkWindows:
    """Tests for positional chunk selection."""

    def test_windows_over_fifty_chunks(self, no_sleep):
        backend = RecordingBackend()
        StepOrchestrator(backend, sleep=no_sleep).run(make_chunks(50))
        by_step = {r.step: chunk_indexes(r) for r in backend.requests}

        assert by_step["metadata"] == list(range(0, 20))
        assert by_step["facts"] == list(range(10, 30))
        assert by_step["timeline"] == list(range(10, 30))
        assert by_step["issues"] == list(range(15, 35))
        assert by_step["ratio"] == list(range(30, 50))
        assert by_step["precedents"] == list(range(30, 50))
        assert by_step["summary"] == list(range(0, 20))
        assert all(len(indexes) <= 20 for indexes in by_step.values())

    def test_short_documents_use_every_chunk(self, no_sleep):
        backend = RecordingBackend()
        StepOrchestrator(backend, sleep=no_sleep).run(make_chunks(4))

        for request in backend.requests:
            assert chunk_indexes(request) == [0, 1, 2, 3]

    def test_chunk_texts_joined_with_blank_line(self):
        orchestrator = StepOrchestrator(RecordingBackend())
        selected = orchestrator.select_chunks(make_chunks(2), get_step("metadata"))
        assert [c.text for c in selected] == ["<C000> paragraph text", "<C001> paragraph text"]


class TestFailures:
    """Tests for retries, step failure and validation warnings."""

    def test_malformed_output_fails_after_three_attempts(self, no_sleep):
        backend = MagicMock(spec=GenerationBackend)
        backend.identifier = "fake-model"
        backend.generate.return_value = GenerationResponse(text="Sorry, I cannot help with that.")
        orchestrator = StepOrchestrator(backend, retry_policy=RetryPolicy(), sleep=no_sleep)

        with pytest.raises(StepFailure) as exc_info:
            orchestrator.run(make_chunks(3))

        assert exc_info.value.step == "metadata"
        assert "metadata" in str(exc_info.value)
        assert backend.generate.call_count == 3
        assert [c.args[0] for c in no_sleep.call_args_list] == [1.0, 2.0]
        assert orchestrator.state.status is PipelineStatus.FAILED
        assert orchestrator.completed_steps == {}

    def test_transient_error_then_success(self, no_sleep):
        backend = RecordingBackend()
        real_generate = backend.generate

        calls = {"n": 0}

        def flaky(request):
            calls["n"] += 1
            if calls["n"] == 1:
                raise GenerationError("timeout")
            return real_generate(request)

        backend.generate = flaky
        result = StepOrchestrator(backend, sleep=no_sleep).run(make_chunks(2), steps=[get_step("metadata")])

        assert result.steps["metadata"].parsed_result["marker"] == "MARKER-metadata"
        assert [c.args[0] for c in no_sleep.call_args_list] == [1.0]

    def test_failure_keeps_completed_steps(self, no_sleep):
        backend = RecordingBackend(fail_on="issues")
        orchestrator = StepOrchestrator(backend, sleep=no_sleep)

        with pytest.raises(StepFailure) as exc_info:
            orchestrator.run(make_chunks(3))

        assert exc_info.value.step == "issues"
        assert list(exc_info.value.completed_steps) == ["metadata", "facts", "timeline"]
        assert list(orchestrator.completed_steps) == ["metadata", "facts", "timeline"]
        assert [r.step for r in backend.requests].count("issues") == 3
        assert "arguments" not in [r.step for r in backend.requests]

    def test_missing_required_fields_warn_but_keep_result(self, no_sleep):
        backend = RecordingBackend(omit_fields_for=("timeline",))

        with pytest.warns(ValidationWarning, match="events"):
            result = StepOrchestrator(backend, sleep=no_sleep).run(make_chunks(2))

        assert result.steps["timeline"].validation_warnings == ["events"]
        assert result.steps["timeline"].parsed_result["marker"] == "MARKER-timeline"
        assert result.steps["facts"].validation_warnings == []
        assert list(result.steps) == list(STEP_NAMES)

    def test_cancellation_between_steps(self, no_sleep):
        cancel_event = threading.Event()

        def cancel_after_facts(request):
            if request.step == "facts":
                cancel_event.set()

        backend = RecordingBackend(on_generate=cancel_after_facts)
        orchestrator = StepOrchestrator(backend, sleep=no_sleep)

        with pytest.raises(AnalysisCancelled):
            orchestrator.run(make_chunks(2), cancel_event=cancel_event)

        assert [r.step for r in backend.requests] == ["metadata", "facts"]
        assert list(orchestrator.completed_steps) == ["metadata", "facts"]
        assert orchestrator.state.status is PipelineStatus.FAILED

    def test_orchestrator_can_rerun_after_failure(self, no_sleep):
        orchestrator = StepOrchestrator(RecordingBackend(fail_on="metadata"), sleep=no_sleep)
        with pytest.raises(StepFailure):
            orchestrator.run(make_chunks(2))

        orchestrator.backend = RecordingBackend()
        result = orchestrator.run(make_chunks(2))

        assert list(result.steps) == list(STEP_NAMES)
        assert orchestrator.state.status is PipelineStatus.COMPLETED


class TestParseStepResponse:
    """Tests for parse_step_response."""

    def test_object_with_missing_fields(self):
        parsed, missing = parse_step_response('{"events": []}', get_step("timeline"))
        assert parsed == {"events": []}
        assert missing == []

        _, missing = parse_step_response('{"caseName": "X"}', get_step("metadata"))
        assert missing == ["citation", "court", "bench", "judges", "date", "anchors"]

    @pytest.mark.parametrize("text", ["", "   ", "not json", "[1, 2]", '"string"'])
    def test_malformed(self, text):
        with pytest.raises(MalformedResponseError):
            parse_step_response(text, get_step("facts"))


class TestPipelineState:
    """Tests for the pipeline state machine."""

    def test_happy_path(self):
        state = PipelineState()
        for step in ANALYSIS_STEPS:
            state.enter_step(step.name)
            assert state.status is PipelineStatus.RUNNING
            assert state.step == step.name
        state.complete()

        assert state.status is PipelineStatus.COMPLETED
        assert state.is_terminal

    def test_failure_is_terminal(self):
        state = PipelineState()
        state.enter_step("metadata")
        state.fail()

        assert state.status is PipelineStatus.FAILED
        assert state.step == "metadata"
        with pytest.raises(RuntimeError):
            state.enter_step("facts")

    def test_cannot_fail_before_start(self):
        with pytest.raises(RuntimeError):
            PipelineState().fail()

    def test_reset(self):
        state = PipelineState()
        state.enter_step("metadata")
        with pytest.raises(RuntimeError):
            state.reset()
        state.complete()
        state.reset()
        assert state.status is PipelineStatus.NOT_STARTED
