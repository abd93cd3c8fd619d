"""
Background analysis runner.

submit() records a queued analysis, starts an AnalysisWorker thread and
returns the analysis id at once; callers poll the status store for the
outcome. Each worker runs extraction, chunking and the step pipeline for
one judgment and reports every outcome through the StatusSink:

    queued -> processing -> completed (result) | failed (error)

Failure messages name the phase that failed (extraction, chunking,
analysis); for analysis failures the message also names the step.
"""

import threading
import uuid
from pathlib import Path
from typing import Mapping, Sequence

from judgment_analysis.ai import GenerationBackend, create_backend
from judgment_analysis.chunking_engine import JudgmentChunk, JudgmentChunker
from judgment_analysis.exceptions import AnalysisCancelled, StepFailure
from judgment_analysis.extraction import ExtractionResult, PDFExtractor
from judgment_analysis.logging_config import Timer, critical, debug_log, error, info

from .orchestrator import CompleteAnalysisResult, StepOrchestrator
from .retry import DEFAULT_RETRY_POLICY, RetryPolicy
from .status_store import STATUS_COMPLETED, STATUS_FAILED, STATUS_PROCESSING, StatusSink


class _PhaseError(Exception):
    """Wraps a failure with the pipeline phase it happened in."""

    def __init__(self, phase: str, cause: BaseException):
        super().__init__(f"{phase} phase failed: {cause}")
        self.phase = phase
        self.cause = cause


class AnalysisWorker(threading.Thread):
    """
    Daemon thread running one full analysis.

    stop() sets the cancellation event; the pipeline notices it at the next
    page or step boundary (or during a retry backoff) and the record ends
    up 'failed' with a cancellation message.
    """

    def __init__(self, runner: "AnalysisRunner", judgment_id: str, analysis_id: str):
        super().__init__(daemon=True, name=f"analysis-{analysis_id}")
        self.runner = runner
        self.judgment_id = judgment_id
        self.analysis_id = analysis_id
        self._stop_event = threading.Event()

    def run(self):
        debug_log(f"[RUNNER] Worker started for analysis {self.analysis_id}")
        try:
            self.runner.run_full_analysis(self.judgment_id, self.analysis_id, cancel_event=self._stop_event)
        finally:
            self.runner._release_worker(self.analysis_id)
        debug_log(f"[RUNNER] Worker finished for analysis {self.analysis_id}")

    def stop(self):
        self._stop_event.set()


class AnalysisRunner:
    """
    Runs judgment analyses in the background and records their status.

    Example:
        store = InMemoryStatusStore()
        runner = AnalysisRunner(store, documents={"J-1": "judgment.pdf"})
        analysis_id = runner.submit("J-1")
        runner.wait(analysis_id)
        print(store.get(analysis_id).status)
    """

    def __init__(
        self,
        status_sink: StatusSink,
        backend: GenerationBackend | None = None,
        documents: Mapping[str, str | Path] | None = None,
        extractor: PDFExtractor | None = None,
        chunker: JudgmentChunker | None = None,
        retry_policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    ):
        """
        Args:
            status_sink: Where status records are created and updated
            backend: Generation backend (default: create_backend(), honouring OFFLINE_MODE)
            documents: Judgment id -> PDF path
            extractor: PDF extractor (default PDFExtractor())
            chunker: Chunker (default JudgmentChunker())
            retry_policy: Retry policy for every generation call
        """
        self.status_sink = status_sink
        self.backend = backend or create_backend()
        self.documents = dict(documents or {})
        self.extractor = extractor or PDFExtractor()
        self.chunker = chunker or JudgmentChunker()
        self.retry_policy = retry_policy
        self._workers: dict[str, AnalysisWorker] = {}
        self._lock = threading.Lock()

    def register_document(self, judgment_id: str, path: str | Path):
        self.documents[str(judgment_id)] = Path(path)

    @property
    def active_analyses(self) -> list[str]:
        """Ids of analyses whose worker thread has not finished yet."""
        with self._lock:
            return list(self._workers)

    def _release_worker(self, analysis_id: str):
        with self._lock:
            self._workers.pop(analysis_id, None)

    def submit(self, judgment_id: str, analysis_id: str | None = None) -> str:
        """
        Queue an analysis and start it on a worker thread.

        Returns:
            The analysis id (generated when not supplied)
        """
        analysis_id = analysis_id or uuid.uuid4().hex
        self.status_sink.create(analysis_id, str(judgment_id))

        worker = AnalysisWorker(self, str(judgment_id), analysis_id)
        with self._lock:
            self._workers[analysis_id] = worker
        worker.start()

        info(f"[RUNNER] Queued analysis {analysis_id} for judgment {judgment_id}")
        return analysis_id

    def cancel(self, analysis_id: str) -> bool:
        """Signal a running analysis to stop. Returns False if it is unknown or finished."""
        with self._lock:
            worker = self._workers.get(analysis_id)
        if worker is None or not worker.is_alive():
            return False
        worker.stop()
        return True

    def wait(self, analysis_id: str, timeout: float | None = None) -> bool:
        """Block until the analysis worker exits. Returns True if it has finished."""
        with self._lock:
            worker = self._workers.get(analysis_id)
        if worker is None:
            return True
        worker.join(timeout)
        return not worker.is_alive()

    def run_full_analysis(
        self,
        judgment_id: str,
        analysis_id: str,
        extraction_result: ExtractionResult | None = None,
        chunks: Sequence[JudgmentChunk] | None = None,
        cancel_event: threading.Event | None = None,
    ) -> CompleteAnalysisResult | None:
        """
        Run extraction, chunking and analysis for one judgment.

        When extraction_result and chunks are both supplied the document is
        not re-read. Every outcome is written to the status sink; nothing is
        raised to the caller.

        Returns:
            The CompleteAnalysisResult, or None if the run failed
        """
        info(f"[RUNNER] Starting analysis {analysis_id} for judgment {judgment_id}")
        self.status_sink.update(analysis_id, status=STATUS_PROCESSING)

        try:
            with Timer(f"Full analysis {analysis_id}"):
                if extraction_result is None or chunks is None:
                    chunks = self._prepare_chunks(judgment_id, cancel_event)

                orchestrator = StepOrchestrator(backend=self.backend, retry_policy=self.retry_policy)
                try:
                    result = orchestrator.run(chunks, cancel_event=cancel_event)
                except (StepFailure, AnalysisCancelled) as e:
                    raise _PhaseError("analysis", e) from e

        except _PhaseError as e:
            if isinstance(e.cause, StepFailure):
                debug_log(
                    f"[RUNNER] Analysis {analysis_id}: steps completed before failure: "
                    f"{list(e.cause.completed_steps)}"
                )
            error(f"[RUNNER] Analysis failed for judgment {judgment_id}: {e}")
            self.status_sink.update(analysis_id, status=STATUS_FAILED, error=str(e))
            return None
        except Exception as e:
            critical(f"[RUNNER] Unexpected failure in analysis {analysis_id} for judgment {judgment_id}: {e}")
            self.status_sink.update(analysis_id, status=STATUS_FAILED, error=str(e) or type(e).__name__)
            return None

        self.status_sink.update(analysis_id, status=STATUS_COMPLETED, result=result.to_dict(), error=None)
        info(f"[RUNNER] Analysis {analysis_id} completed. Total tokens: {result.total_tokens_used}")
        return result

    def _prepare_chunks(self, judgment_id: str, cancel_event) -> tuple[JudgmentChunk, ...]:
        path = self.documents.get(str(judgment_id))
        if path is None:
            raise _PhaseError("extraction", LookupError(f"Judgment {judgment_id} not found or has no file"))

        try:
            extraction = self.extractor.extract_from_path(path, cancel_event=cancel_event)
        except Exception as e:
            raise _PhaseError("extraction", e) from e

        debug_log(f"[RUNNER] Chunking {len(extraction.pages)} pages ({extraction.extraction_method})")
        try:
            chunking = self.chunker.chunk_pages(extraction.pages, judgment_id)
        except Exception as e:
            raise _PhaseError("chunking", e) from e
        return chunking.chunks
