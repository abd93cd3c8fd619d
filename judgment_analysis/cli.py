"""
Command-line interface for the judgment analysis pipeline.

Runs extraction, chunking and (unless --chunks-only) the ten analysis steps
on one PDF in the foreground and writes the result as JSON.
"""

import argparse
import json
import sys
import uuid
from pathlib import Path

from judgment_analysis.ai import create_backend
from judgment_analysis.analysis import AnalysisRunner, InMemoryStatusStore
from judgment_analysis.analysis.status_store import STATUS_COMPLETED
from judgment_analysis.chunking_engine import JudgmentChunker
from judgment_analysis.exceptions import JudgmentAnalysisError
from judgment_analysis.extraction import PDFExtractor
from judgment_analysis.logging_config import close_debug_log, error, info


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="judgment-analysis",
        description="Judgment Analysis - Extract, chunk and analyze a court judgment PDF",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Full analysis against the local Ollama server
  judgment-analysis judgment.pdf --output analysis.json

  # Deterministic placeholder analysis, no model required
  judgment-analysis judgment.pdf --offline

  # Only extract and chunk
  judgment-analysis judgment.pdf --chunks-only --output chunks.json

  # Debug mode (verbose logging)
  DEBUG=true judgment-analysis judgment.pdf --offline
        """
    )
    parser.add_argument('pdf', help='Path to the judgment PDF')
    parser.add_argument(
        '--judgment-id',
        default=None,
        help='Identifier used in chunk ids (default: the file name stem)'
    )
    parser.add_argument(
        '--offline',
        action='store_true',
        default=None,
        help='Use the offline placeholder generator instead of Ollama'
    )
    parser.add_argument(
        '--output',
        default=None,
        help='Write JSON here instead of stdout'
    )
    parser.add_argument(
        '--chunks-only',
        action='store_true',
        help='Stop after chunking and output the chunks'
    )
    return parser


def _write_output(payload: dict, output: str | None):
    text = json.dumps(payload, indent=2, ensure_ascii=False)
    if output:
        Path(output).write_text(text, encoding='utf-8')
        info(f"Saved result to: {output}")
    else:
        print(text)


def main(argv=None) -> int:
    """Entry point. Returns the process exit code."""
    args = build_parser().parse_args(argv)
    pdf_path = Path(args.pdf)
    judgment_id = args.judgment_id or pdf_path.stem

    try:
        if args.chunks_only:
            extraction = PDFExtractor().extract_from_path(pdf_path)
            chunking = JudgmentChunker().chunk_pages(extraction.pages, judgment_id)
            _write_output({
                "extraction": {
                    "totalPages": extraction.total_pages,
                    "extractionMethod": extraction.extraction_method,
                    "metadata": extraction.metadata.to_dict(),
                },
                **chunking.to_dict(),
            }, args.output)
            return 0

        store = InMemoryStatusStore()
        runner = AnalysisRunner(store, backend=create_backend(offline=args.offline),
                                documents={judgment_id: pdf_path})
        analysis_id = uuid.uuid4().hex
        store.create(analysis_id, judgment_id)
        runner.run_full_analysis(judgment_id, analysis_id)

        record = store.get(analysis_id)
        if record.status != STATUS_COMPLETED:
            error(f"Analysis failed: {record.error}")
            print(f"[ERROR] {record.error}", file=sys.stderr)
            return 1

        _write_output(record.result, args.output)
        return 0

    except JudgmentAnalysisError as e:
        error(f"Pipeline failed: {e}")
        print(f"[ERROR] {e}", file=sys.stderr)
        return 1
    finally:
        close_debug_log()


if __name__ == "__main__":
    sys.exit(main())
