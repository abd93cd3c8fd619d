"""
Offline Generation Backend

Deterministic, non-networked stand-in for a live model. It answers every
step with a clearly labelled placeholder object built from simple sentence
and pattern heuristics over the first part of the step's source text, so the
full pipeline can run without Ollama (tests, demos, degraded operation).

The output always carries:
- step, anchor ("offline:<step>"), notes, contextPreview, derivedFrom
- a few step-specific heuristic fields
- every required field of the step, set to null when no heuristic fills it
"""

import json
import re

from ..config import OFFLINE_PREVIEW_CHARS
from ..logging_config import debug_log
from .generation_backend import GenerationBackend, GenerationRequest, GenerationResponse

OFFLINE_NOTES = (
    "Offline placeholder generated locally. "
    "Review and replace with a locally-run model's output if needed."
)

SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+")
CASE_TITLE_PATTERN = re.compile(r"\b([A-Z]\w+)\s+v\.\s+([A-Z]\w+)")
CITATION_PATTERN = re.compile(r"\b[A-Z]{2,} v\. [A-Z]\w+\b|\b\d{4} SCC \d+\b")
DATE_PATTERN = re.compile(
    r"\b(\d{1,2}[-/ ](?:Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Sept|Oct|Nov|Dec)[a-z]*[-/ ]\d{2,4}"
    r"|\d{4}-\d{2}-\d{2})\b",
    re.IGNORECASE,
)


def make_preview(text: str, limit: int = OFFLINE_PREVIEW_CHARS) -> str:
    """First `limit` characters with whitespace runs collapsed."""
    return re.sub(r"\s+", " ", text[:limit]).strip()


def extract_bullets(text: str, n: int) -> list[str]:
    """First n sentences of text."""
    sentences = [s for s in SENTENCE_BOUNDARY.split(text) if s]
    return sentences[:n]


def extract_citations(text: str) -> list[dict]:
    matches = [{"cite": m.group(0)} for m in CITATION_PATTERN.finditer(text)][:3]
    return matches or [{"cite": None}]


def guess_court(text: str) -> str | None:
    if re.search(r"supreme court", text, re.IGNORECASE):
        return "Supreme Court of India"
    if re.search(r"high court", text, re.IGNORECASE):
        return "High Court"
    return None


def guess_date(text: str) -> str | None:
    match = DATE_PATTERN.search(text)
    return match.group(0) if match else None


def guess_case_title(text: str) -> str | None:
    match = CASE_TITLE_PATTERN.search(text)
    return f"{match.group(1)} v. {match.group(2)}" if match else None


def offline_analysis_for_step(step: str, source_text: str, prior_steps=(),
                              required_fields=()) -> dict:
    """
    Build the placeholder result for one step.

    Args:
        step: Step name (metadata, facts, ...)
        source_text: The judgment text selected for the step
        prior_steps: Names of the steps already completed
        required_fields: Fields the step declares; missing ones are set to None

    Returns:
        dict: JSON-serializable placeholder object
    """
    preview = make_preview(source_text)

    result = {
        "step": step,
        "anchor": f"offline:{step}",
        "notes": OFFLINE_NOTES,
        "contextPreview": preview,
        "derivedFrom": list(prior_steps),
    }

    if step == "metadata":
        result["caseTitle"] = guess_case_title(preview)
        result["court"] = guess_court(preview)
        result["date"] = guess_date(preview)
    elif step == "summary":
        result["brief"] = "This is a brief offline summary scaffold. Replace with a local model's summary."
        result["keyPoints"] = extract_bullets(preview, 3)
    elif step == "facts":
        result["facts"] = extract_bullets(preview, 5)
    elif step == "timeline":
        result["events"] = [
            {"when": f"T{i + 1}", "what": sentence}
            for i, sentence in enumerate(extract_bullets(preview, 4))
        ]
    elif step == "issues":
        result["issues"] = [{"question": sentence} for sentence in extract_bullets(preview, 3)]
    elif step == "ratio":
        result["ratioDecidendi"] = extract_bullets(preview, 2)
    elif step == "obiter":
        result["observations"] = extract_bullets(preview, 2)
    elif step == "precedents":
        result["citations"] = extract_citations(preview)
    else:
        result["details"] = extract_bullets(preview, 3)

    for field_name in required_fields:
        result.setdefault(field_name, None)

    return result


class OfflineBackend(GenerationBackend):
    """GenerationBackend that never leaves the process."""

    @property
    def identifier(self) -> str:
        return "offline"

    def generate(self, request: GenerationRequest) -> GenerationResponse:
        step = request.step or "details"
        source_text = request.source_text if request.source_text is not None else request.user_content
        result = offline_analysis_for_step(
            step,
            source_text,
            prior_steps=request.prior_steps,
            required_fields=request.required_fields,
        )
        debug_log(f"[OFFLINE] {step}: placeholder with {len(result)} fields")
        return GenerationResponse(text=json.dumps(result), token_usage=0, backend=self.identifier)
