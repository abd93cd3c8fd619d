"""
Judgment Analysis

Ingests a legal judgment PDF, extracts its text (OCR fallback for scans),
splits it into paragraph-anchored chunks and runs a ten-step structured
analysis (metadata through summary) against a local Ollama model or the
deterministic offline generator.
"""

__version__ = "0.1.0"
