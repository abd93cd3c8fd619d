"""
Generation backends for the analysis steps.

- OllamaBackend: live local model through the Ollama REST API
- OfflineBackend: deterministic placeholder generator, no network

Both implement GenerationBackend, so the orchestrator never needs to know
which one it is talking to. create_backend() picks one from OFFLINE_MODE.
"""

from ..config import OFFLINE_MODE
from ..logging_config import debug_log
from .generation_backend import GenerationBackend, GenerationRequest, GenerationResponse
from .offline_backend import OfflineBackend
from .ollama_backend import OllamaBackend


def create_backend(offline: bool | None = None, **ollama_kwargs) -> GenerationBackend:
    """
    Build the configured backend.

    Args:
        offline: Force offline (True) or live (False); None follows OFFLINE_MODE
        **ollama_kwargs: Passed to OllamaBackend (api_base, model_name, timeout)
    """
    if offline is None:
        offline = OFFLINE_MODE
    if offline:
        debug_log("[AI] Using offline generation backend")
        return OfflineBackend()
    backend = OllamaBackend(**ollama_kwargs)
    debug_log(f"[AI] Using Ollama backend {backend.model_name} at {backend.api_base}")
    return backend


__all__ = [
    'GenerationBackend',
    'GenerationRequest',
    'GenerationResponse',
    'OfflineBackend',
    'OllamaBackend',
    'create_backend',
]
