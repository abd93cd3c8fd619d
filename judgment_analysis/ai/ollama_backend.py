"""
Ollama Generation Backend
Runs analysis steps against a local Ollama server through its REST API.

Each step is one non-streaming POST to /api/generate with:
- the step's instructions in the "system" field
- the assembled prompt in "prompt"
- format="json" so the model is constrained to a JSON object
- temperature, num_predict and num_ctx under "options"

Token usage is prompt_eval_count + eval_count. Any transport problem or
non-200 status is raised as GenerationError so the retry policy can decide
whether to try again.
"""

import time

import requests

from ..config import (
    OLLAMA_API_BASE,
    OLLAMA_HEALTH_TIMEOUT_SECONDS,
    OLLAMA_MODEL_NAME,
    OLLAMA_TIMEOUT_SECONDS,
    get_model_config,
)
from ..exceptions import GenerationError
from ..logging_config import debug, debug_log, debug_timing, warning
from .generation_backend import GenerationBackend, GenerationRequest, GenerationResponse


class OllamaBackend(GenerationBackend):
    """
    Live backend backed by an Ollama server.

    Example:
        backend = OllamaBackend(model_name="mistral:7b-instruct")
        if backend.is_available():
            response = backend.generate(GenerationRequest("You are...", "Extract..."))
    """

    def __init__(self, api_base: str = OLLAMA_API_BASE, model_name: str = OLLAMA_MODEL_NAME,
                 timeout: float = OLLAMA_TIMEOUT_SECONDS):
        self.api_base = api_base.rstrip("/")
        self.model_name = model_name
        self.timeout = timeout
        self.model_config = get_model_config(model_name)
        self.is_connected = False

    @property
    def identifier(self) -> str:
        return self.model_name

    def is_available(self) -> bool:
        """
        Probe /api/tags to see whether Ollama is running.

        Returns:
            bool: True if the server answered with 200
        """
        try:
            response = requests.get(f"{self.api_base}/api/tags", timeout=OLLAMA_HEALTH_TIMEOUT_SECONDS)
            self.is_connected = response.status_code == 200
            if self.is_connected:
                debug_log("[OLLAMA] Connection successful")
            else:
                debug_log(f"[OLLAMA] Connection failed: Status {response.status_code}")
        except requests.exceptions.RequestException as e:
            warning(f"[OLLAMA] Not available at {self.api_base}: {e}")
            self.is_connected = False
        return self.is_connected

    def get_available_models(self) -> list[str]:
        """Model tags installed on the server, or an empty list if unreachable."""
        try:
            response = requests.get(f"{self.api_base}/api/tags", timeout=OLLAMA_HEALTH_TIMEOUT_SECONDS)
        except requests.exceptions.RequestException as e:
            debug(f"[OLLAMA] Could not list models: {e}")
            return []
        if response.status_code != 200:
            return []
        return [model.get('name', '') for model in response.json().get('models', [])]

    def health_check(self) -> dict:
        """
        Returns:
            dict: connected flag, api base, configured model and installed models
        """
        connected = self.is_available()
        return {
            'connected': connected,
            'api_base': self.api_base,
            'model': self.model_name,
            'available_models': self.get_available_models() if connected else [],
        }

    def output_budget(self, request: GenerationRequest) -> int:
        """The step's token budget, clamped to the model's max_output_tokens."""
        return min(request.token_budget, self.model_config['max_output_tokens'])

    def build_payload(self, request: GenerationRequest) -> dict:
        payload = {
            "model": self.model_name,
            "system": request.system_instructions,
            "prompt": request.user_content,
            "stream": False,  # Non-streaming keeps token counts in one response body
            "options": {
                "temperature": request.temperature,
                "num_predict": self.output_budget(request),
                "num_ctx": self.model_config['context_window'],
            },
        }
        if request.response_format == "json":
            payload["format"] = "json"
        return payload

    def generate(self, request: GenerationRequest) -> GenerationResponse:
        """
        Send one generation request to Ollama.

        Raises:
            GenerationError: On timeout, connection failure or a non-200 status
        """
        payload = self.build_payload(request)
        step = request.step or "generation"

        debug_log(f"[OLLAMA] {step}: model={self.model_name}, prompt={len(request.user_content)} chars, "
                  f"temp={request.temperature}, budget={request.token_budget}")

        estimated_tokens = (len(request.system_instructions) + len(request.user_content)) // 4
        if estimated_tokens > self.model_config['context_window'] - self.output_budget(request):
            warning(
                f"[OLLAMA] {step}: prompt (~{estimated_tokens} tokens) may be truncated, "
                f"context window is {self.model_config['context_window']} tokens"
            )

        start_time = time.time()
        try:
            response = requests.post(
                f"{self.api_base}/api/generate",
                json=payload,
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout as e:
            raise GenerationError(f"Ollama timed out after {self.timeout} seconds") from e
        except requests.exceptions.ConnectionError as e:
            raise GenerationError(
                f"Cannot connect to Ollama at {self.api_base}. Is Ollama running? Start with: ollama serve"
            ) from e
        except requests.exceptions.RequestException as e:
            raise GenerationError(f"Ollama request failed: {e}") from e

        if response.status_code != 200:
            raise GenerationError(f"Ollama returned status {response.status_code}: {response.text[:200]}")

        try:
            result = response.json()
        except ValueError as e:
            raise GenerationError(f"Ollama returned a non-JSON envelope: {e}") from e

        generated_text = result.get('response', '') or ''
        tokens_used = (result.get('prompt_eval_count') or 0) + (result.get('eval_count') or 0)
        elapsed = time.time() - start_time

        debug_timing(f"[OLLAMA] {step} generation ({tokens_used} tokens, {len(generated_text)} chars)", elapsed)
        debug_log(f"[OLLAMA] {step}: response preview: {generated_text[:200]}")

        return GenerationResponse(text=generated_text.strip(), token_usage=tokens_used, backend=self.model_name)
