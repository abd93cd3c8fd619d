"""
Generation backend contract.

Every backend (live Ollama, offline generator, test doubles) takes a
GenerationRequest and returns a GenerationResponse. The orchestrator only
ever talks to this interface, so backends can be swapped freely.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass(frozen=True)
class GenerationRequest:
    """
    One structured-generation call.

    The first five fields are the contract every backend must honour. The
    remaining fields describe where the request came from; live backends
    ignore them, the offline generator uses them to build its placeholder.
    """

    system_instructions: str
    user_content: str
    response_format: str = "json"
    temperature: float = 0.3
    token_budget: int = 4000
    step: str | None = None
    required_fields: tuple[str, ...] = ()
    source_text: str | None = None
    prior_steps: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class GenerationResponse:
    text: str
    token_usage: int = 0
    backend: str = ""


class GenerationBackend(ABC):
    """Stateless request/response text generator."""

    @property
    @abstractmethod
    def identifier(self) -> str:
        """Name recorded on each step result (model tag or 'offline')."""

    @abstractmethod
    def generate(self, request: GenerationRequest) -> GenerationResponse:
        """
        Run one generation.

        Raises:
            GenerationError: On any transient failure worth retrying
        """
