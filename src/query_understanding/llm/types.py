"""Request/response types shared by the gateway and backend adapters."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class ChatMessage:
    role: str       # system | user | assistant
    content: str

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class GenerateRequest:
    """Chat completion request, vendor neutral."""
    messages: List[ChatMessage]
    temperature: float = 0.3
    max_tokens: int = 1000
    stop: Optional[List[str]] = None

    @property
    def system_prompt(self) -> str:
        return "\n\n".join(m.content for m in self.messages if m.role == "system")

    @property
    def conversation(self) -> List[ChatMessage]:
        """Messages without the system ones."""
        return [m for m in self.messages if m.role != "system"]


@dataclass
class GenerateResponse:
    text: str
    backend: str = ""
    model: str = ""
    finish_reason: Optional[str] = None
    usage: Dict[str, Any] = field(default_factory=dict)
    attempts: int = 1
    latency_ms: float = 0.0


@dataclass
class EmbeddingRequest:
    text: str


@dataclass
class EmbeddingResponse:
    vector: List[float]
    dimensions: int = 0
    backend: str = ""
    model: str = ""

    def __post_init__(self):
        if not self.dimensions:
            self.dimensions = len(self.vector)
