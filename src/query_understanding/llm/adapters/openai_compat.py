"""
OpenAI-compatible chat API.

Works with OpenAI itself and with self-hosted servers that expose the same
wire format (vLLM: `vllm serve <model> --port 8000`, base_url
http://localhost:8000/v1).
"""

from typing import Dict

import requests

from query_understanding.exceptions import ResponseParseError
from query_understanding.llm.config import BackendSettings
from query_understanding.llm.types import (
    EmbeddingRequest,
    EmbeddingResponse,
    GenerateRequest,
    GenerateResponse,
)
from .base import HEALTH_CHECK_TIMEOUT, BackendAdapter, extract_path, register_adapter


@register_adapter("openai")
class OpenAICompatibleAdapter(BackendAdapter):

    @classmethod
    def requires_api_key(cls, backend_settings: BackendSettings) -> bool:
        return "api.openai.com" in backend_settings.base_url

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        # Local vLLM servers usually run without a key
        if self.settings.api_key:
            headers["Authorization"] = f"Bearer {self.settings.api_key}"
        return headers

    def health_check(self) -> bool:
        try:
            response = requests.get(
                f"{self.base_url}/models",
                headers=self._headers(),
                timeout=HEALTH_CHECK_TIMEOUT,
            )
            return response.status_code == 200
        except requests.exceptions.RequestException:
            return False

    def generate(self, request: GenerateRequest) -> GenerateResponse:
        payload = {
            "model": self.model,
            "messages": [m.to_dict() for m in request.messages],
            "temperature": request.temperature,
            "max_tokens": request.max_tokens,
        }
        if request.stop:
            payload["stop"] = request.stop

        data = self._post(f"{self.base_url}/chat/completions", payload)

        try:
            choice = extract_path(data, "choices", 0)
            content = extract_path(choice, "message", "content")
        except ResponseParseError as e:
            raise self._malformed(str(e))
        if not content:
            raise self._malformed("empty content")

        return GenerateResponse(
            text=content.strip(),
            backend=self.name,
            model=data.get("model", self.model),
            finish_reason=choice.get("finish_reason"),
            usage=data.get("usage") or {},
        )

    def get_embedding(self, request: EmbeddingRequest) -> EmbeddingResponse:
        payload = {
            "model": self.settings.embedding_model,
            "input": request.text,
            "dimensions": self.embedding_dimensions,
        }
        data = self._post(f"{self.base_url}/embeddings", payload)
        try:
            vector = extract_path(data, "data", 0, "embedding")
        except ResponseParseError as e:
            raise self._malformed(str(e))
        self._check_dimensions(vector)
        return EmbeddingResponse(
            vector=[float(v) for v in vector],
            backend=self.name,
            model=self.settings.embedding_model,
        )
