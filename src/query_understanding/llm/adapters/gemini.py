"""Google Generative Language REST API (generateContent / embedContent)."""

from typing import Dict

import requests

from query_understanding.exceptions import ResponseParseError
from query_understanding.llm.types import (
    EmbeddingRequest,
    EmbeddingResponse,
    GenerateRequest,
    GenerateResponse,
)
from .base import HEALTH_CHECK_TIMEOUT, BackendAdapter, extract_path, register_adapter


# Gemini only knows user/model turns
ROLE_MAP = {"user": "user", "assistant": "model"}


@register_adapter("gemini")
class GeminiAdapter(BackendAdapter):

    def _headers(self) -> Dict[str, str]:
        return {
            "x-goog-api-key": self.settings.api_key or "",
            "Content-Type": "application/json",
        }

    def _model_url(self, model: str, method: str) -> str:
        return f"{self.base_url}/models/{model}:{method}"

    def build_payload(self, request: GenerateRequest) -> dict:
        payload = {
            "contents": [
                {"role": ROLE_MAP.get(m.role, "user"), "parts": [{"text": m.content}]}
                for m in request.conversation
            ],
            "generationConfig": {
                "temperature": request.temperature,
                "maxOutputTokens": request.max_tokens,
            },
        }
        if request.stop:
            payload["generationConfig"]["stopSequences"] = request.stop
        system_prompt = request.system_prompt
        if system_prompt:
            payload["systemInstruction"] = {"parts": [{"text": system_prompt}]}
        return payload

    def generate(self, request: GenerateRequest) -> GenerateResponse:
        data = self._post(self._model_url(self.model, "generateContent"), self.build_payload(request))

        try:
            candidate = extract_path(data, "candidates", 0)
            parts = extract_path(candidate, "content", "parts")
        except ResponseParseError as e:
            raise self._malformed(str(e))
        text = "".join(part.get("text", "") for part in parts if isinstance(part, dict))

        usage_meta = data.get("usageMetadata") or {}
        return GenerateResponse(
            text=text.strip(),
            backend=self.name,
            model=self.model,
            finish_reason=candidate.get("finishReason"),
            usage={
                "prompt_tokens": usage_meta.get("promptTokenCount", 0),
                "completion_tokens": usage_meta.get("candidatesTokenCount", 0),
            },
        )

    def get_embedding(self, request: EmbeddingRequest) -> EmbeddingResponse:
        model = self.settings.embedding_model
        payload = {
            "model": f"models/{model}",
            "content": {"parts": [{"text": request.text}]},
        }
        data = self._post(self._model_url(model, "embedContent"), payload)
        try:
            vector = extract_path(data, "embedding", "values")
        except ResponseParseError as e:
            raise self._malformed(str(e))
        self._check_dimensions(vector)
        return EmbeddingResponse(vector=[float(v) for v in vector], backend=self.name, model=model)

    def health_check(self) -> bool:
        if not self.settings.api_key:
            return False
        try:
            response = requests.get(
                f"{self.base_url}/models/{self.model}",
                headers=self._headers(),
                timeout=HEALTH_CHECK_TIMEOUT,
            )
            return response.status_code == 200
        except requests.exceptions.RequestException:
            return False
