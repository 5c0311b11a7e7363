"""
DeepInfra inference API.

Chat goes through the raw inference endpoint with the Llama 3.1 chat
template; embeddings use the same endpoint family with an `inputs` list.
"""

from typing import Dict, List

import requests

from query_understanding.exceptions import ResponseParseError
from query_understanding.llm.types import (
    ChatMessage,
    EmbeddingRequest,
    EmbeddingResponse,
    GenerateRequest,
    GenerateResponse,
)
from .base import HEALTH_CHECK_TIMEOUT, BackendAdapter, extract_path, register_adapter


LLAMA_STOP_TOKENS = ["<|eot_id|>", "<|end_of_text|>", "<|eom_id|>"]


def format_llama3_prompt(messages: List[ChatMessage]) -> str:
    """Render messages with the Llama 3.1 chat template, ending on the assistant header."""
    parts = ["<|begin_of_text|>"]
    for message in messages:
        parts.append(
            f"<|start_header_id|>{message.role}<|end_header_id|>\n\n{message.content}<|eot_id|>"
        )
    parts.append("<|start_header_id|>assistant<|end_header_id|>\n\n")
    return "".join(parts)


@register_adapter("deepinfra")
class DeepInfraAdapter(BackendAdapter):

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.settings.api_key}",
            "Content-Type": "application/json",
        }

    @property
    def inference_url(self) -> str:
        return f"{self.base_url}/{self.model}"

    @property
    def embedding_url(self) -> str:
        return f"{self.base_url}/{self.settings.embedding_model}"

    def generate(self, request: GenerateRequest) -> GenerateResponse:
        payload = {
            "input": format_llama3_prompt(request.messages),
            "temperature": request.temperature,
            "max_tokens": request.max_tokens,
            "stop": request.stop or LLAMA_STOP_TOKENS,
        }
        data = self._post(self.inference_url, payload)

        try:
            result = extract_path(data, "results", 0)
            text = extract_path(result, "generated_text")
        except ResponseParseError as e:
            raise self._malformed(str(e))
        if not isinstance(text, str):
            raise self._malformed("generated_text is not a string")

        usage = {}
        status = data.get("inference_status") or {}
        if "tokens_generated" in status:
            usage = {
                "prompt_tokens": status.get("tokens_input", 0),
                "completion_tokens": status.get("tokens_generated", 0),
            }

        return GenerateResponse(
            text=text.strip(),
            backend=self.name,
            model=self.model,
            finish_reason=result.get("finish_reason") if isinstance(result, dict) else None,
            usage=usage,
        )

    def get_embedding(self, request: EmbeddingRequest) -> EmbeddingResponse:
        data = self._post(self.embedding_url, {"inputs": [request.text]})
        try:
            vector = extract_path(data, "embeddings", 0)
        except ResponseParseError as e:
            raise self._malformed(str(e))
        self._check_dimensions(vector)
        return EmbeddingResponse(
            vector=[float(v) for v in vector],
            backend=self.name,
            model=self.settings.embedding_model,
        )

    def health_check(self) -> bool:
        if not self.settings.api_key:
            return False
        try:
            response = requests.post(
                self.inference_url,
                json={"input": "ping", "max_tokens": 1},
                headers=self._headers(),
                timeout=HEALTH_CHECK_TIMEOUT,
            )
            return response.status_code == 200
        except requests.exceptions.RequestException:
            return False
