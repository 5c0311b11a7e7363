"""
Backend adapters.

Importing this package registers every bundled adapter:
deepinfra, gemini, openai.
"""

from .base import (
    ADAPTERS,
    BackendAdapter,
    classify_http_error,
    get_adapter_class,
    parse_retry_after,
    register_adapter,
)
from .deepinfra import DeepInfraAdapter, format_llama3_prompt
from .gemini import GeminiAdapter
from .openai_compat import OpenAICompatibleAdapter

__all__ = [
    'ADAPTERS',
    'BackendAdapter',
    'DeepInfraAdapter',
    'GeminiAdapter',
    'OpenAICompatibleAdapter',
    'classify_http_error',
    'format_llama3_prompt',
    'get_adapter_class',
    'parse_retry_after',
    'register_adapter',
]
