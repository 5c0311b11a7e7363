"""
Generation gateway package

Exports:
- GenerationGateway, create_gateway: resilient multi-backend client
- GatewayConfig, BackendSettings: frozen configuration
- HealthStore, InMemoryHealthStore, get_health_store: circuit breaker state
- ChatMessage, GenerateRequest, GenerateResponse, EmbeddingRequest, EmbeddingResponse
"""

from .types import ChatMessage, EmbeddingRequest, EmbeddingResponse, GenerateRequest, GenerateResponse
from .config import BackendSettings, GatewayConfig
from .health import BackendHealth, HealthStore, InMemoryHealthStore, get_health_store
from .gateway import GatewayStats, GenerationGateway, create_gateway

__all__ = [
    'BackendHealth',
    'BackendSettings',
    'ChatMessage',
    'EmbeddingRequest',
    'EmbeddingResponse',
    'GatewayConfig',
    'GatewayStats',
    'GenerateRequest',
    'GenerateResponse',
    'GenerationGateway',
    'HealthStore',
    'InMemoryHealthStore',
    'create_gateway',
    'get_health_store',
]
