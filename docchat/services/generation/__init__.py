"""Generation resilience: circuit breaker and retrying client."""

from docchat.services.generation.circuit_breaker import CircuitBreaker
from docchat.services.generation.generation_client import GenerationClient

__all__ = ["CircuitBreaker", "GenerationClient"]
