"""
Crunchypi: stream answers from a local Ollama model.
"""

from .llm import (
    DecodeError,
    OllamaClient,
    OllamaConfig,
    QueueListener,
    StreamDecoder,
    TokenEvent,
    TransportFailure,
)

__all__ = [
    "DecodeError",
    "OllamaClient",
    "OllamaConfig",
    "QueueListener",
    "StreamDecoder",
    "TokenEvent",
    "TransportFailure",
]

__version__ = "0.1.0"
