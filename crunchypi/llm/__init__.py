"""
Ollama integration for Crunchypi.

This package provides:
- Dataclass models for requests, wire records and decode state
- Incremental NDJSON stream decoding with token listeners
- A streaming and a non-streaming client for the generate endpoint
"""

from __future__ import annotations

from .client import OllamaClient
from .exceptions import DecodeError, TransportFailure
from .models import (
    DecodeState,
    OllamaConfig,
    StreamingStats,
    StreamRecord,
    StreamRequest,
    TokenEvent,
)
from .streaming import Listener, QueueListener, StreamDecoder, null_listener

__all__ = [
    # Models
    "DecodeState",
    # Exceptions
    "DecodeError",
    "Listener",
    # Client
    "OllamaClient",
    "OllamaConfig",
    "QueueListener",
    "StreamDecoder",
    "StreamRecord",
    "StreamRequest",
    "StreamingStats",
    "TokenEvent",
    "TransportFailure",
    "null_listener",
]
