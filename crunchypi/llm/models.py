"""
Core dataclasses for talking to a local Ollama server.

This module provides the foundational models for a generation call:
- Server configuration
- The outbound request body
- Wire records decoded from the NDJSON response stream
- Per-call decode state
- Token notifications for the display surface
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


@dataclass(frozen=True)
class OllamaConfig:
    """Ollama server configuration."""
    base_url: str
    model: str
    generate_path: str = "/api/generate"

    # Connection settings
    connect_timeout: float = 10.0
    read_timeout: float = 60.0
    write_timeout: float = 10.0
    pool_timeout: float = 10.0


@dataclass(frozen=True)
class StreamRequest:
    """Body of a generate request."""
    model: str
    prompt: str
    stream: bool = True

    def to_payload(self) -> dict[str, Any]:
        return {"model": self.model, "prompt": self.prompt, "stream": self.stream}


class StreamRecord(BaseModel):
    """One line of the response stream.

    The server names the token field ``response``; anything else on the
    line is ignored.
    """
    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    token: str = Field(alias="response")
    done: bool = False


@dataclass
class DecodeState:
    """Mutable state owned by exactly one in-flight request."""
    pending_bytes: bytes = b""
    accumulated_text: str = ""
    finished: bool = False
    chunk_count: int = 0
    record_count: int = 0
    discarded_lines: int = 0

    def append(self, token: str) -> None:
        self.accumulated_text += token
        self.record_count += 1


@dataclass(frozen=True)
class TokenEvent:
    """A token delivered to the listener as it arrives."""
    text: str


@dataclass(frozen=True)
class StreamingStats:
    """Counters for one finished stream."""
    total_chunks: int
    total_records: int
    discarded_lines: int
    finished: bool
