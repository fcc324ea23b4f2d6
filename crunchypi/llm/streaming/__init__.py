"""
Streaming support for generation calls.

- NDJSON line reassembly across chunk boundaries
- Record parsing with per-line error tolerance
- Push-style token delivery to listeners
"""

from .listeners import Listener, QueueListener, null_listener
from .parser import StreamDecoder, parse_record

__all__ = [
    "Listener",
    "QueueListener",
    "StreamDecoder",
    "null_listener",
    "parse_record",
]
