"""
HTTP client for a locally running Ollama server.

Sends a prompt to the generate endpoint and either streams the response
token by token to a listener or, for the non-streaming variant, parses the
whole body at once.
"""

from __future__ import annotations

import httpx
import structlog
from pydantic import ValidationError

from ..logging_utils import handle_transport_errors, log_operation
from .exceptions import DecodeError, TransportFailure
from .models import OllamaConfig, StreamRecord, StreamRequest
from .streaming.listeners import Listener
from .streaming.parser import StreamDecoder

# Constants
MAX_ERROR_BODY = 500

logger = structlog.get_logger(__name__)


class OllamaClient:
    """
    Client for Ollama's generate endpoint.

    Each call owns its own decode state, so one client can serve several
    calls. Keeping calls to one server from overlapping is up to the caller.
    """

    def __init__(
        self,
        config: OllamaConfig,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not config.base_url:
            raise ValueError("Ollama base_url must not be empty")
        if not config.model:
            raise ValueError("Ollama model must not be empty")

        self.config = config
        self.url = config.base_url.rstrip("/") + config.generate_path
        self._owns_client = client is None
        self.client: httpx.AsyncClient = client or httpx.AsyncClient(
            timeout=httpx.Timeout(
                connect=config.connect_timeout,
                read=config.read_timeout,
                write=config.write_timeout,
                pool=config.pool_timeout,
            ),
        )

    @property
    def model(self) -> str:
        return self.config.model

    @log_operation("ollama_stream")
    @handle_transport_errors("Streaming generate request")
    async def run(self, prompt: str, listener: Listener | None = None) -> str:
        """
        Stream a completion for the prompt.

        Tokens go to the listener in stream order as they arrive. Returns the
        full text once the server sends its terminal record or closes the
        stream.

        Raises:
            TransportFailure: Connection failed, the server answered with a
                non-success status, or reading the stream failed part way.
                Tokens already delivered to the listener are not a result.
        """
        request = self._build_request(prompt, stream=True)
        decoder = StreamDecoder(listener)

        async with self.client.stream(
            "POST", self.url, json=request.to_payload()
        ) as response:
            if not response.is_success:
                await self._raise_for_status(response)

            text = await decoder.decode(response.aiter_bytes())

        stats = decoder.get_stats()
        logger.debug(
            "Stream decoded",
            model=self.config.model,
            chunks=stats.total_chunks,
            records=stats.total_records,
            discarded_lines=stats.discarded_lines,
            terminal_record=stats.finished,
        )
        return text

    @log_operation("ollama_generate")
    @handle_transport_errors("Generate request")
    async def generate(self, prompt: str) -> str:
        """Get the whole completion in one response, without streaming."""
        request = self._build_request(prompt, stream=False)

        response = await self.client.post(self.url, json=request.to_payload())
        if not response.is_success:
            await self._raise_for_status(response)

        try:
            record = StreamRecord.model_validate_json(response.content)
        except ValidationError as e:
            raise DecodeError(
                f"Unexpected response format: {e}",
                model=self.config.model,
                status_code=response.status_code,
            ) from e

        return record.token

    def _build_request(self, prompt: str, *, stream: bool) -> StreamRequest:
        if not prompt or not prompt.strip():
            raise ValueError("prompt must not be empty")
        return StreamRequest(model=self.config.model, prompt=prompt, stream=stream)

    async def _raise_for_status(self, response: httpx.Response) -> None:
        body = (await response.aread()).decode("utf-8", errors="replace").strip()
        message = (
            f"Request failed with status: {response.status_code} "
            f"{response.reason_phrase}"
        )
        if body:
            message = f"{message}: {body[:MAX_ERROR_BODY]}"

        raise TransportFailure(
            message,
            model=self.config.model,
            status_code=response.status_code,
            category="status_error",
        )

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> OllamaClient:
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()
