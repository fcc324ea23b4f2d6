"""
Terminal front end for Crunchypi.

Sends a prompt to the local Ollama server and prints the answer as it
streams in.
"""

from __future__ import annotations

import asyncio
import contextlib
import signal
import sys
from typing import TextIO

import structlog

from .config import Configuration
from .llm import OllamaClient, TokenEvent, TransportFailure
from .logging_utils import configure_logging, operation_context

INTERRUPTED_MARKER = "[response interrupted]"

logger = structlog.get_logger(__name__)


class ConsoleDisplay:
    """Writes tokens to a text stream as they arrive."""

    def __init__(self, out: TextIO | None = None, err: TextIO | None = None):
        self.out = out or sys.stdout
        self.err = err or sys.stderr
        self.shown = 0

    def __call__(self, event: TokenEvent) -> None:
        self.out.write(event.text)
        self.out.flush()
        self.shown += 1

    def settle(self, text: str) -> None:
        # Tokens are already on screen; only terminate the line
        if text and not text.endswith("\n"):
            self.out.write("\n")
        self.out.flush()

    def interrupt(self, error: Exception) -> None:
        if self.shown:
            self.out.write("\n")
            self.out.flush()
        self.err.write(f"{INTERRUPTED_MARKER} {error}\n")
        self.err.flush()


def read_prompt(argv: list[str], stdin: TextIO | None = None) -> str:
    """Take the prompt from the arguments, or from stdin when there are none."""
    if argv:
        return " ".join(argv).strip()
    return (stdin or sys.stdin).read().strip()


async def ask(client: OllamaClient, prompt: str, display: ConsoleDisplay) -> int:
    """Stream one answer to the display. Returns the process exit code."""
    context = {"model": client.model, "prompt_chars": len(prompt)}
    try:
        async with operation_context("ask", context=context) as log:
            text = await client.run(prompt, display)
            log.debug("Answer settled", tokens_shown=display.shown, chars=len(text))
    except TransportFailure as e:
        display.interrupt(e)
        return 1

    display.settle(text)
    return 0


async def main(argv: list[str] | None = None) -> int:
    """Main entry point - one prompt, streamed answer, graceful shutdown."""
    config = Configuration()
    configure_logging(config.get_logging_config().get("level", "WARNING"))

    prompt = read_prompt(sys.argv[1:] if argv is None else argv)
    if not prompt:
        sys.stderr.write("usage: crunchypi PROMPT (or pipe the prompt on stdin)\n")
        return 2

    display = ConsoleDisplay()
    shutdown_event = asyncio.Event()

    def signal_handler() -> None:
        """Handle shutdown signals gracefully."""
        logger.info("Received shutdown signal, cancelling request")
        shutdown_event.set()

    if sys.platform != "win32":
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, signal_handler)

    async with OllamaClient(config.get_ollama_config()) as client:
        ask_task = asyncio.create_task(ask(client, prompt, display))
        shutdown_task = asyncio.create_task(shutdown_event.wait())

        done, pending = await asyncio.wait(
            [ask_task, shutdown_task],
            return_when=asyncio.FIRST_COMPLETED,
        )

        for task in pending:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        if ask_task in done:
            return ask_task.result()

    display.interrupt(RuntimeError("cancelled"))
    return 130


def run() -> None:
    """Console script entry point."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
