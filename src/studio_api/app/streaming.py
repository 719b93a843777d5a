"""Server-sent-event relay for streamed text generation.

Beginner terms:
- SSE frame: ``data: <payload>`` followed by a blank line.
- Priming: pulling the first fragment before the HTTP response starts, so an
  upstream failure can still be returned as a normal JSON error.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator

from .errors import UpstreamError
from .models import GenerationOptions
from .openai_gateway import UpstreamGateway

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"


class CompletionRelay:
    """Producer side of a streamed completion, consumed by the HTTP transport."""

    def __init__(self, fragments: Iterator[str]) -> None:
        self._fragments = fragments
        self._first: str | None = None
        self._exhausted = False

    def prime(self) -> None:
        """Pull the first fragment. Any failure here closes the producer and reaches the caller."""
        try:
            self._first = next(self._fragments)
        except StopIteration:
            self._exhausted = True
        except Exception:
            self.close()
            raise

    def events(self) -> Iterator[str]:
        """Yield SSE frames; the sentinel is only sent after a clean upstream finish."""
        fragment_count = 0
        try:
            if self._first is not None:
                fragment_count += 1
                yield format_event({"content": self._first})
            if not self._exhausted:
                for fragment in self._fragments:
                    fragment_count += 1
                    yield format_event({"content": fragment})
        except UpstreamError as exc:
            logger.warning(
                "generate_stream event=aborted fragments=%d reason=%s", fragment_count, exc.message
            )
            return
        finally:
            self.close()
        logger.info("generate_stream event=completed fragments=%d", fragment_count)
        yield format_event(DONE_SENTINEL)

    def close(self) -> None:
        close = getattr(self._fragments, "close", None)
        if close is not None:
            close()


def open_relay(
    gateway: UpstreamGateway, options: GenerationOptions, *, model: str
) -> CompletionRelay:
    relay = CompletionRelay(gateway.open_completion_stream(options, model=model))
    relay.prime()
    return relay


def format_event(payload: dict[str, str] | str) -> str:
    data = payload if isinstance(payload, str) else json.dumps(payload, ensure_ascii=False)
    return f"data: {data}\n\n"
