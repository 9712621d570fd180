from typing import Any, AsyncIterator, List

import anthropic
import logfire
from anthropic import AsyncAnthropic

from config import CompletionSettings
from errors import UpstreamProviderError


def resolve_client(client: Any | None = None, api_key: str | None = None) -> Any:
    if client is not None:
        return client
    if not api_key:
        raise RuntimeError("api_key is required when client is not provided")
    return AsyncAnthropic(api_key=api_key)


def _text_delta(event) -> str | None:
    if getattr(event, "type", None) != "content_block_delta":
        return None
    delta = getattr(event, "delta", None)
    if getattr(delta, "type", None) != "text_delta":
        return None
    return delta.text


class CompletionRelay:
    """
    One streaming completion per instance.

    open() sends the request, fragments() yields text deltas in arrival
    order while keeping the full text. completed flips only once the
    provider stream has been drained.
    """

    def __init__(self, client: Any, settings: CompletionSettings):
        self.client = client
        self.settings = settings
        self._stream = None
        self._opened = False
        self._closed = False
        self._parts: List[str] = []
        self.completed = False

    @property
    def text(self) -> str:
        return "".join(self._parts)

    async def open(self, prompt: str) -> None:
        if self._opened:
            raise RuntimeError("CompletionRelay can only be opened once")
        self._opened = True
        try:
            self._stream = await self.client.messages.create(
                model=self.settings.model,
                max_tokens=self.settings.max_tokens,
                messages=[{"role": "user", "content": prompt}],
                stream=True,
            )
        except anthropic.APIError as e:
            logfire.error("completion request failed: {error}", error=str(e))
            raise UpstreamProviderError() from e

    async def fragments(self) -> AsyncIterator[str]:
        if self._stream is None:
            raise RuntimeError("open() must be called before fragments()")
        try:
            async for event in self._stream:
                text = _text_delta(event)
                if text:
                    self._parts.append(text)
                    yield text
            self.completed = True
            logfire.info("completion stream finished ({chars} chars)", chars=len(self.text))
        except anthropic.APIError as e:
            logfire.exception("completion stream failed after {chars} chars", chars=len(self.text))
            raise UpstreamProviderError() from e
        finally:
            await self.close()

    async def close(self) -> None:
        """Release the provider stream. Safe to call more than once."""
        if self._stream is None or self._closed:
            return
        self._closed = True
        await self._stream.close()


async def stream_completion(client: Any, settings: CompletionSettings, prompt: str) -> AsyncIterator[str]:
    relay = CompletionRelay(client, settings)
    await relay.open(prompt)
    async for text in relay.fragments():
        yield text
