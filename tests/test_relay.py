import asyncio

import pytest

from config import CompletionSettings
from conftest import FakeLLMClient, collect
from errors import UpstreamProviderError
from relay import CompletionRelay, stream_completion

SETTINGS = CompletionSettings(api_key="test-key", model="test-model", max_tokens=256)


def open_relay(client, prompt="prompt"):
    relay = CompletionRelay(client, SETTINGS)
    asyncio.run(relay.open(prompt))
    return relay


@pytest.mark.parametrize("fragments", [
    ["Whole reply in one piece."],
    ["", "Then text"],
    ["Dear ", "guest", ",\n\n", "thanks!"],
])
def test_forwarded_fragments_match_accumulated_text(fragments):
    relay = open_relay(FakeLLMClient(fragments))
    forwarded = collect(relay)
    assert "".join(forwarded) == relay.text == "".join(fragments)
    assert relay.completed


def test_single_request_with_fixed_settings():
    client = FakeLLMClient()
    relay = open_relay(client, "the prompt")
    collect(relay)
    assert client.messages.calls == [{
        "model": "test-model",
        "max_tokens": 256,
        "messages": [{"role": "user", "content": "the prompt"}],
        "stream": True,
    }]
    assert client.messages.streams[0].closed


def test_open_failure_raises_upstream_error():
    relay = CompletionRelay(FakeLLMClient(fail_on_open=True), SETTINGS)
    with pytest.raises(UpstreamProviderError):
        asyncio.run(relay.open("prompt"))
    assert not relay.completed


def test_mid_stream_failure_leaves_relay_incomplete():
    # events: message_start, content_block_start, "a", "b" -> fail before "b"
    client = FakeLLMClient(["a", "b"], fail_after=3)
    relay = open_relay(client)
    with pytest.raises(UpstreamProviderError):
        collect(relay)
    assert relay.text == "a"
    assert not relay.completed
    assert client.messages.streams[0].closed


def test_relay_is_single_use():
    relay = open_relay(FakeLLMClient())
    with pytest.raises(RuntimeError):
        asyncio.run(relay.open("again"))


def test_fragments_before_open():
    relay = CompletionRelay(FakeLLMClient(), SETTINGS)
    with pytest.raises(RuntimeError):
        collect(relay)


def test_stream_completion_helper():
    async def run():
        return [t async for t in stream_completion(FakeLLMClient(["x", "y"]), SETTINGS, "p")]
    assert asyncio.run(run()) == ["x", "y"]
