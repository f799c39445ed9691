import asyncio
from types import SimpleNamespace

import httpx
import pytest

from codediag.ai import gemini
from codediag.ai.gemini import GeminiGenerator, GenerationError


def _client_with(generate_content):
    return SimpleNamespace(aio=SimpleNamespace(models=SimpleNamespace(generate_content=generate_content)))


def _install(monkeypatch, gen, generate_content):
    client = _client_with(generate_content)
    monkeypatch.setattr(gen, "_get_client", lambda: client)


@pytest.mark.asyncio
async def test_generate_returns_stripped_text(monkeypatch):
    seen = {}

    async def generate_content(model, contents, config):
        seen.update(model=model, contents=contents, config=config)
        return SimpleNamespace(text='  {"causes": []}\n')

    gen = GeminiGenerator(api_key="k", model="gemini-test", temperature=0.1)
    _install(monkeypatch, gen, generate_content)

    assert await gen.generate("sys", "usr") == '{"causes": []}'
    assert seen["model"] == "gemini-test"
    assert seen["contents"] == "usr"
    assert seen["config"].system_instruction == "sys"
    assert seen["config"].response_mime_type == "application/json"


@pytest.mark.asyncio
async def test_slow_model_call_times_out(monkeypatch):
    async def generate_content(model, contents, config):
        await asyncio.sleep(1)
        return SimpleNamespace(text="late")

    gen = GeminiGenerator(api_key="k", timeout=0.01)
    _install(monkeypatch, gen, generate_content)

    with pytest.raises(GenerationError, match="timed out"):
        await gen.generate("sys", "usr")


@pytest.mark.asyncio
async def test_transport_error_becomes_generation_error(monkeypatch):
    async def generate_content(model, contents, config):
        raise httpx.ConnectError("boom")

    gen = GeminiGenerator(api_key="k")
    _install(monkeypatch, gen, generate_content)

    with pytest.raises(GenerationError) as exc:
        await gen.generate("sys", "usr")
    assert isinstance(exc.value.__cause__, httpx.ConnectError)


@pytest.mark.parametrize("text", ["", "   ", None])
@pytest.mark.asyncio
async def test_empty_reply_is_an_error(monkeypatch, text):
    async def generate_content(model, contents, config):
        return SimpleNamespace(text=text)

    gen = GeminiGenerator(api_key="k")
    _install(monkeypatch, gen, generate_content)

    with pytest.raises(GenerationError, match="empty"):
        await gen.generate("sys", "usr")


@pytest.mark.asyncio
async def test_missing_api_key_fails_before_client_is_built(monkeypatch):
    def no_client(*args, **kwargs):
        raise AssertionError("client must not be constructed without a key")

    monkeypatch.setattr(gemini.genai, "Client", no_client)
    gen = GeminiGenerator(api_key="  ")

    with pytest.raises(GenerationError, match="GOOGLE_API_KEY"):
        await gen.generate("sys", "usr")
    assert gen._client is None
