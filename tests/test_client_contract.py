import pytest

from openrouter_client import (
    CompletionRequest,
    InMemoryResponseCache,
    JsonFileResponseCache,
    OpenRouterClient,
    OpenRouterClientConfig,
    OpenRouterSession,
    ProviderError,
    ResponseModel,
)


def _request(request_id: str, **overrides) -> CompletionRequest:
    fields = {
        "model": "openai/gpt-4o",
        "messages": [{"role": "user", "content": "list tags"}],
        "temperature": 0.1,
        "response_model": ResponseModel(name="tags", schema=list[str]),
        "request_id": request_id,
    }
    fields.update(overrides)
    return CompletionRequest(**fields)


@pytest.mark.asyncio
async def test_cache_hit_ignores_request_id_and_skips_remote_call(make_backend, reply, log_lines):
    backend = make_backend(reply('["a", "b"]'))
    client = OpenRouterClient(backend, enable_caching=True)

    first = await client.complete(_request("req-1"), logger=lambda _: None)
    second = await client.complete(_request("req-2"), logger=log_lines.append)

    assert first == ["a", "b"]
    assert second == first
    assert len(backend.bodies) == 1
    hit = next(line for line in log_lines if line.category == "llm_cache")
    assert hit.message == "LLM cache hit - returning cached response"
    assert hit.auxiliary["requestId"].value == "req-2"


@pytest.mark.asyncio
async def test_different_sampling_params_miss_the_cache(make_backend, reply):
    backend = make_backend(reply('["a"]'))
    client = OpenRouterClient(backend, enable_caching=True)

    await client.complete(_request("req-1"), logger=lambda _: None)
    await client.complete(_request("req-1", temperature=0.7), logger=lambda _: None)

    assert len(backend.bodies) == 2


@pytest.mark.asyncio
async def test_tools_do_not_change_the_cache_key(make_backend, reply):
    backend = make_backend(reply('["a"]'))
    client = OpenRouterClient(backend, enable_caching=True)

    await client.complete(_request("req-1"), logger=lambda _: None)
    await client.complete(
        _request("req-2", tools=[{"name": "click", "description": "Click", "parameters": {}}]),
        logger=lambda _: None,
    )

    assert len(backend.bodies) == 1


@pytest.mark.asyncio
async def test_failed_completion_is_not_cached(make_backend, reply):
    cache = InMemoryResponseCache()
    backend = make_backend(reply("not json"))
    client = OpenRouterClient(backend, cache=cache, enable_caching=True)

    with pytest.raises(ProviderError):
        await client.complete(_request("req-1"), retries=0, logger=lambda _: None)
    assert len(cache) == 0


@pytest.mark.asyncio
async def test_caching_disabled_always_calls_provider(make_backend, reply):
    cache = InMemoryResponseCache()
    backend = make_backend(reply('["a"]'))
    client = OpenRouterClient(backend, cache=cache, enable_caching=False)

    await client.complete(_request("req-1"), logger=lambda _: None)
    await client.complete(_request("req-1"), logger=lambda _: None)

    assert len(backend.bodies) == 2
    assert len(cache) == 0


@pytest.mark.asyncio
async def test_raw_responses_round_trip_through_file_cache(tmp_path, make_backend, reply):
    backend = make_backend(reply("hello"))
    client = OpenRouterClient(backend, cache=JsonFileResponseCache(tmp_path), enable_caching=True)

    first = await client.complete(_request("req-1", response_model=None), logger=lambda _: None)
    second = await client.complete(_request("req-2", response_model=None), logger=lambda _: None)

    assert second == first
    assert second["choices"][0]["message"]["content"] == "hello"
    assert len(backend.bodies) == 1


@pytest.mark.asyncio
async def test_from_config_wires_session_and_cache(tmp_path):
    cfg = OpenRouterClientConfig(
        api_key="dummy",
        enable_caching=True,
        cache_dir=str(tmp_path),
        enable_metrics=False,
        log_format="console",
        max_retries=1,
    )
    client = OpenRouterClient.from_config(cfg)
    try:
        assert isinstance(client.backend, OpenRouterSession)
        assert isinstance(client.cache, JsonFileResponseCache)
        assert client.enable_caching is True
        assert client.default_retries == 1
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_async_context_manager_closes_backend(make_backend):
    backend = make_backend({"choices": []})
    async with OpenRouterClient(backend):
        pass
    assert backend.closed is True
