"""Tests for the chat completion client."""

import json

import httpx
import pytest

from jobfeed.services.llm import LLMClient, parse_chat_completion
from jobfeed.services.remote import RemoteCallError


def completion_body(content="No", prompt_tokens=321, completion_tokens=1):
    return {
        "choices": [{"message": {"role": "assistant", "content": content}}],
        "usage": {"prompt_tokens": prompt_tokens, "completion_tokens": completion_tokens},
    }


def make_client(handler, **kwargs):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    client = LLMClient(
        base_url="https://llm.test/v1/",
        api_key="sk-test",
        model="test-model",
        http_client=http_client,
        base_delay=0,
        **kwargs,
    )
    return client, http_client


async def test_complete_sends_chat_request():
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json=completion_body(content=" Yes \n"))

    client, http_client = make_client(handler)
    async with http_client:
        completion = await client.complete("system text", "user text")

    assert completion.content == "Yes"
    assert completion.input_tokens == 321
    assert completion.output_tokens == 1

    (request,) = requests
    assert request.method == "POST"
    assert str(request.url) == "https://llm.test/v1/chat/completions"
    assert request.headers["Authorization"] == "Bearer sk-test"

    body = json.loads(request.content)
    assert body["model"] == "test-model"
    assert body["messages"] == [
        {"role": "system", "content": "system text"},
        {"role": "user", "content": "user text"},
    ]
    assert body["temperature"] == 0.0
    assert body["max_tokens"] == 1


async def test_error_envelope_is_retried():
    attempts = 0

    def handler(request):
        nonlocal attempts
        attempts += 1
        if attempts < 3:
            return httpx.Response(200, json={"errorMessage": "model overloaded"})
        return httpx.Response(200, json=completion_body())

    client, http_client = make_client(handler, max_attempts=5)
    async with http_client:
        completion = await client.complete("s", "u")

    assert attempts == 3
    assert completion.content == "No"


async def test_server_errors_exhaust_attempts():
    attempts = 0

    def handler(request):
        nonlocal attempts
        attempts += 1
        return httpx.Response(500, json={"error": {"message": "boom"}})

    client, http_client = make_client(handler, max_attempts=3)
    async with http_client:
        with pytest.raises(RemoteCallError) as exc_info:
            await client.complete("s", "u")

    assert attempts == 3
    assert exc_info.value.status_code == 500


async def test_connection_errors_surface_as_remote_errors():
    def handler(request):
        raise httpx.ConnectError("no route to host", request=request)

    client, http_client = make_client(handler, max_attempts=2)
    async with http_client:
        with pytest.raises(RemoteCallError) as exc_info:
            await client.complete("s", "u")

    assert isinstance(exc_info.value.__cause__, httpx.ConnectError)


def test_parse_chat_completion_without_choices():
    with pytest.raises(RemoteCallError):
        parse_chat_completion({"choices": []})


def test_parse_chat_completion_without_usage():
    completion = parse_chat_completion({"choices": [{"message": {"content": "no"}}]})

    assert completion.content == "no"
    assert completion.input_tokens == 0
    assert completion.output_tokens == 0
