"""Tests for OpenAICompatBackend and StaticBackend.

Covers: single user message request shape, empty choices guard,
        retry on transient errors, API status errors wrapped as ProviderError.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from openai import APIConnectionError, APIStatusError

from flora.agent.model_client import Completion, OpenAICompatBackend, StaticBackend
from flora.infra.errors import ProviderError

_REQUEST = httpx.Request("POST", "https://api.example.test/v1/chat/completions")


@pytest.fixture()
def backend():
    return OpenAICompatBackend(api_key="test-key", model="gpt-4", max_retries=2, base_delay=0.0)


def _make_response(*, choices=None):
    resp = MagicMock()
    resp.choices = choices if choices is not None else []
    return resp


def _make_choice(content="hello"):
    choice = MagicMock()
    choice.message.content = content
    return choice


class TestComplete:
    @pytest.mark.asyncio()
    async def test_sends_prompt_as_user_message(self, backend):
        backend._client = MagicMock()
        create = AsyncMock(return_value=_make_response(choices=[_make_choice("petals")]))
        backend._client.chat.completions.create = create

        result = await backend.complete("User: hi\nFlower:", temperature=0.4)

        assert result == Completion(content="petals")
        create.assert_awaited_once_with(
            model="gpt-4",
            messages=[{"role": "user", "content": "User: hi\nFlower:"}],
            temperature=0.4,
        )

    @pytest.mark.asyncio()
    async def test_empty_choices_raises_provider_error(self, backend):
        backend._client = MagicMock()
        backend._client.chat.completions.create = AsyncMock(return_value=_make_response())

        with pytest.raises(ProviderError, match="Empty choices"):
            await backend.complete("hi", temperature=0.7)

    @pytest.mark.asyncio()
    async def test_none_content_becomes_empty_string(self, backend):
        backend._client = MagicMock()
        backend._client.chat.completions.create = AsyncMock(
            return_value=_make_response(choices=[_make_choice(None)])
        )
        result = await backend.complete("hi", temperature=0.7)
        assert result.content == ""


class TestRetry:
    @pytest.mark.asyncio()
    async def test_transient_error_retried(self, backend):
        backend._client = MagicMock()
        backend._client.chat.completions.create = AsyncMock(
            side_effect=[
                APIConnectionError(request=_REQUEST),
                _make_response(choices=[_make_choice("after retry")]),
            ]
        )
        with patch("flora.agent.model_client.asyncio.sleep", new=AsyncMock()) as sleep:
            result = await backend.complete("hi", temperature=0.7)

        assert result.content == "after retry"
        assert sleep.await_count == 1

    @pytest.mark.asyncio()
    async def test_gives_up_after_max_retries(self, backend):
        backend._client = MagicMock()
        create = AsyncMock(side_effect=APIConnectionError(request=_REQUEST))
        backend._client.chat.completions.create = create

        with (
            patch("flora.agent.model_client.asyncio.sleep", new=AsyncMock()),
            pytest.raises(ProviderError, match="after 3 attempts") as exc_info,
        ):
            await backend.complete("hi", temperature=0.7)

        assert create.await_count == 3
        assert exc_info.value.code == "PROVIDER_ERROR"

    @pytest.mark.asyncio()
    async def test_status_error_not_retried(self, backend):
        backend._client = MagicMock()
        error = APIStatusError(
            "bad request",
            response=httpx.Response(400, request=_REQUEST),
            body=None,
        )
        create = AsyncMock(side_effect=error)
        backend._client.chat.completions.create = create

        with pytest.raises(ProviderError, match="Completion API error: 400"):
            await backend.complete("hi", temperature=0.7)
        assert create.await_count == 1


class TestStaticBackend:
    @pytest.mark.asyncio()
    async def test_fixed_reply_and_call_log(self):
        backend = StaticBackend("hello")
        result = await backend.complete("prompt", temperature=0.5)
        assert result.content == "hello"
        assert backend.calls == [("prompt", 0.5)]

    @pytest.mark.asyncio()
    async def test_callable_reply(self):
        backend = StaticBackend(lambda prompt: prompt.upper())
        result = await backend.complete("abc", temperature=0.5)
        assert result.content == "ABC"
