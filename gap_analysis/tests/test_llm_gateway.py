"""
Tests: Groq gateway error translation and message building.

Run with:
    pytest gap_analysis/tests/test_llm_gateway.py -v
"""

import asyncio

import groq
import httpx
import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from gap_analysis.errors import (
    ContentFilteredError,
    ModelTimeoutError,
    ModelUnavailableError,
)
from gap_analysis.models.enums import ErrorCode
from gap_analysis.services.llm_service import GenerationParams, GroqGateway, to_messages
from gap_analysis.tests.fakes import make_settings

_REQUEST = httpx.Request("POST", "https://api.groq.com/openai/v1/chat/completions")


def _response(status: int) -> httpx.Response:
    return httpx.Response(status, request=_REQUEST)


class FakeLLM:
    """Mimics the ChatGroq surface the gateway uses: bind(**kw).ainvoke(messages)."""

    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.bound = []
        self.messages = None

    def bind(self, **kwargs):
        self.bound.append(kwargs)
        return self

    async def ainvoke(self, messages):
        self.messages = messages
        if self.error is not None:
            raise self.error
        return self.response


def _generate(llm, prompt="Hello", params=None):
    return asyncio.run(GroqGateway(llm).generate(prompt, params))


class TestGenerate:
    def test_returns_response_text_and_binds_params(self):
        llm = FakeLLM(AIMessage(content="[]", response_metadata={"finish_reason": "stop"}))

        text = _generate(llm, params=GenerationParams(temperature=0.7, max_tokens=512, top_p=0.9, top_k=40))

        assert text == "[]"
        assert llm.bound == [{"temperature": 0.7, "max_tokens": 512, "top_p": 0.9}]
        assert isinstance(llm.messages[0], HumanMessage)

    def test_content_filter_finish_reason(self):
        llm = FakeLLM(AIMessage(content="", response_metadata={"finish_reason": "content_filter"}))
        with pytest.raises(ContentFilteredError):
            _generate(llm)


class TestErrorMapping:
    def test_rate_limit_is_quota_exhausted(self):
        llm = FakeLLM(error=groq.RateLimitError("rate limited", response=_response(429), body=None))

        with pytest.raises(ModelUnavailableError) as info:
            _generate(llm)

        assert info.value.quota_exhausted
        assert info.value.error_code == ErrorCode.QUOTA_EXHAUSTED
        assert info.value.status_code == 429

    def test_timeout(self):
        llm = FakeLLM(error=groq.APITimeoutError(request=_REQUEST))
        with pytest.raises(ModelTimeoutError):
            _generate(llm)

    def test_safety_rejection_is_content_filtered(self):
        error = groq.BadRequestError("Request blocked by content_filter", response=_response(400), body=None)
        with pytest.raises(ContentFilteredError) as info:
            _generate(FakeLLM(error=error))
        assert info.value.retryable is False

    def test_other_bad_request_is_unavailable(self):
        error = groq.BadRequestError("context length exceeded", response=_response(400), body=None)
        with pytest.raises(ModelUnavailableError) as info:
            _generate(FakeLLM(error=error))
        assert not info.value.quota_exhausted

    def test_connection_error_is_unavailable(self):
        llm = FakeLLM(error=groq.APIConnectionError(request=_REQUEST))
        with pytest.raises(ModelUnavailableError) as info:
            _generate(llm)
        assert info.value.status_code == 503
        assert info.value.retryable


class TestMessages:
    def test_conversation_roles(self):
        messages = to_messages([
            {"role": "system", "content": "You review plans."},
            {"role": "user", "content": "Check this."},
            {"role": "assistant", "content": "[]"},
        ])
        assert [type(m) for m in messages] == [SystemMessage, HumanMessage, AIMessage]

    def test_unknown_role_raises(self):
        with pytest.raises(ValueError):
            to_messages([{"role": "tool", "content": "x"}])

    def test_missing_api_key(self, monkeypatch):
        from gap_analysis.services import llm_service

        monkeypatch.setattr(llm_service, "_llm_instance", None)
        monkeypatch.setattr(llm_service, "get_settings", lambda: make_settings(groq_api_key=""))

        with pytest.raises(ModelUnavailableError, match="GROQ_API_KEY") as info:
            llm_service.get_llm()
        assert not info.value.retryable
        assert info.value.to_dict()["retryable"] is False
