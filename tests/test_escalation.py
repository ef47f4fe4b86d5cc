"""Tests for the escalation policy and the OpenAI-backed inference provider."""

from __future__ import annotations

import asyncio
from types import SimpleNamespace

import httpx
import openai
import pytest

from frontdesk.models.schemas import Speaker, Turn
from frontdesk.services.escalation import EscalationPolicy
from frontdesk.services.inference import InferenceResult, Message, OpenAIInferenceProvider

from tests.conftest import ScriptedInference


def _completion(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


class TestEscalationPolicy:

    @pytest.mark.parametrize("reply", ["ESCALATE", "escalate", " ESCALATE. "])
    async def test_escalate_reply(self, reply):
        policy = EscalationPolicy(ScriptedInference(escalation=reply))
        assert await policy.should_escalate("Can I get a discount on a 2 year contract?") is True

    @pytest.mark.parametrize("reply", ["ANSWER", "answer", "Answer."])
    async def test_answer_reply(self, reply):
        policy = EscalationPolicy(ScriptedInference(escalation=reply))
        assert await policy.should_escalate("Hi there!") is False

    async def test_inference_failure_escalates(self):
        policy = EscalationPolicy(ScriptedInference(escalation=InferenceResult.failure("provider error")))
        assert await policy.should_escalate("Hello") is True

    async def test_timeout_escalates(self):
        policy = EscalationPolicy(ScriptedInference(escalation=InferenceResult.failure("timeout")))
        assert await policy.should_escalate("Hello") is True

    async def test_malformed_reply_escalates(self):
        policy = EscalationPolicy(ScriptedInference(escalation="I think you should answer"))
        assert await policy.should_escalate("Hello") is True

    async def test_empty_reply_escalates(self):
        policy = EscalationPolicy(ScriptedInference(escalation="   "))
        assert await policy.should_escalate("Hello") is True

    async def test_prompt_carries_question_and_history(self):
        inference = ScriptedInference(escalation="ANSWER")
        policy = EscalationPolicy(inference)
        history = [
            Turn(speaker=Speaker.USER, text="Hi"),
            Turn(speaker=Speaker.ASSISTANT, text="Hello! How can I help?"),
        ]

        await policy.should_escalate("Where do I park?", history)

        call = inference.calls_for("escalation")[0]
        prompt = call["messages"][0].text
        assert 'Question: "Where do I park?"' in prompt
        assert "assistant: Hello! How can I help?" in prompt
        assert call["max_tokens"] == 10


class TestOpenAIInferenceProvider:

    @pytest.fixture
    def provider(self):
        return OpenAIInferenceProvider(api_key="sk-test", timeout_seconds=0.05)

    async def test_success(self, provider, monkeypatch):
        captured = {}

        async def create(**kwargs):
            captured.update(kwargs)
            return _completion("  ANSWER ")

        monkeypatch.setattr(provider.client.chat.completions, "create", create)

        result = await provider.complete(
            [Message(role="user", text="Hi")], system_prompt="Be brief", max_tokens=10
        )

        assert result.ok
        assert result.text == "ANSWER"
        assert captured["messages"][0] == {"role": "system", "content": "Be brief"}
        assert captured["messages"][1] == {"role": "user", "content": "Hi"}
        assert captured["max_tokens"] == 10

    async def test_timeout_is_a_failure(self, provider, monkeypatch):
        async def slow(**kwargs):
            await asyncio.sleep(1)
            return _completion("ANSWER")

        monkeypatch.setattr(provider.client.chat.completions, "create", slow)

        result = await provider.complete([Message(role="user", text="Hi")])

        assert not result.ok
        assert result.error == "timeout"

    async def test_api_error_is_a_failure(self, provider, monkeypatch):
        async def broken(**kwargs):
            raise openai.APIConnectionError(request=httpx.Request("POST", "https://api.openai.com/v1/chat/completions"))

        monkeypatch.setattr(provider.client.chat.completions, "create", broken)

        result = await provider.complete([Message(role="user", text="Hi")])

        assert not result.ok
        assert result.error.startswith("provider error")

    async def test_empty_content_is_a_failure(self, provider, monkeypatch):
        async def empty(**kwargs):
            return _completion(None)

        monkeypatch.setattr(provider.client.chat.completions, "create", empty)

        assert not (await provider.complete([Message(role="user", text="Hi")])).ok

    async def test_policy_fails_closed_on_provider_timeout(self, provider, monkeypatch):
        async def slow(**kwargs):
            await asyncio.sleep(1)

        monkeypatch.setattr(provider.client.chat.completions, "create", slow)

        assert await EscalationPolicy(provider).should_escalate("What are your hours?") is True
