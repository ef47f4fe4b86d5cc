"""Shared fixtures: temporary SQLite stores and a scripted inference provider.

No test talks to OpenAI or LiveKit. ScriptedInference recognizes which call
site is asking (escalation, disambiguation or generation) from the prompt and
answers with the configured reply, which may be a string, a callable taking
the prompt text, or an InferenceResult (to script failures).
"""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from frontdesk.models.schemas import Provenance
from frontdesk.services.escalation import EscalationPolicy
from frontdesk.services.help_request import HelpRequestService
from frontdesk.services.inference import InferenceProvider, InferenceResult, Message
from frontdesk.services.knowledge_base import KnowledgeBaseService
from frontdesk.services.matcher import KnowledgeMatcher
from frontdesk.services.session import SessionManager, SessionStore

HOURS_QUESTION = "What are your business hours?"
HOURS_ANSWER = "We are open Monday through Friday, 9 AM to 6 PM EST."


class ScriptedInference(InferenceProvider):
    """Fake inference capability keyed by call site."""

    def __init__(
        self,
        escalation: Any = "ESCALATE",
        disambiguation: Any = None,
        generation: Any = "Happy to help with that.",
        delay: float = 0.0,
    ) -> None:
        self.replies = {
            "escalation": escalation,
            "disambiguation": disambiguation,
            "generation": generation,
        }
        self.delay = delay
        self.calls: list[dict] = []

    def calls_for(self, kind: str) -> list[dict]:
        return [c for c in self.calls if c["kind"] == kind]

    @staticmethod
    def _kind(messages: list[Message], system_prompt: str | None) -> str:
        if system_prompt:
            return "generation"
        text = messages[-1].text if messages else ""
        if "Which of the following Q&A pairs" in text:
            return "disambiguation"
        return "escalation"

    async def complete(
        self,
        messages: list[Message],
        system_prompt: str | None = None,
        max_tokens: int = 150,
        temperature: float = 0.3,
    ) -> InferenceResult:
        kind = self._kind(messages, system_prompt)
        self.calls.append({
            "kind": kind,
            "messages": list(messages),
            "system_prompt": system_prompt,
            "max_tokens": max_tokens,
        })
        if self.delay:
            await asyncio.sleep(self.delay)

        reply = self.replies[kind]
        if callable(reply):
            reply = reply(messages[-1].text)
        if reply is None:
            return InferenceResult.failure("not scripted")
        if isinstance(reply, InferenceResult):
            return reply
        return InferenceResult.success(reply)


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "frontdesk_test.db")


@pytest.fixture
def kb(db_path) -> KnowledgeBaseService:
    return KnowledgeBaseService(db_path=db_path)


@pytest.fixture
def help_service(kb) -> HelpRequestService:
    return HelpRequestService(kb=kb)


@pytest.fixture
def inference() -> ScriptedInference:
    return ScriptedInference()


@pytest.fixture
def matcher(kb, inference) -> KnowledgeMatcher:
    return KnowledgeMatcher(kb, inference)


@pytest.fixture
def manager(kb, help_service, inference, matcher) -> SessionManager:
    return SessionManager(
        store=SessionStore(),
        matcher=matcher,
        policy=EscalationPolicy(inference),
        help_requests=help_service,
        inference=inference,
        business_name="FrontDesk",
    )


@pytest.fixture
async def hours_entry(kb):
    return await kb.add_answer(
        HOURS_QUESTION,
        HOURS_ANSWER,
        provenance=Provenance.INITIAL,
        category="Hours",
        keywords=["hours", "open", "time", "schedule"],
    )
