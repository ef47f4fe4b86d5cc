"""
LLM inference capability.

Every call returns an InferenceResult instead of raising, so each call site
handles failure as an explicit branch (escalate, first candidate, apology).
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

from openai import AsyncOpenAI, OpenAIError

from frontdesk.core.logging import get_plain_logger

logger = get_plain_logger(__name__)


@dataclass(frozen=True)
class Message:
    role: str  # "user" | "assistant"
    text: str


@dataclass(frozen=True)
class InferenceResult:
    """Either completion text or the reason there is none"""
    text: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and bool(self.text and self.text.strip())

    @classmethod
    def success(cls, text: str) -> "InferenceResult":
        return cls(text=text)

    @classmethod
    def failure(cls, error: str) -> "InferenceResult":
        return cls(error=error)


class InferenceProvider(ABC):
    """Abstract base class for inference providers."""

    @abstractmethod
    async def complete(
        self,
        messages: List[Message],
        system_prompt: Optional[str] = None,
        max_tokens: int = 150,
        temperature: float = 0.3,
    ) -> InferenceResult:
        """Generate a completion. Must not raise."""


class OpenAIInferenceProvider(InferenceProvider):
    """Chat completions against an OpenAI-compatible API with a hard timeout."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        timeout_seconds: float = 10.0,
        base_url: Optional[str] = None,
    ):
        client_kwargs = {"api_key": api_key, "max_retries": 0}
        if base_url:
            client_kwargs["base_url"] = base_url
        self.client = AsyncOpenAI(**client_kwargs)
        self.model = model
        self.timeout_seconds = timeout_seconds

    async def complete(
        self,
        messages: List[Message],
        system_prompt: Optional[str] = None,
        max_tokens: int = 150,
        temperature: float = 0.3,
    ) -> InferenceResult:
        payload = []
        if system_prompt:
            payload.append({"role": "system", "content": system_prompt})
        payload.extend({"role": m.role, "content": m.text} for m in messages)

        try:
            response = await asyncio.wait_for(
                self.client.chat.completions.create(
                    model=self.model,
                    messages=payload,
                    max_tokens=max_tokens,
                    temperature=temperature,
                ),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(f"⏰ Inference timed out after {self.timeout_seconds}s")
            return InferenceResult.failure("timeout")
        except OpenAIError as e:
            logger.error(f"Inference call failed: {e}")
            return InferenceResult.failure(f"provider error: {e}")

        if not response.choices:
            return InferenceResult.failure("empty response")
        content = (response.choices[0].message.content or "").strip()
        if not content:
            return InferenceResult.failure("empty response")
        return InferenceResult.success(content)
