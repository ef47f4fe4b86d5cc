"""
Conversation sessions and the per-utterance pipeline.

One ConversationSession per active call, keyed by the transport's session
key (the LiveKit room name). Utterances on one session run one at a time in
arrival order; different sessions never wait on each other.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from frontdesk.core.exceptions import SessionNotFound
from frontdesk.core.logging import get_plain_logger
from frontdesk.models.schemas import Speaker, Turn, UtteranceResult
from frontdesk.services.escalation import EscalationPolicy
from frontdesk.services.help_request import HelpRequestService
from frontdesk.services.inference import InferenceProvider, Message
from frontdesk.services.matcher import KnowledgeMatcher

logger = get_plain_logger(__name__)

CONTEXT_TURNS = 4
GENERATION_TURNS = 6
ESCALATION_TURNS = 6

GENERATION_PROMPT = """You are a friendly AI receptionist for {business_name}, a company providing AI-powered receptionist services.

Be helpful, professional, and concise. Keep responses under 50 words for voice calls.
If you don't know something specific, politely say so and offer to connect them with a human supervisor."""

APOLOGY_MESSAGE = (
    "I apologize, I'm having trouble processing your request. "
    "Let me connect you with a human supervisor."
)


def deflection_message(customer_name: Optional[str]) -> str:
    greeting = customer_name or "there"
    return (
        f"Thank you for your question, {greeting}. I don't have that specific information "
        f"right now, but I've sent your question to our team. We'll text you the answer "
        f"shortly. Is there anything else I can help you with?"
    )


@dataclass
class ConversationSession:
    session_key: str
    customer_phone: str
    customer_name: Optional[str] = None
    history: List[Turn] = field(default_factory=list)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    def append(self, speaker: Speaker, text: str):
        self.history.append(Turn(speaker=speaker, text=text))

    def recent(self, n: int) -> List[Turn]:
        return self.history[-n:]

    def snapshot(self, n: int = CONTEXT_TURNS) -> str:
        return "\n".join(f"{t.speaker.value}: {t.text}" for t in self.recent(n))


class SessionStore:
    """In-memory map of active conversations, owned by one SessionManager"""

    def __init__(self):
        self._sessions: Dict[str, ConversationSession] = {}

    def open(self, session: ConversationSession):
        self._sessions[session.session_key] = session

    def get(self, session_key: str) -> Optional[ConversationSession]:
        return self._sessions.get(session_key)

    def close(self, session_key: str) -> Optional[ConversationSession]:
        return self._sessions.pop(session_key, None)

    def __contains__(self, session_key: str) -> bool:
        return session_key in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)


class SessionManager:
    """
    Single entry point for the transport layer

    Per utterance: knowledge match, else escalation decision, else
    generated answer. Every branch appends its reply to history before
    returning it.
    """

    def __init__(
        self,
        store: SessionStore,
        matcher: KnowledgeMatcher,
        policy: EscalationPolicy,
        help_requests: HelpRequestService,
        inference: InferenceProvider,
        business_name: str = "FrontDesk",
    ):
        self.store = store
        self.matcher = matcher
        self.policy = policy
        self.help_requests = help_requests
        self.inference = inference
        self.business_name = business_name

    def open_session(
        self, session_key: str, customer_phone: str, customer_name: Optional[str] = None
    ):
        if session_key in self.store:
            logger.info(f"Replacing stale session '{session_key}'")
        self.store.open(ConversationSession(session_key, customer_phone, customer_name))
        logger.info(f"🎙️ Session opened: '{session_key}' ({customer_name or 'unknown'}, {customer_phone})")

    def close_session(self, session_key: str):
        if self.store.close(session_key) is not None:
            logger.info(f"Session closed: '{session_key}'")

    def get_session(self, session_key: str) -> Optional[ConversationSession]:
        return self.store.get(session_key)

    async def handle_utterance(self, session_key: str, text: str) -> UtteranceResult:
        """
        Raises:
            ValueError: blank utterance, nothing is recorded
            SessionNotFound: no open session for this key
        """
        if not text or not text.strip():
            raise ValueError("utterance text is required")
        text = text.strip()

        session = self.store.get(session_key)
        if session is None:
            raise SessionNotFound(session_key)

        async with session.lock:
            # Closed or replaced while this utterance waited its turn
            if self.store.get(session_key) is not session:
                raise SessionNotFound(session_key)

            result = await self._run_pipeline(session, text)

            if self.store.get(session_key) is not session:
                logger.warning(f"Session '{session_key}' closed while an utterance was in flight")
            return result

    async def _run_pipeline(self, session: ConversationSession, text: str) -> UtteranceResult:
        session.append(Speaker.USER, text)

        entry = await self.matcher.match(text)
        if entry is not None:
            session.append(Speaker.ASSISTANT, entry.answer)
            return UtteranceResult(reply=entry.answer, escalated=False)

        # Turns before this question; the policy prompt carries the question itself
        prior_turns = session.recent(ESCALATION_TURNS + 1)[:-1]
        if await self.policy.should_escalate(text, prior_turns):
            return await self._escalate(session, text, deflection_message(session.customer_name))

        generated = await self.inference.complete(
            [Message(role=t.speaker.value, text=t.text) for t in session.recent(GENERATION_TURNS)],
            system_prompt=GENERATION_PROMPT.format(business_name=self.business_name),
            max_tokens=150,
            temperature=0.7,
        )
        if not generated.ok:
            logger.warning(f"Generation failed ({generated.error}), escalating instead")
            return await self._escalate(session, text, APOLOGY_MESSAGE)

        reply = generated.text.strip()
        session.append(Speaker.ASSISTANT, reply)
        return UtteranceResult(reply=reply, escalated=False)

    async def _escalate(self, session: ConversationSession, question: str, reply: str) -> UtteranceResult:
        request = await self.help_requests.create_request(
            customer_phone=session.customer_phone,
            question=question,
            customer_name=session.customer_name,
            context=session.snapshot(CONTEXT_TURNS),
            session_key=session.session_key,
        )
        session.append(Speaker.ASSISTANT, reply)
        return UtteranceResult(reply=reply, escalated=True, help_request_id=request.id)
