from typing import List, Sequence

from frontdesk.core.logging import get_plain_logger
from frontdesk.models.schemas import Turn
from frontdesk.services.inference import InferenceProvider, Message

logger = get_plain_logger(__name__)

ESCALATION_PROMPT = """You are an AI receptionist. Determine if this question requires human supervisor assistance.

Question: "{question}"
{history}
Escalate to human if:
- Question is about specific pricing, contracts, or custom services
- Question requires access to private customer data
- Question is complex and requires expert knowledge
- Question is about complaints or sensitive issues

Do NOT escalate if:
- Question is about general information (hours, location, contact)
- Question can be answered with common knowledge
- Question is a simple greeting or small talk

Reply with only "ESCALATE" or "ANSWER"."""

ESCALATE = "ESCALATE"
ANSWER = "ANSWER"


class EscalationPolicy:
    """Decides whether a question needs a human; any doubt means escalate"""

    def __init__(self, inference: InferenceProvider):
        self.inference = inference

    async def should_escalate(self, question: str, recent_history: Sequence[Turn] = ()) -> bool:
        prompt = ESCALATION_PROMPT.format(
            question=question, history=self._format_history(recent_history)
        )
        result = await self.inference.complete(
            [Message(role="user", text=prompt)],
            max_tokens=10,
            temperature=0.3,
        )

        if not result.ok:
            logger.warning(f"🚨 Escalation check failed ({result.error}), escalating")
            return True

        decision = result.text.strip().strip('."\'').upper()
        if decision == ANSWER:
            logger.info(f"Answering directly: '{question}'")
            return False
        if decision != ESCALATE:
            logger.warning(f"Malformed escalation reply '{result.text}', escalating")
        else:
            logger.info(f"🚨 Escalating: '{question}'")
        return True

    @staticmethod
    def _format_history(turns: Sequence[Turn]) -> str:
        if not turns:
            return ""
        lines: List[str] = [f"{t.speaker.value}: {t.text}" for t in turns]
        return "\nRecent conversation:\n" + "\n".join(lines) + "\n"
