import asyncio
import sqlite3
import re
from typing import List, Optional

from frontdesk.core.logging import get_plain_logger
from frontdesk.models.schemas import KnowledgeEntry
from frontdesk.services.inference import InferenceProvider, Message
from frontdesk.services.knowledge_base import KnowledgeBaseService, extract_keywords

logger = get_plain_logger(__name__)

TEXT_CANDIDATES = 5
KEYWORD_CANDIDATES = 3

DISAMBIGUATION_PROMPT = """Given the user question: "{question}"

Which of the following Q&A pairs best answers this question? Reply with only the number (1-{count}) or "NONE" if none are relevant.

{candidates}"""

_LEADING_NUMBER = re.compile(r"^\s*(\d+)")


class KnowledgeMatcher:
    """
    Finds the single best existing answer for a question

    1. Lexical relevance over question/answer text, top 5
    2. Keyword overlap, only when stage 1 found nothing, top 3 by usage
    3. One candidate wins outright, several go to the LLM to pick
    A match records usage on the entry before it is returned.
    """

    def __init__(self, kb: KnowledgeBaseService, inference: InferenceProvider):
        self.kb = kb
        self.inference = inference

    async def match(self, question: str) -> Optional[KnowledgeEntry]:
        candidates = await asyncio.to_thread(self.kb.text_search, question, TEXT_CANDIDATES)
        stage = "text"

        if not candidates:
            keywords = extract_keywords(question)
            candidates = await asyncio.to_thread(self.kb.keyword_search, keywords, KEYWORD_CANDIDATES)
            stage = "keyword"

        if not candidates:
            logger.info(f"✗ No KB match for: '{question}'")
            return None

        best = await self._pick_best(question, candidates)
        if best is None:
            logger.info(f"✗ LLM rejected {len(candidates)} {stage} candidates for: '{question}'")
            return None

        entry = await self._record_usage(best)
        if entry is not None:
            logger.info(f"✓ KB hit #{entry.id} via {stage}: '{entry.question}' → '{entry.answer[:50]}...'")
        return entry

    async def _pick_best(
        self, question: str, candidates: List[KnowledgeEntry]
    ) -> Optional[KnowledgeEntry]:
        if len(candidates) == 1:
            return candidates[0]

        listing = "\n\n".join(
            f"{i}. Q: {c.question}\n   A: {c.answer}" for i, c in enumerate(candidates, start=1)
        )
        prompt = DISAMBIGUATION_PROMPT.format(
            question=question, count=len(candidates), candidates=listing
        )
        result = await self.inference.complete(
            [Message(role="user", text=prompt)],
            max_tokens=10,
            temperature=0.3,
        )

        if not result.ok:
            logger.warning(f"Disambiguation unavailable ({result.error}), using first candidate")
            return candidates[0]

        reply = result.text.strip().strip('."\'').upper()
        if reply == "NONE":
            return None

        number = _LEADING_NUMBER.match(reply)
        if number:
            index = int(number.group(1)) - 1
            if 0 <= index < len(candidates):
                return candidates[index]

        # TODO: revisit whether an unparseable pick should count as no match
        logger.warning(f"Unparseable disambiguation reply '{result.text}', using first candidate")
        return candidates[0]

    async def _record_usage(self, entry: KnowledgeEntry) -> Optional[KnowledgeEntry]:
        """Usage bookkeeping never blocks the answer, except for entries deactivated mid-match"""
        try:
            updated = await asyncio.to_thread(self.kb.record_usage, entry.id)
        except sqlite3.Error as e:
            logger.error(f"Failed to record usage for KB entry #{entry.id}: {e}")
            return entry
        if updated is None:
            logger.info(f"KB entry #{entry.id} was deactivated during match")
        return updated
