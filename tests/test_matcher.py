"""Tests for the three-stage knowledge matcher."""

from __future__ import annotations

import asyncio

from frontdesk.services.inference import InferenceResult
from frontdesk.services.matcher import KnowledgeMatcher

from tests.conftest import HOURS_ANSWER, HOURS_QUESTION, ScriptedInference


async def _haircut_entries(kb):
    adult = await kb.add_answer("How much is a haircut for adults?", "An adult haircut is $45.")
    kids = await kb.add_answer("Do you do haircuts for kids?", "Yes, kids haircuts are $25.")
    return adult, kids


def _pick_line_containing(word):
    """Disambiguation reply that chooses the numbered candidate mentioning word."""
    def reply(prompt):
        for line in prompt.splitlines():
            head, _, rest = line.partition(". Q: ")
            if rest and word in rest.lower():
                return head.strip()
        return "NONE"
    return reply


class TestFastPath:

    async def test_single_candidate_needs_no_inference(self, kb, matcher, inference, hours_entry):
        entry = await matcher.match(HOURS_QUESTION)

        assert entry.id == hours_entry.id
        assert entry.answer == HOURS_ANSWER
        assert entry.usage_count == 1
        assert entry.last_used_at is not None
        assert inference.calls == []

    async def test_no_entries_is_no_match(self, matcher, inference):
        assert await matcher.match("Do you validate parking?") is None
        assert inference.calls == []

    async def test_inactive_entries_never_match(self, kb, matcher, hours_entry):
        kb.deactivate_answer(hours_entry.id)

        assert await matcher.match(HOURS_QUESTION) is None


class TestKeywordFallback:

    async def test_keyword_stage_when_text_finds_nothing(self, kb, matcher, inference):
        entry = await kb.add_answer(
            "Where can I leave my car?",
            "There is a garage behind the building.",
            keywords=["parking", "garage"],
        )

        match = await matcher.match("Is there parking?")

        assert match.id == entry.id
        assert match.usage_count == 1
        assert inference.calls == []


class TestDisambiguation:

    async def test_llm_picks_among_candidates(self, kb):
        adult, kids = await _haircut_entries(kb)
        inference = ScriptedInference(disambiguation=_pick_line_containing("kids"))
        matcher = KnowledgeMatcher(kb, inference)

        match = await matcher.match("haircut price for my kids")

        assert match.id == kids.id
        assert kb.get_entry(adult.id).usage_count == 0
        call = inference.calls_for("disambiguation")[0]
        assert '"haircut price for my kids"' in call["messages"][0].text
        assert call["max_tokens"] == 10

    async def test_none_reply_means_no_match(self, kb):
        adult, kids = await _haircut_entries(kb)
        matcher = KnowledgeMatcher(kb, ScriptedInference(disambiguation="NONE"))

        assert await matcher.match("haircut") is None
        assert kb.get_entry(adult.id).usage_count == 0
        assert kb.get_entry(kids.id).usage_count == 0

    async def test_inference_failure_returns_first_candidate(self, kb):
        await _haircut_entries(kb)
        expected = kb.text_search("haircut")[0]
        matcher = KnowledgeMatcher(kb, ScriptedInference(disambiguation=InferenceResult.failure("timeout")))

        match = await matcher.match("haircut")

        assert match.id == expected.id
        assert match.usage_count == 1

    async def test_unparseable_reply_returns_first_candidate(self, kb):
        await _haircut_entries(kb)
        expected = kb.text_search("haircut")[0]
        matcher = KnowledgeMatcher(kb, ScriptedInference(disambiguation="probably the second one"))

        assert (await matcher.match("haircut")).id == expected.id

    async def test_out_of_range_reply_returns_first_candidate(self, kb):
        await _haircut_entries(kb)
        expected = kb.text_search("haircut")[0]
        matcher = KnowledgeMatcher(kb, ScriptedInference(disambiguation="7"))

        assert (await matcher.match("haircut")).id == expected.id


class TestUsageAccounting:

    async def test_concurrent_matches_count_every_hit(self, kb, matcher, hours_entry):
        results = await asyncio.gather(*(matcher.match(HOURS_QUESTION) for _ in range(25)))

        assert all(r is not None and r.id == hours_entry.id for r in results)
        assert kb.get_entry(hours_entry.id).usage_count == 25

    async def test_usage_failure_still_returns_answer(self, kb, matcher, hours_entry, monkeypatch):
        import sqlite3

        def broken(entry_id):
            raise sqlite3.OperationalError("database is locked")

        monkeypatch.setattr(kb, "record_usage", broken)

        entry = await matcher.match(HOURS_QUESTION)

        assert entry.id == hours_entry.id
        assert entry.answer == HOURS_ANSWER
