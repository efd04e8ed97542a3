"""
Tests for Session Story Generation
"""

import asyncio

import pytest

from conftest import FakeTextGenerator
from talecast.errors import EmptyGeneration
from talecast.pipeline.models import GlossaryContext, GlossaryEntity, SessionSummary
from talecast.pipeline.narrative import (
    NarrativeContext,
    NarrativeGenerator,
    select_previous_summaries,
)


def _summary(session_id, size):
    return SessionSummary(session_id=session_id, title=f"Session {session_id}", content="x" * size)


class TestSelectPreviousSummaries:
    def test_all_fit(self):
        summaries = [_summary("1", 10), _summary("2", 10)]

        assert select_previous_summaries(summaries, 100) == summaries

    def test_drops_oldest_first(self):
        summaries = [_summary("1", 40), _summary("2", 40), _summary("3", 40)]

        kept = select_previous_summaries(summaries, 100)

        assert [s.session_id for s in kept] == ["2", "3"]

    def test_kept_summaries_are_never_truncated(self):
        summaries = [_summary("1", 30), _summary("2", 60)]

        kept = select_previous_summaries(summaries, 70)

        assert [len(s.content) for s in kept] == [60]

    def test_stops_at_first_summary_that_does_not_fit(self):
        """A small old summary is not kept once a newer one was dropped."""
        summaries = [_summary("1", 5), _summary("2", 500), _summary("3", 50)]

        kept = select_previous_summaries(summaries, 100)

        assert [s.session_id for s in kept] == ["3"]

    def test_nothing_fits(self):
        assert select_previous_summaries([_summary("1", 200)], 100) == []

    def test_exact_budget_is_kept(self):
        assert len(select_previous_summaries([_summary("1", 100)], 100)) == 1


class TestNarrativeGenerator:
    def test_builds_grounded_request(self, feature_config):
        generator = FakeTextGenerator(["## The Cave\nThe party entered the cave."])
        context = NarrativeContext(
            glossary=GlossaryContext(characters=[GlossaryEntity(name="Aria")]),
            previous_summaries=[SessionSummary(session_id="s1", title="The Road", content="They travelled.")],
            user_corrections="The dragon is called Vex, not Rex.",
        )

        story = asyncio.run(
            NarrativeGenerator(generator, language="Dutch").generate("[00:05] DM: Welcome", context, feature_config)
        )

        assert story.startswith("## The Cave")
        call = generator.calls[0]
        assert "Characters: Aria" in call["contents"]
        assert "PREVIOUS SESSION STORIES" in call["contents"]
        assert "They travelled." in call["contents"]
        assert "DM CORRECTIONS:\nThe dragon is called Vex, not Rex." in call["contents"]
        assert call["contents"].endswith("SESSION TRANSCRIPT:\n[00:05] DM: Welcome")
        assert "written entirely in Dutch" in call["system_instruction"]

    def test_optional_context_is_omitted(self, feature_config):
        generator = FakeTextGenerator(["Story"])

        asyncio.run(NarrativeGenerator(generator).generate("[00:01] hi", None, feature_config))

        contents = generator.calls[0]["contents"]
        assert "CAMPAIGN REFERENCE" not in contents
        assert "PREVIOUS SESSION" not in contents
        assert "DM CORRECTIONS" not in contents

    def test_summaries_respect_budget(self, feature_config):
        generator = FakeTextGenerator(["Story"])
        context = NarrativeContext(previous_summaries=[
            SessionSummary(session_id="old", content="OLD" * 100),
            SessionSummary(session_id="new", content="NEW" * 10),
        ])

        asyncio.run(
            NarrativeGenerator(generator, max_summary_chars=50).generate("t", context, feature_config)
        )

        contents = generator.calls[0]["contents"]
        assert "NEW" in contents
        assert "OLD" not in contents

    @pytest.mark.parametrize("response", ["", "   \n"])
    def test_empty_output_raises(self, response, feature_config):
        generator = FakeTextGenerator([response])

        with pytest.raises(EmptyGeneration):
            asyncio.run(NarrativeGenerator(generator).generate("t", None, feature_config))
