"""Unit tests for GenerationService — prompts, JSON parsing and error mapping."""

from __future__ import annotations

import json

import pytest

from src.models.course import ActivityType, CourseLevel, SessionOutline
from src.models.rag import RetrievalContext
from src.services.generation_service import GenerationService
from src.utils.errors import LLMError, ServiceTimeoutError, TransientServiceError
from tests.conftest import ScriptedLLM, make_config, make_course, outline_response, session_response


def _context(ctx_id: str = "ctx-1") -> RetrievalContext:
    return RetrievalContext(
        id=ctx_id,
        content="Chlorophyll absorbs red and blue light.",
        relevance_score=0.8,
        source_document="doc-photosynthesis",
        chunk_index=0,
    )


_OUTLINE = SessionOutline(title="Light Reactions", description="Thylakoids", topics=["light"])


class TestGenerateOutline:
    @pytest.mark.asyncio
    async def test_fenced_json_parsed(self, llm: ScriptedLLM) -> None:
        service = GenerationService(llm)
        outlines = await service.generate_outline(make_course(), make_config(), [_context()])

        assert [o.title for o in outlines] == ["Light Reactions", "Calvin Cycle"]
        assert outlines[0].topics == ["light reactions", "energy"]

    @pytest.mark.asyncio
    async def test_prompt_includes_course_and_context(self, llm: ScriptedLLM) -> None:
        service = GenerationService(llm)
        await service.generate_outline(make_course(), make_config(level=CourseLevel.BEGINNER), [_context()])

        system_prompt, user_prompt = llm.calls[0]
        assert "instructional designer" in system_prompt
        assert "exactly 2 sessions" in user_prompt
        assert "Plant Energy" in user_prompt
        assert "Chlorophyll absorbs red and blue light." in user_prompt
        assert "beginner" in user_prompt

    @pytest.mark.asyncio
    async def test_extra_sessions_truncated(self, llm: ScriptedLLM) -> None:
        llm.script.append(outline_response(["One", "Two", "Three", "Four"]))
        outlines = await GenerationService(llm).generate_outline(make_course(), make_config(), [])
        assert [o.title for o in outlines] == ["One", "Two"]

    @pytest.mark.asyncio
    async def test_short_outline_accepted(self, llm: ScriptedLLM) -> None:
        llm.script.append(outline_response(["Only"]))
        outlines = await GenerationService(llm).generate_outline(make_course(), make_config(), [])
        assert len(outlines) == 1

    @pytest.mark.asyncio
    async def test_preamble_around_json(self, llm: ScriptedLLM) -> None:
        body = json.dumps({"sessions": [{"title": "Intro"}]})
        llm.script.append(f"Sure! Here is the outline:\n{body}\nHope this helps.")
        outlines = await GenerationService(llm).generate_outline(make_course(), make_config(), [])
        assert outlines[0].title == "Intro"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "response",
        [
            "not json at all",
            "[1, 2, 3]",
            json.dumps({"sessions": []}),
            json.dumps({"sessions": [{"description": "no title"}]}),
        ],
    )
    async def test_unusable_response_raises_llm_error(self, llm: ScriptedLLM, response: str) -> None:
        llm.script.append(response)
        with pytest.raises(LLMError):
            await GenerationService(llm).generate_outline(make_course(), make_config(), [])

    @pytest.mark.asyncio
    async def test_timeout_is_transient(self, llm: ScriptedLLM) -> None:
        llm.delay = 0.5
        service = GenerationService(llm)

        with pytest.raises(ServiceTimeoutError) as exc_info:
            await service.generate_outline(make_course(), make_config(generation_timeout_seconds=0.01), [])
        assert isinstance(exc_info.value, TransientServiceError)
        assert exc_info.value.provider_name == "scripted"

    @pytest.mark.asyncio
    async def test_job_timeout_overrides_service_default(self, llm: ScriptedLLM) -> None:
        llm.delay = 0.3
        service = GenerationService(llm, timeout_seconds=60)

        with pytest.raises(ServiceTimeoutError) as exc_info:
            await service.generate_outline(make_course(), make_config(generation_timeout_seconds=0.05), [])
        assert "0.05s" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_llm_error_is_not_transient(self, llm: ScriptedLLM) -> None:
        llm.script.append("garbage")
        with pytest.raises(LLMError) as exc_info:
            await GenerationService(llm).generate_outline(make_course(), make_config(), [])
        assert not isinstance(exc_info.value, TransientServiceError)


class TestGenerateSession:
    @pytest.mark.asyncio
    async def test_session_draft_built(self, llm: ScriptedLLM) -> None:
        service = GenerationService(llm)
        draft = await service.generate_session(make_course(), _OUTLINE, 0, make_config(), [_context("c1"), _context("c2")])

        assert draft.sequence_index == 0
        assert draft.title == "Light Reactions"
        assert [a.type for a in draft.activities] == [ActivityType.LESSON, ActivityType.EXERCISE]
        assert draft.context_ids == ["c1", "c2"]

    @pytest.mark.asyncio
    async def test_activity_aliases_and_limits(self, llm: ScriptedLLM) -> None:
        llm.script.append(
            json.dumps(
                {
                    "activities": [
                        {"type": "Hands-On", "title": "Build a leaf model"},
                        {"type": "mystery", "title": "Read"},
                        {"type": "quiz", "title": "Ignored, over the limit"},
                    ],
                    "duration_minutes": "45.5",
                }
            )
        )
        draft = await GenerationService(llm).generate_session(make_course(), _OUTLINE, 1, make_config(), [])

        assert [a.type for a in draft.activities] == [ActivityType.EXERCISE, ActivityType.LESSON]
        assert draft.duration_minutes == 45
        # Missing fields fall back to the outline.
        assert draft.title == _OUTLINE.title
        assert draft.topics == _OUTLINE.topics

    @pytest.mark.asyncio
    async def test_no_activities_raises(self, llm: ScriptedLLM) -> None:
        llm.script.append(json.dumps({"title": "Empty", "activities": []}))
        with pytest.raises(LLMError, match="no activities"):
            await GenerationService(llm).generate_session(make_course(), _OUTLINE, 0, make_config(), [])

    @pytest.mark.asyncio
    async def test_session_prompt_mentions_index_and_topics(self, llm: ScriptedLLM) -> None:
        llm.script.append(session_response("Light Reactions"))
        await GenerationService(llm).generate_session(make_course(), _OUTLINE, 2, make_config(), [])

        _, user_prompt = llm.calls[0]
        assert "session 3" in user_prompt
        assert "Topics: light" in user_prompt
        assert "No additional context provided." in user_prompt
