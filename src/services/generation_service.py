"""Course outline and session generation via the injected LLM provider.

Owns the prompts and the parsing of model output into draft models.  The
service makes exactly one model call per method invocation: retries are a
stage-level concern handled by the job runner, so a timeout or rate limit
here surfaces as a :class:`~src.utils.errors.TransientServiceError` and an
unusable response as :class:`~src.utils.errors.LLMError`.
"""

from __future__ import annotations

import asyncio
import json
import re
import uuid
from typing import Any

from src.interfaces.llm_provider import ILLMProvider
from src.models.course import (
    ActivityDraft,
    ActivityType,
    CourseBrief,
    CourseLevel,
    SessionDraft,
    SessionOutline,
    SessionStatus,
)
from src.models.pipeline import GenerationConfig
from src.models.rag import RetrievalContext
from src.utils.errors import LLMError, ServiceTimeoutError
from src.utils.logging import get_logger

_JSON_FENCE_RE = re.compile(r"```(?:json)?\s*\n?(.*?)\n?\s*```", re.DOTALL)

# Per-level writing guidance injected into every prompt.
_LEVEL_GUIDELINES: dict[CourseLevel, dict[str, str]] = {
    CourseLevel.BEGINNER: {
        "complexity": "simple",
        "detail": "detailed explanations with definitions of every new term",
        "examples": "3",
        "pacing": "gradual",
    },
    CourseLevel.INTERMEDIATE: {
        "complexity": "moderate",
        "detail": "balanced explanations that assume the fundamentals",
        "examples": "2",
        "pacing": "steady",
    },
    CourseLevel.ADVANCED: {
        "complexity": "complex",
        "detail": "concise explanations focused on nuance and trade-offs",
        "examples": "1",
        "pacing": "rapid",
    },
}

_ACTIVITY_ALIASES: dict[str, ActivityType] = {
    "lecture": ActivityType.LESSON,
    "reading": ActivityType.LESSON,
    "practice": ActivityType.EXERCISE,
    "hands-on": ActivityType.EXERCISE,
    "assessment": ActivityType.QUIZ,
    "project": ActivityType.ASSIGNMENT,
    "group": ActivityType.DISCUSSION,
}

_OUTLINE_SYSTEM_PROMPT = (
    "You are an expert instructional designer. You create course outlines that "
    "progress from basic to advanced concepts, stay aligned with the stated "
    "learning objectives, and are grounded in the supplied source material. "
    "Return ONLY a JSON object, with no text before or after it."
)

_SESSION_SYSTEM_PROMPT = (
    "You are an expert course content developer. You write session material "
    "that achieves the session's goals, mixes explanation with practice, and "
    "draws its facts from the supplied source material only. "
    "Return ONLY a JSON object, with no text before or after it."
)


class GenerationService:
    """Generate outlines and session drafts from retrieved course context.

    Parameters
    ----------
    llm_provider:
        The text-completion backend.
    timeout_seconds:
        Upper bound for a single model call when the job config does not
        set ``generation_timeout_seconds``.
    """

    def __init__(self, llm_provider: ILLMProvider, timeout_seconds: float = 60.0) -> None:
        self._llm = llm_provider
        self._timeout = timeout_seconds
        self._logger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def generate_outline(
        self,
        course: CourseBrief,
        config: GenerationConfig,
        contexts: list[RetrievalContext],
    ) -> list[SessionOutline]:
        """Ask the model for one outline entry per target session."""
        prompt = self._build_outline_prompt(course, config, contexts)
        response = await self._complete(
            _OUTLINE_SYSTEM_PROMPT, prompt, "outline", config.generation_timeout_seconds
        )
        parsed = self._parse_json(response)

        raw_sessions = parsed.get("sessions")
        if not isinstance(raw_sessions, list) or not raw_sessions:
            raise LLMError(
                message="Outline response has no sessions",
                provider_name=self._llm.get_provider_name(),
            )

        outlines: list[SessionOutline] = []
        for item in raw_sessions[: config.session_count]:
            if not isinstance(item, dict) or not str(item.get("title", "")).strip():
                continue
            outlines.append(
                SessionOutline(
                    title=str(item["title"]).strip(),
                    description=str(item.get("description", "")).strip(),
                    topics=_string_list(item.get("topics")),
                )
            )
        if not outlines:
            raise LLMError(
                message="Outline response has no usable session entries",
                provider_name=self._llm.get_provider_name(),
            )
        if len(outlines) < config.session_count:
            self._logger.warning(
                "outline_short",
                requested=config.session_count,
                received=len(outlines),
            )
        return outlines

    async def generate_session(
        self,
        course: CourseBrief,
        outline: SessionOutline,
        sequence_index: int,
        config: GenerationConfig,
        contexts: list[RetrievalContext],
    ) -> SessionDraft:
        """Generate one session's activities from its own retrieved context."""
        prompt = self._build_session_prompt(course, outline, sequence_index, config, contexts)
        response = await self._complete(
            _SESSION_SYSTEM_PROMPT, prompt, "session", config.generation_timeout_seconds
        )
        parsed = self._parse_json(response)

        activities: list[ActivityDraft] = []
        raw_activities = parsed.get("activities")
        if isinstance(raw_activities, list):
            for item in raw_activities[: config.activities_per_session]:
                if isinstance(item, dict) and str(item.get("title", "")).strip():
                    activities.append(_build_activity(item))
        if not activities:
            raise LLMError(
                message=f"Session {sequence_index + 1} response has no activities",
                provider_name=self._llm.get_provider_name(),
            )

        return SessionDraft(
            id=str(uuid.uuid4()),
            sequence_index=sequence_index,
            title=str(parsed.get("title") or outline.title).strip(),
            description=str(parsed.get("description") or outline.description).strip(),
            topics=_string_list(parsed.get("topics")) or list(outline.topics),
            duration_minutes=_minutes(parsed.get("duration_minutes")),
            activities=activities,
            status=SessionStatus.COMPLETED,
            context_ids=[ctx.id for ctx in contexts],
        )

    # ------------------------------------------------------------------
    # Prompt construction
    # ------------------------------------------------------------------

    def _build_outline_prompt(
        self,
        course: CourseBrief,
        config: GenerationConfig,
        contexts: list[RetrievalContext],
    ) -> str:
        return (
            f"Create a course outline with exactly {config.session_count} sessions.\n\n"
            f"**Course**\n{_describe_course(course, config.level)}\n\n"
            f"**Source material**\n{_format_contexts(contexts)}\n\n"
            "**Output format**\n"
            '{"sessions": [{"title": "string", "description": "string", '
            '"topics": ["string"]}]}'
        )

    def _build_session_prompt(
        self,
        course: CourseBrief,
        outline: SessionOutline,
        sequence_index: int,
        config: GenerationConfig,
        contexts: list[RetrievalContext],
    ) -> str:
        topics = ", ".join(outline.topics) or "(none given)"
        kinds = "|".join(t.value for t in ActivityType)
        return (
            f"Write session {sequence_index + 1} of the course below with "
            f"{config.activities_per_session} activities.\n\n"
            f"**Session**\nTitle: {outline.title}\n"
            f"Description: {outline.description}\nTopics: {topics}\n\n"
            f"**Course**\n{_describe_course(course, config.level)}\n\n"
            f"**Source material**\n{_format_contexts(contexts)}\n\n"
            "**Output format**\n"
            '{"title": "string", "description": "string", "topics": ["string"], '
            '"duration_minutes": 0, "activities": [{"type": "' + kinds + '", '
            '"title": "string", "description": "string", "content": "string", '
            '"duration_minutes": 0}]}'
        )

    # ------------------------------------------------------------------
    # Model call and parsing
    # ------------------------------------------------------------------

    async def _complete(
        self, system_prompt: str, user_prompt: str, purpose: str, timeout: float | None = None
    ) -> str:
        limit = timeout or self._timeout
        try:
            return await asyncio.wait_for(
                self._llm.complete(system_prompt=system_prompt, user_prompt=user_prompt),
                timeout=limit,
            )
        except asyncio.TimeoutError as exc:
            self._logger.warning("generation_timeout", purpose=purpose, timeout=limit)
            raise ServiceTimeoutError(
                message=f"Model call for {purpose} exceeded {limit}s",
                provider_name=self._llm.get_provider_name(),
            ) from exc

    def _parse_json(self, response: str) -> dict[str, Any]:
        """Extract a JSON object from a model response.

        Handles markdown code fences and preamble text around the object.
        """
        text = response.strip()

        fence_match = _JSON_FENCE_RE.search(text)
        if fence_match:
            text = fence_match.group(1).strip()

        if not text.startswith("{"):
            brace_start = text.find("{")
            brace_end = text.rfind("}")
            if brace_start != -1 and brace_end > brace_start:
                text = text[brace_start : brace_end + 1]

        try:
            parsed = json.loads(text)
        except json.JSONDecodeError as exc:
            self._logger.error("json_parse_failed", error=str(exc), response_preview=response[:200])
            raise LLMError(
                message=f"Failed to parse model JSON: {exc}",
                provider_name=self._llm.get_provider_name(),
            ) from exc

        if not isinstance(parsed, dict):
            raise LLMError(
                message="Model response is not a JSON object",
                provider_name=self._llm.get_provider_name(),
            )
        return parsed


# ---------------------------------------------------------------------------
# Module helpers
# ---------------------------------------------------------------------------

def _describe_course(course: CourseBrief, level: CourseLevel) -> str:
    guide = _LEVEL_GUIDELINES[level]
    objectives = "\n".join(f"- {o}" for o in course.objectives) or "- (none given)"
    topics = ", ".join(course.topics) or "(none given)"
    return (
        f"Title: {course.title}\n"
        f"Description: {course.description or '(none given)'}\n"
        f"Level: {level.value} (complexity: {guide['complexity']}; {guide['detail']}; "
        f"{guide['examples']} examples per concept; {guide['pacing']} pacing)\n"
        f"Objectives:\n{objectives}\n"
        f"Topics: {topics}"
    )


def _format_contexts(contexts: list[RetrievalContext]) -> str:
    if not contexts:
        return "No additional context provided."
    return "\n".join(
        f"Source {i} (relevance {ctx.relevance_score:.2f}):\n{ctx.content}\n"
        for i, ctx in enumerate(contexts, start=1)
    )


def _build_activity(item: dict[str, Any]) -> ActivityDraft:
    raw_type = str(item.get("type", "")).strip().lower()
    try:
        kind = ActivityType(raw_type)
    except ValueError:
        kind = _ACTIVITY_ALIASES.get(raw_type, ActivityType.LESSON)
    return ActivityDraft(
        type=kind,
        title=str(item["title"]).strip(),
        description=str(item.get("description", "")).strip(),
        content=str(item.get("content", "")).strip(),
        duration_minutes=_minutes(item.get("duration_minutes")),
    )


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(v).strip() for v in value if str(v).strip()]


def _minutes(value: Any) -> int:
    """Coerce a model-supplied duration to whole minutes (0 when absent or invalid)."""
    try:
        return max(0, int(float(value)))
    except (TypeError, ValueError):
        return 0
