"""Assembly of generated session drafts into the final CourseDraft tree.

Scoring rubric for generated nodes (0-100):

    activity   40% substance   description + content words / 120, capped at 1
               30% diversity   distinct / total words, doubled and capped at 1
               30% grounding   share of the activity's keywords found in the
                               session's source contexts
    session    mean activity score, scaled by activities delivered / requested
    course     mean session score

Nodes under the minimum threshold produce a :class:`QualityWarning` each.
Warnings are returned, never raised.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field

from src.models.course import ActivityDraft, CourseBrief, CourseDraft, SessionDraft
from src.models.pipeline import GenerationConfig
from src.models.rag import RetrievalContext
from src.services.ingestion.keyword_extractor import extract_keywords
from src.utils.errors import QualityWarning
from src.utils.logging import get_logger

logger = get_logger(__name__)

_WORD_RE = re.compile(r"\w+", re.UNICODE)

_SUBSTANCE_WORDS = 120
_WORDS_PER_MINUTE = 200
# Study time runs longer than plain reading time.
_STUDY_FACTOR = 1.5


@dataclass
class AssemblyResult:
    draft: CourseDraft
    warnings: list[QualityWarning] = field(default_factory=list)


def estimate_minutes(text: str) -> int:
    """Minutes needed to study *text*: words / 200 wpm × 1.5, at least 1."""
    words = len(_WORD_RE.findall(text))
    if not words:
        return 0
    return max(1, math.ceil(words / _WORDS_PER_MINUTE * _STUDY_FACTOR))


def score_activity(activity: ActivityDraft, source_concepts: set[str]) -> float:
    text = f"{activity.description} {activity.content}".strip()
    words = [w.lower() for w in _WORD_RE.findall(text)]
    if not words:
        return 0.0

    substance = min(1.0, len(words) / _SUBSTANCE_WORDS)
    diversity = min(1.0, 2.0 * len(set(words)) / len(words))
    keywords = set(extract_keywords(text))
    grounding = len(keywords & source_concepts) / len(keywords) if keywords else 0.0

    raw = 40.0 * substance + 30.0 * diversity + 30.0 * grounding
    return round(max(0.0, min(100.0, raw)), 2)


class CourseAssembler:
    """Build the CourseDraft tree and score every node in it."""

    def assemble(
        self,
        job_id: str,
        course: CourseBrief,
        config: GenerationConfig,
        sessions: list[SessionDraft],
        contexts: dict[str, RetrievalContext],
    ) -> AssemblyResult:
        """Score, time and collect *sessions* into a :class:`CourseDraft`.

        *contexts* maps context id to context for every context retrieved
        during the job; each session is graded against its own subset.
        """
        minimum = config.thresholds.minimum
        warnings: list[QualityWarning] = []
        scored_sessions: list[SessionDraft] = []

        for session in sorted(sessions, key=lambda s: s.sequence_index):
            concepts: set[str] = set()
            for ctx_id in session.context_ids:
                ctx = contexts.get(ctx_id)
                if ctx is not None:
                    concepts.update(ctx.extracted_concepts)

            activities: list[ActivityDraft] = []
            for activity in session.activities:
                score = score_activity(activity, concepts)
                duration = activity.duration_minutes or estimate_minutes(
                    f"{activity.description} {activity.content}"
                )
                activities.append(
                    activity.model_copy(update={"quality_score": score, "duration_minutes": duration})
                )
                if score < minimum:
                    warnings.append(
                        QualityWarning(
                            message=f"Activity '{activity.title}' scored {score:.1f}",
                            subject_id=f"{session.id}:{activity.title}",
                            score=score,
                        )
                    )

            delivered = min(1.0, len(activities) / config.activities_per_session)
            session_score = (
                round(sum(a.quality_score for a in activities) / len(activities) * delivered, 2)
                if activities
                else 0.0
            )
            session_minutes = session.duration_minutes or sum(a.duration_minutes for a in activities)
            scored_sessions.append(
                session.model_copy(
                    update={
                        "activities": activities,
                        "quality_score": session_score,
                        "duration_minutes": session_minutes,
                    }
                )
            )
            if session_score < minimum:
                warnings.append(
                    QualityWarning(
                        message=f"Session '{session.title}' scored {session_score:.1f}",
                        subject_id=session.id,
                        score=session_score,
                    )
                )

        course_score = (
            round(sum(s.quality_score for s in scored_sessions) / len(scored_sessions), 2)
            if scored_sessions
            else 0.0
        )
        if course_score < minimum:
            warnings.append(
                QualityWarning(
                    message=f"Course '{course.title}' scored {course_score:.1f}",
                    subject_id=course.course_id,
                    score=course_score,
                )
            )

        coverage = self._topic_coverage(course, scored_sessions)
        source_ids = sorted({cid for s in scored_sessions for cid in s.context_ids} | set(contexts))

        draft = CourseDraft(
            course_id=course.course_id,
            job_id=job_id,
            title=course.title,
            description=course.description,
            level=config.level,
            objectives=list(course.objectives),
            sessions=scored_sessions,
            estimated_duration_minutes=sum(s.duration_minutes for s in scored_sessions),
            topic_coverage=coverage,
            source_context_ids=source_ids,
            quality_score=course_score,
        )
        logger.info(
            "course_assembled",
            course_id=course.course_id,
            sessions=len(scored_sessions),
            quality_score=course_score,
            duration_minutes=draft.estimated_duration_minutes,
            warnings=len(warnings),
        )
        return AssemblyResult(draft=draft, warnings=warnings)

    @staticmethod
    def _topic_coverage(course: CourseBrief, sessions: list[SessionDraft]) -> list[str]:
        """Declared course topics that some session covers, then the remaining session topics."""
        session_topics: list[str] = []
        seen: set[str] = set()
        for session in sessions:
            for topic in session.topics:
                key = topic.lower()
                if key not in seen:
                    seen.add(key)
                    session_topics.append(topic)

        haystack = " ".join(session_topics + [s.title for s in sessions]).lower()
        covered = [t for t in course.topics if t.lower() in haystack]
        covered_keys = {t.lower() for t in covered}
        return covered + [t for t in session_topics if t.lower() not in covered_keys]
