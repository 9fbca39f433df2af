"""
Quiz retrieval, submission and results

Reads go remote first and fall back to the local cache, trying the
normalized id and then the id exactly as supplied. Scoring is local, so a
submission always yields a result even when nothing can be persisted.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from groundschool.schemas.quiz import (
    Option,
    Question,
    Quiz,
    QuizHistoryEntry,
    QuizHistoryPage,
    QuizResult,
    QuizStatus,
)
from groundschool.services.grading_service import GradingService
from groundschool.services.supabase_store import RemoteStore
from groundschool.utils.cache import LocalCacheStore
from groundschool.utils.exceptions import GroundSchoolError, NotFoundError, ValidationError
from groundschool.utils.identifiers import normalize_id

logger = logging.getLogger(__name__)

QUESTION_LINK_COLUMNS = "position,question:question_id(*,question_options(*))"


def _require_id(quiz_id: Optional[str]) -> str:
    if quiz_id is None or not str(quiz_id).strip():
        raise ValidationError("Quiz ID is required", error_code="MISSING_QUIZ_ID")
    return str(quiz_id)


def _question_from_row(row: Dict[str, Any], quiz_id: str) -> Question:
    options = [
        Option(
            id=str(option["id"]),
            text=option.get("text") or "",
            is_correct=bool(option.get("is_correct")),
            identifier=option.get("option_identifier") or "",
        )
        for option in row.get("question_options") or []
    ]
    options.sort(key=lambda option: option.identifier)
    return Question(
        id=str(row["id"]),
        text=row.get("text") or row.get("question_text") or "",
        explanation=row.get("explanation") or "",
        difficulty=row.get("difficulty"),
        quiz_id=quiz_id,
        options=options,
    )


def _result_from_row(row: Dict[str, Any]) -> QuizResult:
    return QuizResult(
        quiz_id=str(row["quiz_id"]),
        answers=row.get("answers") or {},
        score=float(row.get("score") or 0),
        correct_count=row.get("correct_count") or 0,
        total_questions=row.get("total_questions") or 0,
        completed_at=row.get("completed_at") or datetime.now(timezone.utc),
        feedback=row.get("feedback"),
    )


class QuizService:
    """Retrieval and submission of generated quizzes"""

    def __init__(self, store: RemoteStore, cache: LocalCacheStore, grading: Optional[GradingService] = None):
        self.store = store
        self.cache = cache
        self.grading = grading or GradingService()

    def _from_cache(self, kind: str, normalized: str, original: str) -> Optional[Dict[str, Any]]:
        for candidate in dict.fromkeys([normalized, original]):
            cached = self.cache.get(kind, candidate)
            if cached:
                logger.info(f"Serving {kind} {candidate} from local cache")
                return cached
        return None

    async def _fetch_remote(self, quiz_id: str) -> Quiz:
        record = await self.store.select_single("quizzes", {"id": quiz_id})
        links, _ = await self.store.select(
            "quiz_questions",
            filters={"quiz_id": quiz_id},
            columns=QUESTION_LINK_COLUMNS,
            order="position.asc",
        )
        questions = [
            _question_from_row(link["question"], quiz_id)
            for link in links
            if link.get("question")
        ]
        return Quiz.from_record(record, questions=questions)

    async def retrieve(self, quiz_id: str) -> Quiz:
        """
        Get a quiz with its questions and options

        Raises:
            ValidationError: missing id
            NotFoundError: absent from both the remote store and the cache
        """
        original = _require_id(quiz_id)
        normalized = normalize_id(original)

        try:
            quiz = await self._fetch_remote(normalized)
        except Exception as e:
            logger.warning(f"Remote fetch of quiz {normalized} failed, trying cache: {str(e)}")
        else:
            self.cache.put(LocalCacheStore.QUIZ, normalized, quiz.model_dump(mode="json"))
            return quiz

        cached = self._from_cache(LocalCacheStore.QUIZ, normalized, original)
        if cached:
            return Quiz.model_validate(cached)

        raise NotFoundError(f"Quiz not found: {original}", error_code="QUIZ_NOT_FOUND")

    async def submit(self, quiz_id: str, answers: Dict[str, str], owner_id: Optional[str] = None) -> QuizResult:
        """
        Score a submission and record it

        Args:
            quiz_id: Quiz being answered
            answers: {question_id: selected option id}
            owner_id: Current user

        Returns:
            QuizResult; persistence failures are logged, never raised
        """
        original = _require_id(quiz_id)
        normalized = normalize_id(original)
        answers = answers or {}

        quiz = await self.retrieve(original)
        correct_count, total, score, _ = self.grading.grade_quiz(quiz.questions, answers)
        completed_at = datetime.now(timezone.utc)

        result = QuizResult(
            quiz_id=normalized,
            answers=answers,
            score=score,
            correct_count=correct_count,
            total_questions=total,
            completed_at=completed_at,
            feedback=self.grading.generate_feedback(score, total),
        )

        try:
            await self.store.insert("quiz_results", {
                "quiz_id": normalized,
                "user_id": owner_id or quiz.owner_id,
                "answers": answers,
                "score": score,
                "correct_count": correct_count,
                "total_questions": total,
                "completed_at": completed_at.isoformat(),
            })
        except Exception as e:
            logger.error(f"Failed to save results for quiz {normalized}: {str(e)}")

        try:
            await self.store.update(
                "quizzes",
                {"status": QuizStatus.COMPLETED.value, "score": score, "completed_at": completed_at.isoformat()},
                {"id": normalized},
            )
        except Exception as e:
            logger.error(f"Failed to update quiz {normalized} after submission: {str(e)}")

        quiz.status = QuizStatus.COMPLETED
        quiz.score = score
        quiz.completed_at = completed_at
        self.cache.put(LocalCacheStore.QUIZ, normalized, quiz.model_dump(mode="json"))
        self.cache.put(LocalCacheStore.RESULTS, normalized, result.model_dump(mode="json"))
        self.cache.append_to_index(LocalCacheStore.QUIZ_HISTORY, {
            "id": normalized,
            "title": quiz.title,
            "score": score,
            "completed_at": completed_at.isoformat(),
            "document_id": quiz.document_id,
            "owner_id": owner_id or quiz.owner_id,
        })

        logger.info(f"Quiz {normalized} submitted: {correct_count}/{total} ({score:.1f}%)")
        return result

    async def get_results(self, quiz_id: str) -> QuizResult:
        """Latest result for a quiz, remote first with cache fallback"""
        original = _require_id(quiz_id)
        normalized = normalize_id(original)

        try:
            rows, _ = await self.store.select(
                "quiz_results",
                filters={"quiz_id": normalized},
                order="completed_at.desc",
                limit=1,
            )
        except Exception as e:
            logger.warning(f"Remote results for quiz {normalized} unavailable, trying cache: {str(e)}")
        else:
            if rows:
                return _result_from_row(rows[0])

        cached = self._from_cache(LocalCacheStore.RESULTS, normalized, original)
        if cached:
            return QuizResult.model_validate(cached)

        raise NotFoundError(f"No results for quiz: {original}", error_code="RESULTS_NOT_FOUND")

    async def _remote_history(self, owner_id: str, page: int, limit: int) -> QuizHistoryPage:
        rows, total = await self.store.select(
            "quiz_results",
            filters={"user_id": owner_id},
            columns="quiz_id,score,completed_at,quiz:quiz_id(title,document_id)",
            order="completed_at.desc",
            limit=limit,
            offset=(page - 1) * limit,
        )
        entries = []
        for row in rows:
            quiz = row.get("quiz") or {}
            entries.append(QuizHistoryEntry(
                id=str(row["quiz_id"]),
                title=quiz.get("title") or "Untitled Quiz",
                score=row.get("score"),
                completed_at=row.get("completed_at"),
                document_id=quiz.get("document_id"),
            ))
        return QuizHistoryPage(quizzes=entries, total=total, page=page, limit=limit)

    async def history(self, owner_id: Optional[str], page: int = 1, limit: int = 10) -> QuizHistoryPage:
        """Completed quizzes for a user, newest first"""
        offset = (page - 1) * limit
        if owner_id:
            try:
                return await self._remote_history(owner_id, page, limit)
            except GroundSchoolError as e:
                logger.warning(f"Quiz history unavailable remotely ({e.error_code}), using cache")
        else:
            logger.info("No user id supplied, serving cached quiz history")

        cached: List[Dict[str, Any]] = self.cache.read_index(LocalCacheStore.QUIZ_HISTORY)
        if owner_id:
            cached = [entry for entry in cached if entry.get("owner_id") in (owner_id, None)]
        entries = [QuizHistoryEntry.model_validate(entry) for entry in cached[offset:offset + limit]]
        return QuizHistoryPage(quizzes=entries, total=len(cached), page=page, limit=limit)
