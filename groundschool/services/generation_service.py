"""
Quiz generation orchestration

document -> quiz record (in_progress) -> generated questions -> persisted
questions/options/links -> quiz completed, or a fallback quiz marked error.

Once a document is available, no failure escapes as an exception: the
caller always gets a Quiz with an id it can route to, and any problem is
reported through `status` and `error`.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional, Union

from groundschool.config import settings
from groundschool.schemas.document import Document, UploadedFile
from groundschool.schemas.quiz import (
    GenerateOptions,
    Option,
    ParsedQuestion,
    Question,
    Quiz,
    QuizStatus,
)
from groundschool.services.document_service import DocumentIngestionService
from groundschool.services.gemini_service import QuestionGenerator
from groundschool.services.question_parser import validate_questions
from groundschool.services.supabase_store import RemoteStore
from groundschool.services.text_extraction import trim_source_text
from groundschool.utils.cache import LocalCacheStore
from groundschool.utils.exceptions import GenerationError, ValidationError

logger = logging.getLogger(__name__)

MAX_QUIZ_TITLE_LENGTH = 50

QuizSource = Union[Document, UploadedFile, str]


def build_quiz_title(document_title: Optional[str]) -> str:
    title = document_title or "Unnamed Document"
    if len(title) > MAX_QUIZ_TITLE_LENGTH:
        title = f"{title[:MAX_QUIZ_TITLE_LENGTH - 3]}..."
    return f"Quiz on {title}"


class QuizGenerationOrchestrator:
    """Turns a document into a persisted, cached quiz"""

    def __init__(
        self,
        store: RemoteStore,
        cache: LocalCacheStore,
        documents: DocumentIngestionService,
        generator: QuestionGenerator,
    ):
        self.store = store
        self.cache = cache
        self.documents = documents
        self.generator = generator

    async def generate(
        self,
        source: QuizSource,
        options: Optional[GenerateOptions] = None,
        owner_id: Optional[str] = None,
    ) -> Quiz:
        """
        Generate a quiz for a document

        Args:
            source: Registered Document, a document id, or an uploaded file to ingest first
            options: Question count and difficulty
            owner_id: Current user

        Returns:
            Quiz with status `completed`, or `error` with a reason

        Raises:
            ValidationError/NotFoundError/NetworkError/PersistenceError: only
            while obtaining the document, before any quiz exists
        """
        options = options or GenerateOptions(question_count=settings.DEFAULT_QUESTION_COUNT)
        document = await self._resolve_document(source, owner_id)
        title = build_quiz_title(document.title)
        owner_id = owner_id or document.owner_id

        try:
            record = await self.store.insert("quizzes", {
                "title": title,
                "document_id": document.id,
                "total_questions": options.question_count,
                "status": QuizStatus.IN_PROGRESS.value,
                "created_at": datetime.now(timezone.utc).isoformat(),
                "user_id": owner_id,
            })
        except Exception as e:
            logger.error(f"Quiz record creation failed for document {document.id}: {str(e)}")
            return self._local_fallback(document, title, owner_id, f"Failed to create quiz record: {str(e)}")

        quiz = Quiz.from_record(record)
        logger.info(f"Quiz record created: {quiz.id} (document {document.id})")

        try:
            parsed = await self._generate_questions(document, options)
        except Exception as e:
            logger.error(f"Question generation failed for quiz {quiz.id}: {str(e)}")
            return await self._mark_error(quiz, f"Failed to generate questions: {str(e)}")

        questions = await self._persist_questions(quiz.id, parsed, options.difficulty)
        if not questions:
            return await self._mark_error(quiz, "None of the generated questions could be saved")

        quiz.questions = questions
        quiz.question_count = len(questions)
        quiz.status = QuizStatus.COMPLETED

        try:
            await self.store.update(
                "quizzes",
                {"status": QuizStatus.COMPLETED.value, "total_questions": quiz.question_count},
                {"id": quiz.id},
            )
        except Exception as e:
            logger.error(f"Failed to mark quiz {quiz.id} completed remotely: {str(e)}")

        logger.info(f"Quiz {quiz.id} completed with {quiz.question_count} questions")
        self._mirror(quiz)
        return quiz

    async def _resolve_document(self, source: QuizSource, owner_id: Optional[str]) -> Document:
        if isinstance(source, Document):
            return source
        if isinstance(source, UploadedFile):
            metadata = source.metadata
            if owner_id and not metadata.owner_id:
                metadata = metadata.model_copy(update={"owner_id": owner_id})
            logger.info("No document id supplied, ingesting uploaded file first")
            return await self.documents.ingest(source.content, metadata)
        if isinstance(source, str) and source.strip():
            return await self.documents.get_document(source)
        raise ValidationError("A document id or file is required", error_code="MISSING_DOCUMENT")

    async def _generate_questions(self, document: Document, options: GenerateOptions) -> List[ParsedQuestion]:
        text = await self.documents.load_text(document)
        if len(text.strip()) < settings.MIN_SOURCE_CHARS:
            raise GenerationError(
                f"Document text is too short to generate questions ({len(text.strip())} chars)"
            )

        raw_questions = await self.generator.generate_questions(
            trim_source_text(text),
            options.question_count,
            options.difficulty,
        )
        valid, rejected = validate_questions(raw_questions)
        if not valid:
            raise GenerationError(f"No valid questions in generated output ({rejected} rejected)")
        return valid[:options.question_count]

    async def _persist_questions(
        self,
        quiz_id: str,
        parsed: List[ParsedQuestion],
        difficulty: str,
    ) -> List[Question]:
        """Save each question with its options and quiz link; failures skip that question"""
        saved: List[Question] = []

        for item in parsed:
            position = len(saved) + 1
            try:
                row = await self.store.insert("questions", {
                    "text": item.text,
                    "explanation": item.explanation,
                    "difficulty": difficulty,
                    "quiz_id": quiz_id,
                    "created_at": datetime.now(timezone.utc).isoformat(),
                })
                question_id = str(row["id"])

                options = []
                for parsed_option in item.options:
                    option_row = await self.store.insert("question_options", {
                        "question_id": question_id,
                        "text": parsed_option.text,
                        "is_correct": parsed_option.id == item.correct_option_id,
                        "option_identifier": parsed_option.id,
                    })
                    options.append(Option(
                        id=str(option_row["id"]),
                        text=parsed_option.text,
                        is_correct=parsed_option.id == item.correct_option_id,
                        identifier=parsed_option.id,
                    ))

                await self.store.insert("quiz_questions", {
                    "quiz_id": quiz_id,
                    "question_id": question_id,
                    "position": position,
                })
            except Exception as e:
                logger.error(f"Failed to save question {position} of quiz {quiz_id}: {str(e)}")
                continue

            saved.append(Question(
                id=question_id,
                text=item.text,
                explanation=item.explanation,
                difficulty=difficulty,
                quiz_id=quiz_id,
                options=options,
            ))

        logger.info(f"Saved {len(saved)}/{len(parsed)} questions for quiz {quiz_id}")
        return saved

    async def _mark_error(self, quiz: Quiz, reason: str) -> Quiz:
        quiz.status = QuizStatus.ERROR
        quiz.error = reason
        quiz.question_count = 0
        quiz.questions = []

        try:
            await self.store.update(
                "quizzes",
                {"status": QuizStatus.ERROR.value, "error_message": reason, "total_questions": 0},
                {"id": quiz.id},
            )
        except Exception as e:
            logger.error(f"Failed to mark quiz {quiz.id} as error remotely: {str(e)}")

        self._mirror(quiz)
        return quiz

    def _local_fallback(self, document: Document, title: str, owner_id: Optional[str], reason: str) -> Quiz:
        """Quiz that exists only in the cache, so the caller still has an id"""
        quiz = Quiz(
            id=str(uuid.uuid4()),
            title=title,
            document_id=document.id,
            status=QuizStatus.ERROR,
            created_at=datetime.now(timezone.utc),
            owner_id=owner_id,
            error=reason,
        )
        logger.warning(f"Created local fallback quiz {quiz.id}: {reason}")
        self._mirror(quiz)
        return quiz

    def _mirror(self, quiz: Quiz) -> None:
        self.cache.put(LocalCacheStore.QUIZ, quiz.id, quiz.model_dump(mode="json"))
        self.cache.append_to_index(LocalCacheStore.QUIZ_LIST, {
            "id": quiz.id,
            "title": quiz.title,
            "status": quiz.status.value,
            "document_id": quiz.document_id,
            "created_at": quiz.created_at.isoformat() if quiz.created_at else None,
        })
