# =============================================================================
# TESTS - Quiz generation orchestrator
# =============================================================================

import pytest
import pytest_asyncio
from pydantic import ValidationError as PydanticValidationError

from conftest import STUDY_TEXT, StubGenerator, make_raw_question

from groundschool.config import settings
from groundschool.schemas.document import DocumentMetadata, UploadedFile
from groundschool.schemas.quiz import GenerateOptions, QuizStatus
from groundschool.services.generation_service import QuizGenerationOrchestrator, build_quiz_title
from groundschool.utils.cache import LocalCacheStore
from groundschool.utils.exceptions import NetworkError
from groundschool.utils.identifiers import is_uuid_like


@pytest_asyncio.fixture
async def study_document(documents):
    return await documents.ingest(
        STUDY_TEXT.encode(),
        DocumentMetadata(filename="photosynthesis.txt", mime_type="text/plain", owner_id="u1"),
    )


def make_orchestrator(store, cache, documents, generator):
    return QuizGenerationOrchestrator(store, cache, documents, generator)


class TestQuizTitle:

    def test_short_title(self):
        assert build_quiz_title("Cells") == "Quiz on Cells"

    def test_long_title_truncated(self):
        assert build_quiz_title("x" * 60) == "Quiz on " + "x" * 47 + "..."


class TestGenerate:

    @pytest.mark.asyncio
    async def test_malformed_questions_skipped(self, store, cache, documents, study_document):
        malformed = [{**make_raw_question(4), "options": []}, make_raw_question(5, correct="Z")]
        generator = StubGenerator([make_raw_question(1), make_raw_question(2), make_raw_question(3)] + malformed)
        orchestrator = make_orchestrator(store, cache, documents, generator)

        quiz = await orchestrator.generate(study_document, GenerateOptions(question_count=5, difficulty="easy"))

        assert quiz.status == QuizStatus.COMPLETED
        assert quiz.question_count == 3
        assert [question.text for question in quiz.questions] == ["Question 1?", "Question 2?", "Question 3?"]
        assert all(len(question.options) == 4 for question in quiz.questions)
        assert all(question.correct_option.identifier == "B" for question in quiz.questions)

        links = store.rows("quiz_questions")
        assert [link["position"] for link in links] == [1, 2, 3]
        assert store.rows("quizzes")[0]["status"] == "completed"
        assert store.rows("quizzes")[0]["total_questions"] == 3

        cached = cache.get(LocalCacheStore.QUIZ, quiz.id)
        assert cached["status"] == "completed"
        assert len(cached["questions"]) == 3
        assert cache.read_index(LocalCacheStore.QUIZ_LIST)[0]["id"] == quiz.id

    @pytest.mark.asyncio
    async def test_generator_receives_document_text(self, store, cache, documents, study_document):
        generator = StubGenerator([make_raw_question(1)])
        orchestrator = make_orchestrator(store, cache, documents, generator)

        await orchestrator.generate(study_document, GenerateOptions(question_count=1, difficulty="hard"))

        assert generator.calls == [(STUDY_TEXT, 1, "hard")]

    @pytest.mark.asyncio
    async def test_output_capped_at_requested_count(self, store, cache, documents, study_document):
        generator = StubGenerator([make_raw_question(n) for n in range(1, 6)])
        orchestrator = make_orchestrator(store, cache, documents, generator)

        quiz = await orchestrator.generate(study_document, GenerateOptions(question_count=2))

        assert quiz.question_count == 2

    @pytest.mark.asyncio
    async def test_generator_failure_yields_error_quiz(self, store, cache, documents, study_document):
        generator = StubGenerator(error=NetworkError("Gemini unavailable"))
        orchestrator = make_orchestrator(store, cache, documents, generator)

        quiz = await orchestrator.generate(study_document)

        assert quiz.status == QuizStatus.ERROR
        assert "Gemini unavailable" in quiz.error
        assert quiz.questions == []
        assert store.rows("quizzes")[0]["status"] == "error"
        assert "Gemini unavailable" in store.rows("quizzes")[0]["error_message"]
        assert cache.get(LocalCacheStore.QUIZ, quiz.id)["status"] == "error"

    @pytest.mark.asyncio
    async def test_all_rejected_yields_error_quiz(self, store, cache, documents, study_document):
        generator = StubGenerator([{"text": "No options?"}])
        orchestrator = make_orchestrator(store, cache, documents, generator)

        quiz = await orchestrator.generate(study_document)

        assert quiz.status == QuizStatus.ERROR
        assert quiz.error

    @pytest.mark.asyncio
    async def test_short_document_yields_error_quiz(self, store, cache, documents):
        short = await documents.ingest(b"Too short.", DocumentMetadata(filename="short.txt"))
        generator = StubGenerator([make_raw_question(1)])
        orchestrator = make_orchestrator(store, cache, documents, generator)

        quiz = await orchestrator.generate(short)

        assert quiz.status == QuizStatus.ERROR
        assert "too short" in quiz.error
        assert generator.calls == []

    @pytest.mark.asyncio
    async def test_quiz_record_failure_yields_local_quiz(self, store, cache, documents, study_document):
        store.fail("insert:quizzes", NetworkError("offline"))
        orchestrator = make_orchestrator(store, cache, documents, StubGenerator([make_raw_question(1)]))

        quiz = await orchestrator.generate(study_document)

        assert quiz.status == QuizStatus.ERROR
        assert is_uuid_like(quiz.id)
        assert quiz.document_id == study_document.id
        assert quiz.title == "Quiz on photosynthesis"
        assert cache.get(LocalCacheStore.QUIZ, quiz.id)["error"] == quiz.error

    @pytest.mark.asyncio
    async def test_question_persistence_failure_skips_question(self, store, cache, documents, study_document):
        store.fail("insert:quiz_questions", NetworkError("offline"), times=1)
        generator = StubGenerator([make_raw_question(n) for n in range(1, 4)])
        orchestrator = make_orchestrator(store, cache, documents, generator)

        quiz = await orchestrator.generate(study_document, GenerateOptions(question_count=3))

        assert quiz.status == QuizStatus.COMPLETED
        assert [question.text for question in quiz.questions] == ["Question 2?", "Question 3?"]
        assert [link["position"] for link in store.rows("quiz_questions")] == [1, 2]

    @pytest.mark.asyncio
    async def test_remote_status_update_failure_still_completes(self, store, cache, documents, study_document):
        store.fail("update:quizzes", NetworkError("offline"))
        orchestrator = make_orchestrator(store, cache, documents, StubGenerator([make_raw_question(1)]))

        quiz = await orchestrator.generate(study_document, GenerateOptions(question_count=1))

        assert quiz.status == QuizStatus.COMPLETED
        assert cache.get(LocalCacheStore.QUIZ, quiz.id)["status"] == "completed"


class TestDocumentSources:

    @pytest.mark.asyncio
    async def test_document_id_with_suffix(self, store, cache, documents, study_document):
        orchestrator = make_orchestrator(store, cache, documents, StubGenerator([make_raw_question(1)]))

        quiz = await orchestrator.generate(f"{study_document.id}-document", GenerateOptions(question_count=1))

        assert quiz.document_id == study_document.id
        assert quiz.status == QuizStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_uploaded_file_ingested_first(self, store, cache, documents):
        orchestrator = make_orchestrator(store, cache, documents, StubGenerator([make_raw_question(1)]))
        upload = UploadedFile(content=STUDY_TEXT.encode(), metadata=DocumentMetadata(filename="notes.txt"))

        quiz = await orchestrator.generate(upload, GenerateOptions(question_count=1), owner_id="u9")

        assert len(store.rows("documents")) == 1
        assert store.rows("documents")[0]["user_id"] == "u9"
        assert quiz.document_id == store.rows("documents")[0]["id"]
        assert quiz.owner_id == "u9"

    @pytest.mark.asyncio
    async def test_ingestion_failure_is_fatal(self, store, cache, documents):
        store.fail("upload", NetworkError("offline"))
        orchestrator = make_orchestrator(store, cache, documents, StubGenerator([make_raw_question(1)]))
        upload = UploadedFile(content=STUDY_TEXT.encode(), metadata=DocumentMetadata(filename="notes.txt"))

        with pytest.raises(NetworkError):
            await orchestrator.generate(upload)

        assert store.rows("quizzes") == []


class TestGenerateOptions:

    def test_bounds_follow_settings(self):
        assert GenerateOptions().question_count == settings.DEFAULT_QUESTION_COUNT
        assert GenerateOptions(question_count=settings.MAX_QUIZ_QUESTIONS).question_count == settings.MAX_QUIZ_QUESTIONS

        with pytest.raises(PydanticValidationError):
            GenerateOptions(question_count=settings.MAX_QUIZ_QUESTIONS + 1)
