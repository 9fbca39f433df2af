"""
Quiz generation, retrieval and submission API endpoints
"""
from fastapi import APIRouter, Depends, UploadFile, File, Form, Query
from typing import Optional
import logging

from groundschool.config import settings
from groundschool.dependencies import get_current_user, get_quiz_generator, get_quiz_service
from groundschool.schemas.document import DocumentMetadata, UploadedFile
from groundschool.schemas.quiz import (
    GenerateOptions,
    Quiz,
    QuizHistoryPage,
    QuizResult,
    QuizSubmission,
)
from groundschool.services.generation_service import QuizGenerationOrchestrator
from groundschool.services.quiz_service import QuizService
from groundschool.utils.exceptions import ValidationError

router = APIRouter(prefix="/api/quizzes", tags=["quizzes"])
logger = logging.getLogger(__name__)


@router.post("/generate", response_model=Quiz, status_code=201)
async def generate_quiz(
    file: Optional[UploadFile] = File(None),
    document_id: Optional[str] = Form(None),
    question_count: int = Form(settings.DEFAULT_QUESTION_COUNT, ge=1, le=settings.MAX_QUIZ_QUESTIONS),
    difficulty: str = Form("mixed", pattern="^(easy|medium|hard|mixed)$"),
    user_id: Optional[str] = Depends(get_current_user),
    orchestrator: QuizGenerationOrchestrator = Depends(get_quiz_generator)
):
    """
    Generate a quiz from a document

    - Accepts an already uploaded document id, or a file to ingest first
    - Generation problems come back as a quiz with status "error"
      and a reason, never as a failed request
    """
    options = GenerateOptions(question_count=question_count, difficulty=difficulty)

    if document_id and document_id.strip():
        source = document_id
    elif file is not None and file.filename:
        source = UploadedFile(
            content=await file.read(),
            metadata=DocumentMetadata(
                filename=file.filename,
                mime_type=file.content_type or "application/octet-stream",
                owner_id=user_id
            )
        )
    else:
        raise ValidationError("Either document_id or a file is required", error_code="MISSING_DOCUMENT")

    quiz = await orchestrator.generate(source, options, owner_id=user_id)

    if quiz.error:
        logger.warning(f"Quiz {quiz.id} generated with error: {quiz.error}")
    return quiz


@router.get("/history", response_model=QuizHistoryPage)
async def quiz_history(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user_id: Optional[str] = Depends(get_current_user),
    quizzes: QuizService = Depends(get_quiz_service)
):
    """Completed quizzes for the current user, newest first"""
    return await quizzes.history(user_id, page=page, limit=limit)


@router.get("/{quiz_id}", response_model=Quiz)
async def get_quiz(
    quiz_id: str,
    quizzes: QuizService = Depends(get_quiz_service)
):
    """
    Get a quiz with its questions and options

    Served from the local cache when the remote store is unreachable
    """
    return await quizzes.retrieve(quiz_id)


@router.post("/{quiz_id}/submit", response_model=QuizResult)
async def submit_quiz(
    quiz_id: str,
    submission: QuizSubmission,
    user_id: Optional[str] = Depends(get_current_user),
    quizzes: QuizService = Depends(get_quiz_service)
):
    """
    Submit answers and get the score

    Score = correct answers / total questions * 100. The result is
    returned even when it could not be saved remotely.
    """
    logger.info(f"Submission for quiz {quiz_id} ({len(submission.answers)} answers)")
    return await quizzes.submit(quiz_id, submission.answers, owner_id=user_id)


@router.get("/{quiz_id}/results", response_model=QuizResult)
async def get_results(
    quiz_id: str,
    quizzes: QuizService = Depends(get_quiz_service)
):
    return await quizzes.get_results(quiz_id)
