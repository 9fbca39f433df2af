"""
Pydantic schemas for quiz-related records, requests and responses
"""
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from groundschool.config import settings

OPTION_IDENTIFIERS = ("A", "B", "C", "D")


class QuizStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ERROR = "error"


class GenerateOptions(BaseModel):
    """Quiz generation options"""
    question_count: int = Field(
        settings.DEFAULT_QUESTION_COUNT,
        ge=1,
        le=settings.MAX_QUIZ_QUESTIONS,
        description="Number of questions to request"
    )
    difficulty: str = Field("mixed", pattern="^(easy|medium|hard|mixed)$", description="Quiz difficulty")


class ParsedOption(BaseModel):
    id: str
    text: str = Field(..., min_length=1)

    @field_validator("id")
    @classmethod
    def normalize_identifier(cls, value: str) -> str:
        value = value.strip().upper()
        if value not in OPTION_IDENTIFIERS:
            raise ValueError(f"option identifier must be one of {OPTION_IDENTIFIERS}")
        return value


class ParsedQuestion(BaseModel):
    """
    Strict form of one generated question

    Exactly one option is correct: `correct_option_id` must name one of the
    2-4 uniquely labelled options.
    """
    text: str = Field(..., min_length=1)
    options: List[ParsedOption] = Field(..., min_length=2, max_length=4)
    correct_option_id: str
    explanation: str = ""

    @field_validator("correct_option_id")
    @classmethod
    def normalize_correct(cls, value: str) -> str:
        return value.strip().upper()

    @model_validator(mode="after")
    def check_options(self) -> "ParsedQuestion":
        identifiers = [option.id for option in self.options]
        if len(set(identifiers)) != len(identifiers):
            raise ValueError("option identifiers must be unique")
        if self.correct_option_id not in identifiers:
            raise ValueError("correct option is not among the options")
        return self


class Option(BaseModel):
    id: str
    text: str
    is_correct: bool = False
    identifier: str


class Question(BaseModel):
    id: str
    text: str
    explanation: str = ""
    difficulty: Optional[str] = None
    quiz_id: Optional[str] = None
    options: List[Option] = []

    @property
    def correct_option(self) -> Optional[Option]:
        return next((option for option in self.options if option.is_correct), None)


class Quiz(BaseModel):
    """Quiz aggregate: record fields plus its questions"""
    id: str
    title: str
    document_id: Optional[str] = None
    status: QuizStatus = QuizStatus.IN_PROGRESS
    created_at: Optional[datetime] = None
    owner_id: Optional[str] = None
    question_count: int = 0
    score: Optional[float] = None
    completed_at: Optional[datetime] = None
    error: Optional[str] = None
    questions: List[Question] = []

    @classmethod
    def from_record(cls, record: dict, questions: Optional[List[Question]] = None) -> "Quiz":
        """Build from a `quizzes` row"""
        return cls(
            id=str(record["id"]),
            title=record.get("title") or "Untitled Quiz",
            document_id=record.get("document_id"),
            status=record.get("status") or QuizStatus.IN_PROGRESS,
            created_at=record.get("created_at"),
            owner_id=record.get("user_id"),
            question_count=record.get("total_questions") or 0,
            score=record.get("score"),
            completed_at=record.get("completed_at"),
            error=record.get("error_message"),
            questions=questions or [],
        )


class QuizSubmission(BaseModel):
    """Schema for quiz submission"""
    answers: Dict[str, str]  # {question_id: option_id}


class QuizResult(BaseModel):
    """Scored submission"""
    quiz_id: str
    answers: Dict[str, str]
    score: float = Field(..., ge=0.0, le=100.0)
    correct_count: int
    total_questions: int
    completed_at: datetime
    feedback: Optional[str] = None


class QuizHistoryEntry(BaseModel):
    id: str
    title: str
    score: Optional[float] = None
    completed_at: Optional[datetime] = None
    document_id: Optional[str] = None


class QuizHistoryPage(BaseModel):
    quizzes: List[QuizHistoryEntry]
    total: int
    page: int
    limit: int
