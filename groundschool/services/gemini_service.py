"""
Gemini AI service for multiple-choice question generation
"""
import logging
from typing import Any, Dict, List, Protocol

import google.generativeai as genai

from groundschool.config import settings
from groundschool.services.question_parser import extract_raw_questions
from groundschool.utils.http_client import ResilientClient

logger = logging.getLogger(__name__)


class QuestionGenerator(Protocol):
    """AI generation capability consumed by the orchestrator"""

    async def generate_questions(
        self,
        source_text: str,
        question_count: int,
        difficulty: str
    ) -> List[Dict[str, Any]]: ...


class GeminiService:
    """Question generation backed by a Gemini model"""

    def __init__(self, client: ResilientClient, api_key: str = None, model_name: str = None):
        genai.configure(api_key=api_key or settings.GEMINI_API_KEY)
        self.model = genai.GenerativeModel(model_name or settings.GEMINI_MODEL)
        self.client = client

    async def complete(self, prompt: str) -> str:
        """Send a prompt through the resilient client and return the raw text"""
        response = await self.client.call(
            lambda: self.model.generate_content_async(prompt),
            description="Gemini generate_content"
        )
        return response.text

    async def generate_questions(
        self,
        source_text: str,
        question_count: int,
        difficulty: str
    ) -> List[Dict[str, Any]]:
        """
        Generate multiple-choice questions grounded in the study material

        Args:
            source_text: Extracted (and trimmed) document text
            question_count: Number of questions to request
            difficulty: easy/medium/hard/mixed

        Returns:
            List of raw question dictionaries, not yet validated
        """
        prompt = self._create_quiz_prompt(source_text, question_count, difficulty)
        logger.info(f"Requesting {question_count} {difficulty} questions from Gemini")

        completion = await self.complete(prompt)
        questions = extract_raw_questions(completion)

        if len(questions) != question_count:
            logger.warning(f"Expected {question_count} questions, got {len(questions)}")
        return questions

    def _create_quiz_prompt(self, source_text: str, question_count: int, difficulty: str) -> str:
        """Create structured prompt for quiz generation"""

        return f"""
You are an exam question generator. Create EXACTLY {question_count} multiple-choice questions
at {difficulty} difficulty, STRICTLY based on the study material below.

Rules:
1. Only ask about information contained in the study material
2. Do not create generic questions the material does not cover
3. Each question has 4 options labelled A, B, C and D with exactly one correct answer
4. Use realistic distractors based on common misconceptions
5. If the material is insufficient, create fewer high-quality questions instead of generic ones

Return ONLY valid JSON in this exact format (no markdown, no preamble):

[
  {{
    "text": "Question text here?",
    "options": [
      {{"id": "A", "text": "Option A"}},
      {{"id": "B", "text": "Option B"}},
      {{"id": "C", "text": "Option C"}},
      {{"id": "D", "text": "Option D"}}
    ],
    "correct_option_id": "B",
    "explanation": "Why B is correct, citing the material"
  }}
]

STUDY MATERIAL:
{source_text}
"""
