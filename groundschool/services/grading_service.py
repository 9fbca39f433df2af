"""
Quiz grading service
Exact option matching with per-question breakdown and overall feedback
"""
import logging
from typing import Any, Dict, List, Optional, Tuple

from groundschool.schemas.quiz import Question

logger = logging.getLogger(__name__)


class GradingService:
    """
    Service for scoring quiz submissions

    A question counts as correct when the submitted option id equals the id
    of its correct option. The option letter (A-D) is accepted as well.
    """

    def is_correct(self, question: Question, selected: Optional[str]) -> bool:
        correct = question.correct_option
        if correct is None or selected is None:
            return False
        selected = str(selected).strip()
        return selected == correct.id or selected.upper() == correct.identifier

    def grade_quiz(
        self,
        questions: List[Question],
        answers: Dict[str, str]
    ) -> Tuple[int, int, float, List[Dict[str, Any]]]:
        """
        Grade a complete quiz submission

        Args:
            questions: Questions with their options
            answers: User's answers {question_id: option_id}

        Returns:
            Tuple of (correct_count, total_questions, score 0-100, breakdown)
        """
        breakdown = []
        correct_count = 0

        for question in questions:
            selected = answers.get(question.id)
            is_correct = self.is_correct(question, selected)
            if is_correct:
                correct_count += 1

            correct = question.correct_option
            breakdown.append({
                "question_id": question.id,
                "selected_option_id": selected,
                "correct_option_id": correct.id if correct else None,
                "is_correct": is_correct,
            })

        total_questions = len(questions)
        score = self.calculate_score(correct_count, total_questions)

        logger.info(f"Quiz graded: {correct_count}/{total_questions} ({score:.1f}%)")

        return correct_count, total_questions, score, breakdown

    @staticmethod
    def calculate_score(correct_count: int, total_questions: int) -> float:
        """Percentage score; 0 for an empty quiz"""
        if total_questions <= 0:
            return 0.0
        return correct_count / total_questions * 100

    def generate_feedback(self, score: float, total_questions: int) -> str:
        """Generate overall feedback message"""

        if total_questions == 0:
            return "This quiz has no questions to score."

        if score >= 90:
            return "Excellent work! Strong understanding across the material."
        elif score >= 75:
            return "Good performance! You have a solid grasp of the material."
        elif score >= 60:
            return "Fair performance. Review the questions you missed."
        return "Needs improvement. Revisit the study material and try again."
