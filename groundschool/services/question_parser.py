"""
Parsing of raw completion text into validated questions

The completion may come back as JSON (sometimes fenced in markdown) or in
the lettered layout the prompt asks for:

    ### Question 1: What is ...?
    A. ...
    B. ...
    Correct answer: B
    Explanation: ...
"""
import json
import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from groundschool.schemas.quiz import OPTION_IDENTIFIERS, ParsedQuestion

logger = logging.getLogger(__name__)

HEADER_SPLIT = re.compile(r"###\s*Question\s*\d+[:.\s]+", re.IGNORECASE)
NUMBERED_SPLIT = re.compile(r"(?:^|\n)\s*\d+\.\s+")
DIVIDER_SPLIT = re.compile(r"\n\s*---\s*\n")

QUESTION_BEFORE_OPTIONS = re.compile(r"^([\s\S]+?)\n\s*[A-D][.):]\s+")
OPTION_LINE = re.compile(r"^\s*\**([A-D])[.):]\**\s*(.+)$", re.MULTILINE)
CORRECT_ANSWER = re.compile(r"(?:Correct\s+)?Answer\**\s*[:.]+\**\s*\(?([A-D])\b", re.IGNORECASE)
EXPLANATION = re.compile(r"Explanation\**\s*[:.]+\**\s*([\s\S]+?)(?=\n\s*---|\Z)", re.IGNORECASE)


def _strip_code_fence(text: str) -> str:
    cleaned = text.strip()
    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    elif cleaned.startswith("```"):
        cleaned = cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    return cleaned.strip()


def _parse_json(text: str) -> Optional[List[Dict[str, Any]]]:
    cleaned = _strip_code_fence(text)
    if not cleaned or cleaned[0] not in "[{":
        return None
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        return None
    if isinstance(data, dict):
        data = data.get("questions", [data])
    if not isinstance(data, list):
        return None
    return [item for item in data if isinstance(item, dict)]


def _split_blocks(text: str) -> List[str]:
    if HEADER_SPLIT.search(text):
        blocks = HEADER_SPLIT.split(text)
    elif NUMBERED_SPLIT.search(text):
        blocks = NUMBERED_SPLIT.split(text)
    elif "---" in text:
        blocks = DIVIDER_SPLIT.split(text)
    else:
        blocks = [
            block for block in re.split(r"\n\n+", text)
            if "?" in block and "answer" in block.lower()
        ]
    return [block for block in blocks if block.strip()]


def _parse_block(block: str) -> Dict[str, Any]:
    question_match = QUESTION_BEFORE_OPTIONS.search(block)
    if question_match:
        question_text = question_match.group(1)
    else:
        fallback = re.search(r"([^.!?\n]+\?)", block)
        question_text = fallback.group(1) if fallback else ""
    question_text = question_text.replace("**", "").strip()

    options = []
    for identifier, option_text in OPTION_LINE.findall(block):
        if any(existing["id"] == identifier for existing in options):
            continue
        options.append({"id": identifier, "text": option_text.replace("**", "").strip()})

    correct_match = CORRECT_ANSWER.search(block)
    explanation_match = EXPLANATION.search(block)

    return {
        "text": question_text,
        "options": options,
        "correct_option_id": correct_match.group(1).upper() if correct_match else "",
        "explanation": explanation_match.group(1).strip() if explanation_match else "",
    }


def extract_raw_questions(completion: str) -> List[Dict[str, Any]]:
    """
    Split a completion into raw question dicts

    Returns:
        List of loosely shaped dicts; validation happens separately
    """
    if not completion or not completion.strip():
        return []

    parsed = _parse_json(completion)
    if parsed is not None:
        logger.info(f"Parsed {len(parsed)} questions from JSON completion")
        return parsed

    blocks = _split_blocks(completion)
    logger.info(f"Identified {len(blocks)} potential question blocks in text completion")
    return [_parse_block(block) for block in blocks]


def _coerce(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Map the field spellings seen in the wild onto ParsedQuestion"""
    text = raw.get("text") or raw.get("question") or raw.get("question_text") or ""

    options = raw.get("options") or []
    if options and all(isinstance(option, str) for option in options):
        options = [
            {"id": identifier, "text": option}
            for identifier, option in zip(OPTION_IDENTIFIERS, options)
        ]

    correct = raw.get("correct_option_id")
    if correct is None:
        correct = raw.get("correctOptionId", raw.get("correct_answer", ""))
    if isinstance(correct, int) and not isinstance(correct, bool):
        correct = OPTION_IDENTIFIERS[correct] if 0 <= correct < len(OPTION_IDENTIFIERS) else ""

    return {
        "text": str(text).strip(),
        "options": options,
        "correct_option_id": str(correct or ""),
        "explanation": str(raw.get("explanation") or "").strip(),
    }


def validate_questions(raw_questions: List[Dict[str, Any]]) -> Tuple[List[ParsedQuestion], int]:
    """
    Validate raw questions, dropping malformed ones

    Returns:
        Tuple of (valid questions, number rejected)
    """
    valid: List[ParsedQuestion] = []
    rejected = 0

    for index, raw in enumerate(raw_questions, start=1):
        try:
            valid.append(ParsedQuestion.model_validate(_coerce(raw)))
        except (PydanticValidationError, TypeError, AttributeError) as e:
            rejected += 1
            logger.warning(f"Skipping malformed question {index}: {str(e).splitlines()[0]}")

    if rejected:
        logger.warning(f"Rejected {rejected} of {len(raw_questions)} generated questions")
    return valid, rejected
