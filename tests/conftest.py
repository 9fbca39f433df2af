# =============================================================================
# CONFTEST - shared fixtures
# =============================================================================
# In-memory stand-ins for the remote store, the cache backend and the
# question generator. Nothing here touches the network or Redis.
# =============================================================================

import uuid
from typing import Any, Dict, List, Optional, Tuple

import pytest

from groundschool.services.document_service import DocumentIngestionService
from groundschool.utils.cache import LocalCacheStore
from groundschool.utils.exceptions import NotFoundError

FIXED_CLOCK = 1700000000.0

STUDY_TEXT = (
    "Photosynthesis converts light energy into chemical energy. Chlorophyll absorbs mostly "
    "blue and red light. The light-dependent reactions take place in the thylakoid membranes, "
    "while the Calvin cycle runs in the stroma and fixes carbon dioxide into sugars."
)


class InMemoryBackend:
    """Dict-backed key-value backend; `broken` makes every call raise"""

    def __init__(self):
        self.items: Dict[str, str] = {}
        self.broken = False

    def _check(self):
        if self.broken:
            raise RuntimeError("storage quota exceeded")

    def get_item(self, key: str) -> Optional[str]:
        self._check()
        return self.items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._check()
        self.items[key] = value

    def remove_item(self, key: str) -> None:
        self._check()
        self.items.pop(key, None)


class FakeRemoteStore:
    """
    In-memory RemoteStore

    `fail(key, exc, times)` makes the operation named by key ("insert:quizzes",
    "select:quiz_questions", "upload", ...) raise `exc`, `times` times or forever.
    """

    def __init__(self):
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.blobs: Dict[Tuple[str, str], bytes] = {}
        self.calls: List[Tuple[str, Any]] = []
        self._failures: Dict[str, List[Any]] = {}

    def fail(self, key: str, exc: Exception, times: Optional[int] = None):
        self._failures[key] = [exc, times]

    def _maybe_fail(self, key: str):
        failure = self._failures.get(key)
        if not failure:
            return
        exc, times = failure
        if times is not None:
            if times <= 0:
                return
            failure[1] = times - 1
        raise exc

    def rows(self, table: str) -> List[Dict[str, Any]]:
        return self.tables.setdefault(table, [])

    async def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        self.calls.append(("insert", table))
        self._maybe_fail(f"insert:{table}")
        record = {"id": str(uuid.uuid4()), **row}
        self.rows(table).append(record)
        return dict(record)

    def _embed(self, table: str, row: Dict[str, Any], columns: str) -> Dict[str, Any]:
        row = dict(row)
        if table == "quiz_questions" and "question:" in columns:
            question = next((q for q in self.rows("questions") if q["id"] == row["question_id"]), None)
            if question is not None:
                question = dict(question)
                question["question_options"] = [
                    dict(o) for o in self.rows("question_options") if o["question_id"] == question["id"]
                ]
            row["question"] = question
        if table == "quiz_results" and "quiz:" in columns:
            row["quiz"] = next((dict(q) for q in self.rows("quizzes") if q["id"] == row["quiz_id"]), None)
        return row

    async def select(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        columns: str = "*",
        order: Optional[str] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> Tuple[List[Dict[str, Any]], int]:
        self.calls.append(("select", table))
        self._maybe_fail(f"select:{table}")
        matched = [
            row for row in self.rows(table)
            if all(str(row.get(column)) == str(value) for column, value in (filters or {}).items())
        ]
        if order:
            column, _, direction = order.partition(".")
            matched.sort(key=lambda row: str(row.get(column) or ""), reverse=direction == "desc")
        total = len(matched)
        start = offset or 0
        end = start + limit if limit is not None else None
        return [self._embed(table, row, columns) for row in matched[start:end]], total

    async def select_single(self, table: str, filters: Dict[str, Any], columns: str = "*") -> Dict[str, Any]:
        rows, _ = await self.select(table, filters=filters, columns=columns, limit=1)
        if not rows:
            raise NotFoundError(f"No {table} record matching {filters}")
        return rows[0]

    async def update(self, table: str, values: Dict[str, Any], filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        self.calls.append(("update", table))
        self._maybe_fail(f"update:{table}")
        updated = []
        for row in self.rows(table):
            if all(str(row.get(column)) == str(value) for column, value in filters.items()):
                row.update(values)
                updated.append(dict(row))
        return updated

    async def upload(self, bucket: str, path: str, content: bytes, content_type: str) -> str:
        self.calls.append(("upload", path))
        self._maybe_fail("upload")
        self.blobs[(bucket, path)] = content
        return path

    async def download(self, bucket: str, path: str) -> bytes:
        self.calls.append(("download", path))
        self._maybe_fail("download")
        if (bucket, path) not in self.blobs:
            raise NotFoundError(f"No blob at {bucket}/{path}")
        return self.blobs[(bucket, path)]

    def public_url(self, bucket: str, path: str) -> str:
        return f"http://storage.test/{bucket}/{path}"


class StubGenerator:
    """QuestionGenerator returning canned output, or raising `error`"""

    def __init__(self, questions: Optional[List[Dict[str, Any]]] = None, error: Optional[Exception] = None):
        self.questions = questions or []
        self.error = error
        self.calls: List[Tuple[str, int, str]] = []

    async def generate_questions(self, source_text: str, question_count: int, difficulty: str):
        self.calls.append((source_text, question_count, difficulty))
        if self.error:
            raise self.error
        return self.questions


def make_raw_question(number: int, correct: str = "B") -> Dict[str, Any]:
    return {
        "text": f"Question {number}?",
        "options": [
            {"id": "A", "text": f"Answer {number}A"},
            {"id": "B", "text": f"Answer {number}B"},
            {"id": "C", "text": f"Answer {number}C"},
            {"id": "D", "text": f"Answer {number}D"},
        ],
        "correct_option_id": correct,
        "explanation": f"Because {number}{correct}",
    }


@pytest.fixture
def memory_backend():
    return InMemoryBackend()


@pytest.fixture
def cache(memory_backend):
    return LocalCacheStore(memory_backend)


@pytest.fixture
def store():
    return FakeRemoteStore()


@pytest.fixture
def documents(store, cache):
    return DocumentIngestionService(store, cache, bucket="documents", clock=lambda: FIXED_CLOCK)
