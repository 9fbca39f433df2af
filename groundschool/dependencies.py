"""
FastAPI dependencies: shared clients and per-request services
"""
from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header

from groundschool.services.document_service import DocumentIngestionService
from groundschool.services.gemini_service import GeminiService
from groundschool.services.generation_service import QuizGenerationOrchestrator
from groundschool.services.quiz_service import QuizService
from groundschool.services.supabase_store import SupabaseStore
from groundschool.utils.cache import LocalCacheStore, RedisBackend
from groundschool.utils.http_client import ResilientClient


@lru_cache()
def get_http_client() -> ResilientClient:
    return ResilientClient()


@lru_cache()
def get_cache() -> LocalCacheStore:
    return LocalCacheStore(RedisBackend())


@lru_cache()
def get_generator() -> GeminiService:
    return GeminiService(get_http_client())


def get_current_user(x_user_id: Optional[str] = Header(None)) -> Optional[str]:
    """User id forwarded by the frontend; anonymous when absent"""
    return x_user_id.strip() if x_user_id and x_user_id.strip() else None


def get_access_token(authorization: Optional[str] = Header(None)) -> Optional[str]:
    if authorization and authorization.lower().startswith("bearer "):
        return authorization[7:].strip() or None
    return None


def get_store(access_token: Optional[str] = Depends(get_access_token)) -> SupabaseStore:
    """Remote store acting with the caller's credential"""
    return SupabaseStore(get_http_client(), access_token=access_token)


def get_document_service(
    store: SupabaseStore = Depends(get_store),
    cache: LocalCacheStore = Depends(get_cache),
) -> DocumentIngestionService:
    return DocumentIngestionService(store, cache)


def get_quiz_generator(
    store: SupabaseStore = Depends(get_store),
    cache: LocalCacheStore = Depends(get_cache),
    documents: DocumentIngestionService = Depends(get_document_service),
    generator: GeminiService = Depends(get_generator),
) -> QuizGenerationOrchestrator:
    return QuizGenerationOrchestrator(store, cache, documents, generator)


def get_quiz_service(
    store: SupabaseStore = Depends(get_store),
    cache: LocalCacheStore = Depends(get_cache),
) -> QuizService:
    return QuizService(store, cache)
