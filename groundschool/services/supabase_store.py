"""
Remote store adapter for Supabase (PostgREST tables + Storage buckets)

Every call goes through the ResilientClient so it inherits timeout, retry
and backoff. Only the handful of operations the pipeline needs are exposed.
"""
import logging
from typing import Any, Dict, List, Optional, Protocol, Tuple
from urllib.parse import quote

from groundschool.config import settings
from groundschool.utils.exceptions import NotFoundError, StorageConflictError, ValidationError
from groundschool.utils.http_client import RequestSpec, ResilientClient

logger = logging.getLogger(__name__)


class RemoteStore(Protocol):
    """Named-collection record CRUD plus blob storage"""

    async def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]: ...

    async def select(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        columns: str = "*",
        order: Optional[str] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> Tuple[List[Dict[str, Any]], int]: ...

    async def select_single(self, table: str, filters: Dict[str, Any], columns: str = "*") -> Dict[str, Any]: ...

    async def update(self, table: str, values: Dict[str, Any], filters: Dict[str, Any]) -> List[Dict[str, Any]]: ...

    async def upload(self, bucket: str, path: str, content: bytes, content_type: str) -> str: ...

    async def download(self, bucket: str, path: str) -> bytes: ...

    def public_url(self, bucket: str, path: str) -> str: ...


def _parse_total(content_range: Optional[str], fallback: int) -> int:
    """Read the exact count from a `Content-Range: 0-9/42` header"""
    if not content_range or "/" not in content_range:
        return fallback
    total = content_range.rsplit("/", 1)[1]
    return int(total) if total.isdigit() else fallback


class SupabaseStore:
    """Supabase REST implementation of RemoteStore"""

    def __init__(
        self,
        client: ResilientClient,
        base_url: str = None,
        api_key: str = None,
        access_token: Optional[str] = None,
    ):
        self.client = client
        self.base_url = (base_url or settings.SUPABASE_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.SUPABASE_KEY
        self.access_token = access_token

    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.access_token or self.api_key}",
        }
        if extra:
            headers.update(extra)
        return headers

    def _table_url(self, table: str) -> str:
        return f"{self.base_url}/rest/v1/{table}"

    def _object_url(self, bucket: str, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/{bucket}/{quote(path)}"

    @staticmethod
    def _filter_params(filters: Optional[Dict[str, Any]]) -> Dict[str, str]:
        return {column: f"eq.{value}" for column, value in (filters or {}).items()}

    async def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        response = await self.client.execute(RequestSpec(
            method="POST",
            url=self._table_url(table),
            headers=self._headers({"Prefer": "return=representation"}),
            json=row,
        ))
        rows = response.json()
        if not rows:
            raise ValidationError(f"Insert into {table} returned no record", error_code="EMPTY_INSERT")
        return rows[0] if isinstance(rows, list) else rows

    async def select(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        columns: str = "*",
        order: Optional[str] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> Tuple[List[Dict[str, Any]], int]:
        """
        Filtered select with optional ordering and paging

        Returns:
            Tuple of (rows, exact total count)
        """
        params = {"select": columns, **self._filter_params(filters)}
        if order:
            params["order"] = order
        if limit is not None:
            params["limit"] = limit
        if offset is not None:
            params["offset"] = offset

        response = await self.client.execute(RequestSpec(
            method="GET",
            url=self._table_url(table),
            headers=self._headers({"Prefer": "count=exact"}),
            params=params,
        ))
        rows = response.json() or []
        return rows, _parse_total(response.headers.get("content-range"), len(rows))

    async def select_single(self, table: str, filters: Dict[str, Any], columns: str = "*") -> Dict[str, Any]:
        rows, _ = await self.select(table, filters=filters, columns=columns, limit=1)
        if not rows:
            raise NotFoundError(f"No {table} record matching {filters}", context={"table": table})
        return rows[0]

    async def update(self, table: str, values: Dict[str, Any], filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        response = await self.client.execute(RequestSpec(
            method="PATCH",
            url=self._table_url(table),
            headers=self._headers({"Prefer": "return=representation"}),
            params=self._filter_params(filters),
            json=values,
        ))
        return response.json() or []

    async def upload(self, bucket: str, path: str, content: bytes, content_type: str) -> str:
        """
        Upload a blob without overwriting

        Raises:
            StorageConflictError: the key already exists in the bucket
        """
        try:
            await self.client.execute(RequestSpec(
                method="POST",
                url=self._object_url(bucket, path),
                headers=self._headers({
                    "Content-Type": content_type or "application/octet-stream",
                    "Cache-Control": "3600",
                    "x-upsert": "false",
                }),
                content=content,
            ))
        except ValidationError as e:
            body = str(e.context.get("body", "")).lower()
            if e.upstream_status == 409 or "duplicate" in body or "already exists" in body:
                raise StorageConflictError(
                    f"Storage key already exists: {bucket}/{path}",
                    context={"bucket": bucket, "path": path},
                ) from e
            raise
        logger.info(f"Uploaded {len(content)} bytes to {bucket}/{path}")
        return path

    async def download(self, bucket: str, path: str) -> bytes:
        response = await self.client.execute(RequestSpec(
            method="GET",
            url=self._object_url(bucket, path),
            headers=self._headers(),
        ))
        return response.content

    def public_url(self, bucket: str, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{bucket}/{quote(path)}"
