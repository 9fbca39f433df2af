"""
Resilient outbound request client

Timeout, bounded retries and exponential backoff with jitter for every
remote-bound call (Supabase REST/Storage over httpx, Gemini through its SDK).
"""
import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from groundschool.config import settings
from groundschool.utils.exceptions import GroundSchoolError, NetworkError, ValidationError

logger = logging.getLogger(__name__)


@dataclass
class RequestSpec:
    """Description of a single outbound HTTP request"""
    method: str
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    params: Optional[Dict[str, Any]] = None
    json: Any = None
    content: Optional[bytes] = None


class RetryableStatusError(Exception):
    """Internal marker for a 5xx answer that may be retried"""

    def __init__(self, status_code: int, body: str):
        self.status_code = status_code
        self.body = body
        super().__init__(f"Upstream returned {status_code}")


TRANSPORT_ERRORS = (httpx.TransportError, asyncio.TimeoutError, ConnectionError)


def _status_of(exc: Exception) -> Optional[int]:
    """Best-effort HTTP status extraction from SDK exceptions"""
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code
    for attr in ("status_code", "code"):
        value = getattr(exc, attr, None)
        if isinstance(value, int) and 100 <= value < 600:
            return value
    return None


class ResilientClient:
    """
    Wraps outbound calls with timeout, retry and backoff

    Policy:
    - Retry transport errors, aborted connections, timeouts and 5xx
    - Never retry 4xx: surfaced at once as ValidationError
    - MAX_REQUEST_ATTEMPTS total attempts (1 initial + retries)
    - Delay = min(base * 2^(attempt-1), max) + uniform jitter up to 30%
    """

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = None,
        max_attempts: int = None,
        base_delay: float = None,
        max_delay: float = None,
        jitter_ratio: float = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ):
        self.http_client = http_client or httpx.AsyncClient()
        self.timeout = timeout if timeout is not None else settings.REQUEST_TIMEOUT_SECONDS
        self.max_attempts = max_attempts or settings.MAX_REQUEST_ATTEMPTS
        self.base_delay = base_delay if base_delay is not None else settings.RETRY_BASE_DELAY_SECONDS
        self.max_delay = max_delay if max_delay is not None else settings.RETRY_MAX_DELAY_SECONDS
        self.jitter_ratio = jitter_ratio if jitter_ratio is not None else settings.RETRY_JITTER_RATIO
        self._sleep = sleep
        self._rng = rng or random.Random()

    def compute_delay(self, attempt: int) -> float:
        """Backoff delay before the retry that follows `attempt` (1-based)"""
        delay = min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)
        jitter = self._rng.uniform(0, self.jitter_ratio * delay)
        return delay + jitter

    async def execute(self, spec: RequestSpec) -> httpx.Response:
        """
        Send an HTTP request under the retry policy

        Returns:
            The 2xx/3xx response

        Raises:
            ValidationError: upstream answered 4xx
            NetworkError: transport failure or 5xx after the last attempt
        """

        async def send() -> httpx.Response:
            response = await self.http_client.request(
                spec.method,
                spec.url,
                headers=spec.headers,
                params=spec.params,
                json=spec.json,
                content=spec.content,
            )
            if response.status_code >= 500:
                raise RetryableStatusError(response.status_code, response.text)
            if response.status_code >= 400:
                raise ValidationError(
                    f"{spec.method} {spec.url} rejected with {response.status_code}",
                    error_code="UPSTREAM_REJECTED",
                    context={"body": response.text[:500]},
                    upstream_status=response.status_code,
                )
            return response

        return await self.call(send, description=f"{spec.method} {spec.url}")

    async def call(self, operation: Callable[[], Awaitable[Any]], description: str = "remote call") -> Any:
        """
        Run an arbitrary coroutine factory under the retry policy

        Exceptions exposing an integer `status_code`/`code` are classified
        like HTTP answers; everything else that is not a transport error
        propagates untouched.
        """
        last_error: Optional[Exception] = None
        last_status: Optional[int] = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                return await asyncio.wait_for(operation(), timeout=self.timeout)
            except GroundSchoolError:
                raise
            except RetryableStatusError as e:
                last_error, last_status = e, e.status_code
            except TRANSPORT_ERRORS as e:
                last_error, last_status = e, None
            except Exception as e:
                status = _status_of(e)
                if status is None:
                    raise
                if status < 500:
                    raise ValidationError(
                        f"{description} rejected with {status}: {e}",
                        error_code="UPSTREAM_REJECTED",
                        upstream_status=status,
                    ) from e
                last_error, last_status = e, status

            if attempt < self.max_attempts:
                delay = self.compute_delay(attempt)
                logger.warning(
                    f"{description} failed (attempt {attempt}/{self.max_attempts}): "
                    f"{last_error!r}. Retrying in {delay:.2f}s"
                )
                await self._sleep(delay)

        logger.error(f"{description} failed after {self.max_attempts} attempts: {last_error!r}")
        raise NetworkError(
            f"{description} failed after {self.max_attempts} attempts",
            context={"last_error": repr(last_error)},
            upstream_status=last_status,
        ) from last_error

    async def aclose(self) -> None:
        await self.http_client.aclose()
