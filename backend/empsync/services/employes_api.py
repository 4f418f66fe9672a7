"""
Employes.nl API Client
Company-scoped payroll provider (v4), bearer-token authenticated

API Endpoints:
- Employee list: {base}/{company_id}/employees?page=&per_page=
- Employee:      {base}/{company_id}/employees/{employee_id}
- Employments:   {base}/{company_id}/employees/{employee_id}/employments (full history)

Retry policy:
- 429, 5xx, timeouts and transport errors are retried with exponential
  backoff (SYNC_BACKOFF_SECONDS * 2^attempt), then TransientNetworkError.
- Other 4xx (403, 404, ...) fail immediately with ProviderRequestError.
"""

import time
from typing import Any, Callable, Iterator, Optional

import httpx

from empsync.core.config import Settings
from empsync.core.exceptions import ErrorContext, ProviderRequestError, TransientNetworkError
from empsync.schemas.payloads import ENDPOINT_EMPLOYEE, ENDPOINT_EMPLOYMENTS
from empsync.worker.tracing import LogEvents, get_logger

events = get_logger("EmployesClient")

RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


def unwrap(body: Any) -> Any:
    """Employes wraps most responses in {"data": ...}"""
    if isinstance(body, dict) and "data" in body and body["data"] is not None:
        return body["data"]
    return body


class EmployesClient:
    """
    Synchronous client used by sync workers.

    Usage:
        with EmployesClient.from_settings(settings) as client:
            for employee_id in client.iter_employee_ids():
                payload = client.get_employee(employee_id)
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        company_id: str,
        timeout: float = 30.0,
        page_size: int = 100,
        max_attempts: int = 3,
        backoff_seconds: float = 1.0,
        http_client: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.company_id = company_id
        self.page_size = page_size
        self.max_attempts = max(1, max_attempts)
        self.backoff_seconds = backoff_seconds
        self._sleep = sleep
        self._owns_client = http_client is None
        self._client = http_client or httpx.Client(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Accept": "application/json",
            },
        )

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "EmployesClient":
        return cls(
            base_url=settings.EMPLOYES_BASE_URL,
            api_key=settings.EMPLOYES_API_KEY,
            company_id=settings.EMPLOYES_COMPANY_ID,
            timeout=settings.EMPLOYES_TIMEOUT,
            page_size=settings.EMPLOYES_PAGE_SIZE,
            max_attempts=settings.SYNC_MAX_ATTEMPTS,
            backoff_seconds=settings.SYNC_BACKOFF_SECONDS,
            **kwargs,
        )

    # =========================================================================
    # Endpoints
    # =========================================================================

    def iter_employee_ids(self) -> Iterator[str]:
        """All employee ids of the company, page by page"""
        page = 1
        while True:
            body = self._get_json(
                f"/{self.company_id}/employees",
                params={"page": page, "per_page": self.page_size},
            )
            items = unwrap(body)
            if not isinstance(items, list):
                raise ProviderRequestError(f"Unexpected employee list shape on page {page}")

            for item in items:
                if isinstance(item, dict) and item.get("id") is not None:
                    yield str(item["id"])

            if not self._has_next_page(body, page, len(items)):
                return
            page += 1

    def list_employee_ids(self) -> list[str]:
        return list(self.iter_employee_ids())

    def get_employee(self, employee_id: str) -> Any:
        context = ErrorContext(employee_id=employee_id, endpoint=ENDPOINT_EMPLOYEE)
        return unwrap(self._get_json(f"/{self.company_id}/employees/{employee_id}", context=context))

    def get_employments(self, employee_id: str) -> Any:
        context = ErrorContext(employee_id=employee_id, endpoint=ENDPOINT_EMPLOYMENTS)
        path = f"/{self.company_id}/employees/{employee_id}/employments"
        return unwrap(self._get_json(path, context=context))

    def fetch(self, employee_id: str, endpoint: str) -> Any:
        """Payload for one of the snapshot endpoints"""
        if endpoint == ENDPOINT_EMPLOYEE:
            return self.get_employee(employee_id)
        if endpoint == ENDPOINT_EMPLOYMENTS:
            return self.get_employments(employee_id)
        raise ValueError(f"Unsupported endpoint: {endpoint}")

    # =========================================================================
    # Transport
    # =========================================================================

    def _get_json(self, path: str, params: Optional[dict] = None, context: Optional[ErrorContext] = None) -> Any:
        context = context or ErrorContext()
        last_error: Optional[str] = None
        last_status: Optional[int] = None

        for attempt in range(self.max_attempts):
            context.attempt = attempt + 1
            try:
                response = self._client.get(path, params=params)
            except httpx.TransportError as e:
                last_error, last_status = f"{type(e).__name__}: {e}", None
            else:
                if response.status_code in RETRYABLE_STATUS_CODES:
                    last_error, last_status = f"HTTP {response.status_code}", response.status_code
                elif response.is_error:
                    raise ProviderRequestError(
                        f"GET {path} failed with HTTP {response.status_code}",
                        status_code=response.status_code,
                        context=context,
                    )
                else:
                    try:
                        return response.json()
                    except ValueError as e:
                        raise ProviderRequestError(
                            f"GET {path} returned a non-JSON body",
                            status_code=response.status_code,
                            context=context,
                        ) from e

            if attempt + 1 < self.max_attempts:
                delay = self.backoff_seconds * (2 ** attempt)
                events.warning(
                    LogEvents.PROVIDER_RETRY,
                    path=path,
                    attempt=attempt + 1,
                    delay_seconds=delay,
                    error=last_error,
                )
                self._sleep(delay)

        events.error(LogEvents.PROVIDER_GAVE_UP, path=path, attempts=self.max_attempts, error=last_error)
        raise TransientNetworkError(
            f"GET {path} failed after {self.max_attempts} attempts: {last_error}",
            status_code=last_status,
            context=context,
        )

    def _has_next_page(self, body: Any, page: int, count: int) -> bool:
        if isinstance(body, dict):
            pages = body.get("pages") or body.get("last_page") or (body.get("meta") or {}).get("last_page")
            if pages is not None:
                return page < int(pages)
        return count >= self.page_size

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "EmployesClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
