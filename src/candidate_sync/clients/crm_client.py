"""
Outbound CRM API client.

The engine uses exactly one CRM capability: clearing the assignee of an
opportunity after it reaches a terminal state.

Retry strategy:
- 2xx: success
- 4xx (except 429): persistent error, no retry
- 5xx / 429 / network error: retried with exponential backoff
"""

import httpx
import structlog
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from ..config import config
from ..errors import CRMError

logger = structlog.get_logger(__name__)


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status >= 500 or status == 429
    return isinstance(exc, httpx.TransportError)


class CRMClient:
    """
    Async CRM client over httpx.

    Configuration via environment variables:
    - CRM_API_BASE_URL: Required base URL
    - CRM_API_KEY: Required bearer token
    - CRM_API_VERSION: API version header (default: 2021-07-28)
    - CRM_TIMEOUT_SECONDS: Request timeout (default: 10)
    """

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        api_version: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or config.CRM_API_BASE_URL).rstrip('/')
        if not self.base_url:
            raise ValueError('CRM_API_BASE_URL environment variable is required')
        self.api_key = api_key or config.CRM_API_KEY
        if not self.api_key:
            raise ValueError('CRM_API_KEY environment variable is required')

        self.api_version = api_version or config.CRM_API_VERSION
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout or config.CRM_TIMEOUT_SECONDS,
            headers={
                'Authorization': f'Bearer {self.api_key}',
                'Version': self.api_version,
                'Accept': 'application/json',
            },
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception(_is_retryable),
        reraise=True,
    )
    async def _request(self, method: str, path: str, json: dict | None = None) -> httpx.Response:
        response = await self._client.request(method, path, json=json)
        response.raise_for_status()
        return response

    async def clear_opportunity_assignee(self, opportunity_id: str) -> None:
        """
        Remove the assigned user from a CRM opportunity.

        Raises:
            CRMError: When the CRM rejects the call or stays unreachable
        """
        try:
            await self._request(
                'PUT',
                f'/opportunities/{opportunity_id}',
                json={'assignedTo': None},
            )
        except httpx.HTTPStatusError as e:
            raise CRMError(
                f'CRM rejected assignee clear: HTTP {e.response.status_code}',
                context={'opportunity_id': opportunity_id, 'status_code': e.response.status_code},
            ) from e
        except httpx.HTTPError as e:
            raise CRMError(
                f'CRM unreachable: {type(e).__name__}: {e}',
                context={'opportunity_id': opportunity_id},
            ) from e

        logger.info('crm_client.assignee_cleared', opportunity_id=opportunity_id)
