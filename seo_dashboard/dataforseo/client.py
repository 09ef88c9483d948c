"""
DataForSEO API Client

Async HTTP client with:
- Connection pooling
- Rate limiting per limiter class (general, tasksReady, googleAds)
- Automatic retry with exponential backoff
- Graceful error handling
- Request/response logging
"""

import base64
import logging
from typing import Any, Dict, List, Optional

import httpx

from seo_dashboard.utils.config import get_settings
from .errors import DataForSEOError, STATUS_CODES, SUCCESS_CODES, describe_status
from .rate_limiter import get_limiter

logger = logging.getLogger(__name__)


def safe_get_result(response: Optional[Dict], get_items: bool = True) -> Any:
    """
    Safely extract result data from DataForSEO API response.

    Handles cases where result is None, empty, or malformed.

    Args:
        response: Raw API response dict
        get_items: If True, returns items list. If False, returns first result object.

    Returns:
        List of items, result dict, or empty list/dict on failure
    """
    try:
        tasks = (response or {}).get("tasks")
        if not tasks or not isinstance(tasks, list):
            return [] if get_items else {}

        result = tasks[0].get("result")
        if not result or not isinstance(result, list):
            return [] if get_items else {}

        first_result = result[0]
        if not first_result or not isinstance(first_result, dict):
            return [] if get_items else {}

        if get_items:
            items = first_result.get("items")
            return items if items and isinstance(items, list) else []
        return first_result
    except (TypeError, IndexError, KeyError, AttributeError) as e:
        logger.debug(f"Safe result extraction failed: {e}")
        return [] if get_items else {}


class DataForSEOClient:
    """
    Async client for DataForSEO API.

    Usage:
        client = DataForSEOClient(login="your_login", password="your_password")

        result = await client.post("dataforseo_labs/google/ranked_keywords/live", [{
            "target": "example.com",
            "location_code": 2840,
            "language_code": "en",
        }])

        await client.close()
    """

    BASE_URL = "https://api.dataforseo.com/v3"

    def __init__(
        self,
        login: str,
        password: str,
        max_connections: int = 50,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize DataForSEO client.

        Args:
            login: DataForSEO login email
            password: DataForSEO API password
            max_connections: Maximum concurrent connections
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        if not login or not password:
            raise DataForSEOError(
                "DataForSEO credentials not configured. "
                "Set DATAFORSEO_LOGIN and DATAFORSEO_PASSWORD environment variables."
            )

        self.login = login

        credentials = f"{login}:{password}"
        auth_token = base64.b64encode(credentials.encode()).decode()

        self._client = httpx.AsyncClient(
            base_url=self.BASE_URL,
            headers={
                "Authorization": f"Basic {auth_token}",
                "Content-Type": "application/json",
            },
            limits=httpx.Limits(
                max_connections=max_connections,
                max_keepalive_connections=max_connections // 2,
            ),
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

        self._closed = False

    async def post(
        self,
        endpoint: str,
        data: List[Dict[str, Any]],
        limiter: str = "general",
        retry: bool = True,
    ) -> Dict[str, Any]:
        """
        Make a rate-limited POST request to DataForSEO API.

        Args:
            endpoint: API endpoint path (e.g., "serp/google/organic/live/advanced")
            data: Request payload (list of task objects)
            limiter: Limiter class to schedule the request on
            retry: Whether to retry retryable failures

        Returns:
            API response as dictionary

        Raises:
            DataForSEOError: On API error
        """
        if self._closed:
            raise DataForSEOError("Client is closed")

        return await get_limiter(limiter).schedule(
            self._make_request, "POST", f"/{endpoint}", data, retry=retry
        )

    async def get(self, endpoint: str, limiter: str = "general") -> Dict[str, Any]:
        """Make a rate-limited GET request (task results, reference data)."""
        if self._closed:
            raise DataForSEOError("Client is closed")

        return await get_limiter(limiter).schedule(self._make_request, "GET", f"/{endpoint}", None)

    async def _make_request(self, method: str, url: str, data: Optional[List[Dict]]) -> Dict[str, Any]:
        """Make a single HTTP request."""
        logger.debug(f"{method} {url}")

        try:
            if method == "GET":
                response = await self._client.get(url)
            else:
                response = await self._client.post(url, json=data)
        except httpx.TimeoutException as e:
            raise DataForSEOError(f"Request timed out: {e}")
        except httpx.HTTPError as e:
            raise DataForSEOError(f"Network error: {e}")

        if response.status_code != 200:
            try:
                body = response.json() if response.content else None
            except ValueError:
                body = None
            raise DataForSEOError(
                f"API request failed: {response.status_code}",
                status_code=response.status_code,
                response=body,
            )

        try:
            result = response.json()
        except ValueError as e:
            raise DataForSEOError(f"Malformed response body from {url}: {e}")

        if not isinstance(result, dict):
            raise DataForSEOError(
                f"Malformed response from {url}: expected an object, got {type(result).__name__}"
            )

        # Check for API-level errors
        if result.get("status_code") != STATUS_CODES["SUCCESS"]:
            error_msg = result.get("status_message", "Unknown error")
            raise DataForSEOError(
                f"API error: {error_msg}",
                status_code=result.get("status_code"),
                response=result,
            )

        # Task-level errors leave that task without results
        for task in result.get("tasks") or []:
            task_status = task.get("status_code")
            if task_status not in SUCCESS_CODES:
                logger.error(
                    f"DataForSEO task error in {url}: {task.get('status_message', 'Task error')} "
                    f"(status: {describe_status(task_status)})"
                )

        return result

    async def check_status(self) -> Dict[str, Any]:
        """Make a minimal API call to verify credentials."""
        try:
            result = await self.post(
                "backlinks/summary/live", [{"target": "example.com"}], retry=False
            )
            return {
                "success": result.get("status_code") == STATUS_CODES["SUCCESS"],
                "message": "DataForSEO API connection successful",
            }
        except DataForSEOError as e:
            return {"success": False, "message": str(e)}

    async def close(self):
        """Close the HTTP client."""
        if not self._closed:
            await self._client.aclose()
            self._closed = True

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


# ============================================================================
# CONVENIENCE FUNCTIONS
# ============================================================================

def create_client(login: Optional[str] = None, password: Optional[str] = None) -> DataForSEOClient:
    """Create a DataForSEO client, falling back to configured credentials."""
    settings = get_settings()
    return DataForSEOClient(
        login=login or settings.DATAFORSEO_LOGIN,
        password=password or settings.DATAFORSEO_PASSWORD,
        timeout=settings.DATAFORSEO_TIMEOUT,
    )
