"""
Base Module

Shared plumbing for the DataForSEO API module wrappers:
rate-limited execution, optional response caching and
helpers for reading the standard task/result envelope.
"""

import logging
from typing import Any, Dict, List, Optional

from ..cache import DataForSEOCache
from ..client import DataForSEOClient
from ..errors import STATUS_CODES, SUCCESS_CODES

logger = logging.getLogger(__name__)

DEFAULT_LOCATION_CODE = 2840  # United States
DEFAULT_LANGUAGE_CODE = "en"


def location_params(
    location_code: Optional[int] = None,
    location_name: Optional[str] = None,
) -> Dict[str, Any]:
    """Location fields for a task: explicit code, else name, else the US default."""
    if location_code:
        return {"location_code": location_code}
    if location_name:
        return {"location_name": location_name}
    return {"location_code": DEFAULT_LOCATION_CODE}


class BaseModule:
    """Base class for DataForSEO API modules."""

    default_limiter = "general"

    def __init__(self, client: DataForSEOClient, cache: Optional[DataForSEOCache] = None):
        self.client = client
        self.cache = cache

    async def execute(
        self,
        endpoint: str,
        payload: List[Dict[str, Any]],
        limiter: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Execute an API call on this module's limiter."""
        return await self.client.post(endpoint, payload, limiter=limiter or self.default_limiter)

    async def execute_with_cache(
        self,
        key: str,
        endpoint: str,
        payload: List[Dict[str, Any]],
        ttl: int,
        skip_cache: bool = False,
        limiter: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Execute an API call, reading and writing the response cache."""
        if self.cache is None:
            return await self.execute(endpoint, payload, limiter)

        return await self.cache.get_or_fetch(
            key,
            lambda: self.execute(endpoint, payload, limiter),
            ttl=ttl,
            skip_cache=skip_cache,
        )

    # =========================================================================
    # Response helpers
    # =========================================================================

    @staticmethod
    def extract_results(response: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Results of every successful task, flattened."""
        if not response or not response.get("tasks"):
            return []

        results = []
        for task in response["tasks"]:
            if task.get("status_code") == STATUS_CODES["SUCCESS"] and task.get("result"):
                results.extend(r for r in task["result"] if r is not None)
        return results

    @classmethod
    def extract_first_result(cls, response: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        results = cls.extract_results(response)
        return results[0] if results else None

    @classmethod
    def extract_items(cls, response: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Items of the first result, or an empty list."""
        first = cls.extract_first_result(response)
        if not first:
            return []
        return [item for item in (first.get("items") or []) if item]

    @staticmethod
    def is_success(response: Optional[Dict[str, Any]]) -> bool:
        if not response:
            return False
        return response.get("status_code") in SUCCESS_CODES

    @staticmethod
    def get_cost(response: Optional[Dict[str, Any]]) -> float:
        if not response:
            return 0.0
        return float(response.get("cost") or 0)

    @staticmethod
    def has_errors(response: Optional[Dict[str, Any]]) -> bool:
        if not response:
            return True
        return (response.get("tasks_error") or 0) > 0

    @staticmethod
    def get_errors(response: Optional[Dict[str, Any]]) -> List[str]:
        """Error messages of failed tasks."""
        if not response or not response.get("tasks"):
            return []
        return [
            f"[{task.get('status_code')}] {task.get('status_message')}"
            for task in response["tasks"]
            if task.get("status_code") != STATUS_CODES["SUCCESS"]
        ]
