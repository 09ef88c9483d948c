"""
Business Data Module

Google Business Profile data:
- Live business info and business listings search
- Task-based posts, Q&A and reviews (submit, poll tasks_ready, fetch)
- Profile completeness and local competitor summaries
"""

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional

from ..cache import CacheTTL, cache_key
from ..errors import DataForSEOError
from .base import BaseModule, DEFAULT_LANGUAGE_CODE, location_params

logger = logging.getLogger(__name__)

TASK_ENDPOINTS = {
    "posts": "business_data/google/my_business_updates",
    "qa": "business_data/google/questions_and_answers",
    "reviews": "business_data/google/reviews",
}


class BusinessModule(BaseModule):
    """Business Data API endpoints."""

    async def business_info(
        self,
        keyword: str,
        location_code: Optional[int] = None,
        location_name: Optional[str] = None,
        language_code: str = DEFAULT_LANGUAGE_CODE,
        skip_cache: bool = False,
    ) -> List[Dict[str, Any]]:
        """
        Google My Business info for a keyword.

        The keyword is usually "business name + address" or "cid:<cid>".
        """
        location = location_params(location_code, location_name)
        response = await self.execute_with_cache(
            cache_key("business", "info", keyword, next(iter(location.values()))),
            "business_data/google/my_business_info/live",
            [{"keyword": keyword, "language_code": language_code, **location}],
            CacheTTL.GMB,
            skip_cache,
        )
        return self.extract_items(response)

    async def search_listings(
        self,
        categories: Optional[List[str]] = None,
        location_coordinate: Optional[str] = None,
        title: Optional[str] = None,
        description: Optional[str] = None,
        is_claimed: Optional[bool] = None,
        min_rating: Optional[float] = None,
        max_rating: Optional[float] = None,
        limit: int = 100,
        offset: int = 0,
        skip_cache: bool = False,
    ) -> List[Dict[str, Any]]:
        """Business listings search. `location_coordinate` is "lat,lng,radius_km"."""
        payload: Dict[str, Any] = {"limit": limit}
        if categories:
            payload["categories"] = categories
        if location_coordinate:
            payload["location_coordinate"] = location_coordinate
        if title:
            payload["title"] = title
        if description:
            payload["description"] = description
        if is_claimed is not None:
            payload["is_claimed"] = is_claimed
        if offset:
            payload["offset"] = offset

        filters = []
        if min_rating:
            filters.append(["rating.value", ">=", min_rating])
        if max_rating:
            filters.append(["rating.value", "<=", max_rating])
        if filters:
            # Multiple filters are joined with "and"
            joined: List[Any] = [filters[0]]
            for extra in filters[1:]:
                joined.extend(["and", extra])
            payload["filters"] = joined if len(filters) > 1 else filters[0]

        response = await self.execute_with_cache(
            cache_key("business", "listings", {"categories": categories, "location": location_coordinate, "title": title}),
            "business_data/business_listings/search/live",
            [payload],
            CacheTTL.GMB,
            skip_cache,
        )
        return self.extract_items(response)

    async def get_local_competitors(
        self,
        business_name: str,
        category: str,
        location_coordinate: str,
    ) -> Dict[str, Any]:
        """Listings in the same category around a point, split into target and competitors."""
        listings = await self.search_listings(
            categories=[category], location_coordinate=location_coordinate, limit=100
        )

        name = business_name.lower()
        target = next((b for b in listings if name in (b.get("title") or "").lower()), None)

        competitors = [
            {
                "business": b,
                "rating": (b.get("rating") or {}).get("value") or 0,
                "reviewCount": (b.get("rating") or {}).get("votes_count") or 0,
            }
            for b in listings
            if target is None or b.get("place_id") != target.get("place_id")
        ]
        competitors.sort(key=lambda c: c["rating"], reverse=True)

        ratings = [(b.get("rating") or {}).get("value") or 0 for b in listings]
        average = sum(ratings) / len(ratings) if ratings else 0

        return {
            "targetBusiness": target,
            "competitors": competitors[:20],
            "averageRating": round(average, 1),
            "marketSize": len(listings),
        }

    @staticmethod
    def calculate_profile_completeness(business_info: Dict[str, Any]) -> Dict[str, Any]:
        """Weighted completeness score with missing fields and top recommendations."""
        missing_fields: List[str] = []
        recommendations: List[str] = []
        score = 0
        max_score = 0

        essential_fields = [
            ("title", "Business Name", 10),
            ("phone", "Phone Number", 15),
            ("address", "Address", 15),
            ("url", "Website", 10),
            ("category", "Primary Category", 10),
        ]
        for field_name, label, weight in essential_fields:
            max_score += weight
            if business_info.get(field_name):
                score += weight
            else:
                missing_fields.append(label)
                recommendations.append(f"Add your {label.lower()} to improve visibility")

        important_fields = [
            ("description", "Business Description", 8),
            ("main_image", "Profile Image", 5),
            ("work_time", "Business Hours", 8),
            ("is_claimed", "Claimed Profile", 5),
        ]
        for field_name, label, weight in important_fields:
            max_score += weight
            if business_info.get(field_name):
                score += weight
            else:
                missing_fields.append(label)

        max_score += 10
        rating = (business_info.get("rating") or {}).get("value") or 0
        if rating >= 4:
            score += 10
        elif rating >= 3:
            score += 5
            recommendations.append("Work on improving your review rating")
        else:
            recommendations.append("Encourage satisfied customers to leave reviews")

        max_score += 4
        photo_count = business_info.get("total_photos") or 0
        if photo_count >= 10:
            score += 4
        elif photo_count >= 5:
            score += 2
            recommendations.append("Add more photos to your profile")
        else:
            recommendations.append("Add photos of your practice, team, and services")

        return {
            "score": round(score / max_score * 100),
            "missingFields": missing_fields,
            "recommendations": recommendations[:5],
        }

    # =========================================================================
    # Task-based endpoints (posts, Q&A, reviews)
    # =========================================================================

    async def submit_task(
        self,
        task_type: str,
        keyword: str,
        location_code: Optional[int] = None,
        location_name: Optional[str] = None,
        depth: int = 20,
        language_code: str = DEFAULT_LANGUAGE_CODE,
        tag: Optional[str] = None,
        sort_by: Optional[str] = None,
    ) -> str:
        """Submit a posts/qa/reviews task and return its task id."""
        payload: Dict[str, Any] = {
            "keyword": keyword,
            "language_code": language_code,
            "depth": depth,
            **location_params(location_code, location_name),
        }
        if tag:
            payload["tag"] = tag
        if sort_by and task_type == "reviews":
            payload["sort_by"] = sort_by

        response = await self.execute(f"{TASK_ENDPOINTS[task_type]}/task_post", [payload])

        tasks = response.get("tasks") or []
        if not tasks or not tasks[0].get("id"):
            raise DataForSEOError(f"Failed to submit {task_type} task: no task ID returned")
        return tasks[0]["id"]

    async def tasks_ready(self, task_type: str) -> List[Dict[str, Any]]:
        """Ids of completed tasks (uses the tasksReady limiter)."""
        response = await self.client.get(f"{TASK_ENDPOINTS[task_type]}/tasks_ready", limiter="tasksReady")

        ready = []
        for task in response.get("tasks") or []:
            for item in task.get("result") or []:
                ready.append({"id": item.get("id"), "tag": item.get("tag")})
        return ready

    async def task_result(self, task_type: str, task_id: str) -> Optional[Dict[str, Any]]:
        key = cache_key("business", f"{task_type}task", task_id)

        async def fetch():
            return await self.client.get(f"{TASK_ENDPOINTS[task_type]}/task_get/{task_id}")

        if self.cache is not None:
            response = await self.cache.get_or_fetch(key, fetch, ttl=CacheTTL.GMB)
        else:
            response = await fetch()
        return self.extract_first_result(response)

    async def wait_for_task(self, task_type: str, task_id: str, max_wait: float = 300.0) -> bool:
        """Poll tasks_ready with growing intervals (5s up to 30s) until the task shows up."""
        started = time.monotonic()
        poll_interval = 5.0

        while time.monotonic() - started < max_wait:
            ready = await self.tasks_ready(task_type)
            if any(t["id"] == task_id for t in ready):
                return True

            await asyncio.sleep(poll_interval)
            poll_interval = min(poll_interval * 1.5, 30.0)

        return False

    async def fetch_task(self, task_type: str, keyword: str, max_wait: float = 300.0, **kwargs) -> Optional[Dict[str, Any]]:
        """Submit, wait for and fetch a task-based result. None on timeout."""
        task_id = await self.submit_task(task_type, keyword, **kwargs)
        if not await self.wait_for_task(task_type, task_id, max_wait):
            logger.warning(f"{task_type} task {task_id} timed out after {max_wait:.0f}s")
            return None
        return await self.task_result(task_type, task_id)
