"""
SERP Module

Google organic, Maps and Local Finder results, plus helpers
for finding a domain or business in those results.
"""

import logging
from typing import Any, Dict, List, Optional

from ..cache import CacheTTL, cache_key, hash_value
from .base import BaseModule, DEFAULT_LANGUAGE_CODE, DEFAULT_LOCATION_CODE, location_params

logger = logging.getLogger(__name__)


def _bare_domain(value: Optional[str]) -> str:
    value = (value or "").lower()
    return value[4:] if value.startswith("www.") else value


class SerpModule(BaseModule):
    """Google SERP endpoints."""

    async def google_organic_raw(
        self,
        keyword: str,
        location_code: Optional[int] = None,
        location_name: Optional[str] = None,
        language_code: str = DEFAULT_LANGUAGE_CODE,
        depth: int = 100,
        device: str = "desktop",
        skip_cache: bool = False,
    ) -> Dict[str, Any]:
        """Raw organic SERP response (all item types)."""
        location = location_params(location_code, location_name)
        payload = {
            "keyword": keyword,
            "language_code": language_code,
            "device": device,
            "depth": depth,
            **location,
        }
        key = cache_key("serp", "organic", f"{keyword}|{depth}", next(iter(location.values())))
        return await self.execute_with_cache(
            key, "serp/google/organic/live/advanced", [payload], CacheTTL.SERP, skip_cache
        )

    async def google_organic(self, keyword: str, **kwargs) -> List[Dict[str, Any]]:
        """Organic result items only."""
        response = await self.google_organic_raw(keyword, **kwargs)
        return [item for item in self.extract_items(response) if item.get("type") == "organic"]

    async def google_maps(
        self,
        keyword: str,
        coordinates: Optional[str] = None,
        location_code: Optional[int] = None,
        location_name: Optional[str] = None,
        language_code: str = DEFAULT_LANGUAGE_CODE,
        depth: int = 20,
        skip_cache: bool = False,
    ) -> List[Dict[str, Any]]:
        """
        Google Maps results.

        `coordinates` is "lat,lng,zoom" (e.g. "30.2672,-97.7431,15z") and
        pins the search to a geo-grid point.
        """
        payload: Dict[str, Any] = {
            "keyword": keyword,
            "language_code": language_code,
            "device": "desktop",
            "depth": depth,
        }
        if coordinates:
            payload["location_coordinate"] = coordinates
            payload["search_places"] = False
            key = cache_key("serp", "maps", keyword, hash_value(coordinates))
        else:
            location = location_params(location_code, location_name)
            payload.update(location)
            key = cache_key("serp", "maps", keyword, next(iter(location.values())))

        response = await self.execute_with_cache(
            key, "serp/google/maps/live/advanced", [payload], CacheTTL.SERP, skip_cache
        )
        return [item for item in self.extract_items(response) if item.get("type") == "maps_search"]

    async def google_local_finder(
        self,
        keyword: str,
        location_code: Optional[int] = None,
        location_name: Optional[str] = None,
        coordinates: Optional[str] = None,
        language_code: str = DEFAULT_LANGUAGE_CODE,
        depth: int = 20,
        skip_cache: bool = False,
    ) -> List[Dict[str, Any]]:
        """Local Finder ("more places") results."""
        location = location_params(location_code, location_name)
        payload: Dict[str, Any] = {
            "keyword": keyword,
            "language_code": language_code,
            "device": "desktop",
            "depth": depth,
            **location,
        }
        if coordinates:
            payload["location_coordinate"] = coordinates

        key = cache_key("serp", "local", keyword, next(iter(location.values())))
        response = await self.execute_with_cache(
            key, "serp/google/local_finder/live/advanced", [payload], CacheTTL.SERP, skip_cache
        )
        return [item for item in self.extract_items(response) if item.get("type") == "local_pack"]

    # =========================================================================
    # Helpers
    # =========================================================================

    async def find_domain_ranking(
        self,
        keyword: str,
        domain: str,
        location_code: Optional[int] = None,
        location_name: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        """First organic result in the top 100 whose domain equals `domain`."""
        results = await self.google_organic(
            keyword,
            location_code=location_code,
            location_name=location_name,
            depth=100,
        )

        target = _bare_domain(domain)
        for result in results:
            if _bare_domain(result.get("domain")) == target:
                return result
        return None

    async def find_local_pack_presence(
        self,
        keyword: str,
        business_name: str,
        location_code: int = DEFAULT_LOCATION_CODE,
    ) -> Optional[Dict[str, Any]]:
        """First Local Finder result whose title contains the business name."""
        results = await self.google_local_finder(keyword, location_code=location_code, depth=20)

        name = business_name.lower()
        for result in results:
            if name in (result.get("title") or "").lower():
                return result
        return None

    async def analyze_serp_features(
        self,
        keyword: str,
        location_code: Optional[int] = None,
        location_name: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Summary of the features present on the first SERP page."""
        response = await self.google_organic_raw(
            keyword,
            location_code=location_code,
            location_name=location_name,
            depth=10,
        )
        items = self.extract_items(response)

        organic = [item for item in items if item.get("type") == "organic"]

        return {
            "organicCount": len(organic),
            "hasLocalPack": any(item.get("type") == "local_pack" for item in items),
            "hasFeaturedSnippet": any(item.get("is_featured_snippet") is True for item in organic),
            "hasImages": any(item.get("is_image") is True for item in organic),
            "hasVideos": any(item.get("is_video") is True for item in organic),
            "topOrganicDomain": organic[0].get("domain") if organic else None,
        }
