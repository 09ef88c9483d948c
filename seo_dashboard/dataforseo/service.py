"""
DataForSEO service

One client plus every module wrapper, sharing the response cache.
Jobs and routes create one per unit of work and close it afterwards.
"""

from typing import Optional

from .cache import DataForSEOCache, get_cache
from .client import DataForSEOClient, create_client
from .modules import (
    AiOptimizationModule,
    BacklinksModule,
    BusinessModule,
    KeywordsModule,
    LabsModule,
    OnPageModule,
    SerpModule,
)


class DataForSEO:
    """Facade over the DataForSEO modules."""

    def __init__(self, client: DataForSEOClient, cache: Optional[DataForSEOCache] = None):
        self.client = client
        self.cache = cache
        self.serp = SerpModule(client, cache)
        self.labs = LabsModule(client, cache)
        self.backlinks = BacklinksModule(client, cache)
        self.business = BusinessModule(client, cache)
        self.onpage = OnPageModule(client, cache)
        self.keywords = KeywordsModule(client, cache)
        self.ai = AiOptimizationModule(client, cache)

    async def close(self):
        await self.client.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


def create_dataforseo(use_cache: bool = True) -> DataForSEO:
    """Build the facade from settings. Raises DataForSEOError without credentials."""
    cache = get_cache() if use_cache else None
    return DataForSEO(create_client(), cache if cache is not None and cache.is_enabled() else None)
