"""DataForSEO API module wrappers."""

from .base import BaseModule, DEFAULT_LOCATION_CODE, DEFAULT_LANGUAGE_CODE, location_params
from .serp import SerpModule
from .labs import LabsModule
from .backlinks import BacklinksModule
from .business import BusinessModule
from .onpage import OnPageModule
from .keywords import KeywordsModule, infer_intent
from .ai_optimization import AiOptimizationModule, normalize_platform

__all__ = [
    "BaseModule",
    "DEFAULT_LOCATION_CODE",
    "DEFAULT_LANGUAGE_CODE",
    "location_params",
    "SerpModule",
    "LabsModule",
    "BacklinksModule",
    "BusinessModule",
    "OnPageModule",
    "KeywordsModule",
    "infer_intent",
    "AiOptimizationModule",
    "normalize_platform",
]
