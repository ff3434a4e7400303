"""Reco search: live search provider, result cache, and pricing."""

from src.search.cache import SearchCache
from src.search.provider import PerplexityClient
from src.search.service import SearchOutcome, SearchService

__all__ = ["PerplexityClient", "SearchCache", "SearchOutcome", "SearchService"]
