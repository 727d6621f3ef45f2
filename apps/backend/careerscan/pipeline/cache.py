"""
Result cache.

Keys are sha256 digests of the normalized page URL (see core.urls.cache_key).
Expiry is the caller's business: implementations store and return results,
nothing more.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional

from careerscan.models import ExtractionResult

logger = logging.getLogger(__name__)


class ResultCache(ABC):
    """Async key/value store for extraction results"""

    @abstractmethod
    async def get(self, key: str) -> Optional[ExtractionResult]:
        pass

    @abstractmethod
    async def put(self, key: str, result: ExtractionResult):
        pass


class MemoryResultCache(ResultCache):
    """In-process cache; results are copied in and out so callers never share objects"""

    def __init__(self):
        self._entries: Dict[str, ExtractionResult] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Optional[ExtractionResult]:
        async with self._lock:
            result = self._entries.get(key)
        if result is None:
            return None
        logger.debug(f"[cache] Hit {key[:12]}")
        return result.model_copy(deep=True)

    async def put(self, key: str, result: ExtractionResult):
        async with self._lock:
            self._entries[key] = result.model_copy(deep=True)
        logger.debug(f"[cache] Stored {key[:12]} ({len(result.links)} links)")

    def __len__(self):
        return len(self._entries)
