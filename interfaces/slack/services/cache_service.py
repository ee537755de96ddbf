"""
Slack Cache Service

In-memory caches for Slack lookups made while tracking mentions:
- User profiles (display name, avatar, bot flag)
- Channel names
- Workspace member directory used for broadcast mentions
- TTL expiry with a periodic cleanup task
"""

import time
import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


class SlackCacheService:
    """Centralized caching service for Slack lookups"""

    def __init__(self, cache_ttl: int = 3600):
        self.cache_ttl = cache_ttl

        self.user_cache: Dict[str, Tuple[float, Dict[str, Any]]] = {}  # { 'USER_ID': (stored_at, profile) }
        self.channel_cache: Dict[str, Tuple[float, str]] = {}  # { 'CHANNEL_ID': (stored_at, name) }
        self.directory: Optional[Tuple[float, List[Dict[str, Any]]]] = None

        self._cleanup_task: Optional[asyncio.Task] = None

    def _fresh(self, stored_at: float) -> bool:
        return time.time() - stored_at < self.cache_ttl

    # === User Cache ===

    def get_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        entry = self.user_cache.get(user_id)
        if entry and self._fresh(entry[0]):
            return entry[1]
        return None

    def store_user(self, user_id: str, profile: Dict[str, Any]) -> None:
        self.user_cache[user_id] = (time.time(), profile)

    # === Channel Cache ===

    def get_channel_name(self, channel_id: str) -> Optional[str]:
        entry = self.channel_cache.get(channel_id)
        if entry and self._fresh(entry[0]):
            return entry[1]
        return None

    def store_channel_name(self, channel_id: str, name: str) -> None:
        self.channel_cache[channel_id] = (time.time(), name)

    # === Member Directory ===

    def get_directory(self) -> Optional[List[Dict[str, Any]]]:
        if self.directory and self._fresh(self.directory[0]):
            return self.directory[1]
        return None

    def store_directory(self, members: List[Dict[str, Any]]) -> None:
        self.directory = (time.time(), members)

    # === Cleanup ===

    def ensure_cleanup_task_started(self):
        """Start the periodic cleanup task if not already started"""
        if self._cleanup_task is None or self._cleanup_task.done():
            self._cleanup_task = asyncio.create_task(self._cleanup_cache_periodically())

    async def stop(self):
        if self._cleanup_task is not None:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
            self._cleanup_task = None

    def cleanup_expired(self) -> int:
        """Drop stale entries, returns how many were removed"""
        stale_users = [k for k, (stored_at, _) in self.user_cache.items() if not self._fresh(stored_at)]
        stale_channels = [k for k, (stored_at, _) in self.channel_cache.items() if not self._fresh(stored_at)]
        for key in stale_users:
            del self.user_cache[key]
        for key in stale_channels:
            del self.channel_cache[key]
        removed = len(stale_users) + len(stale_channels)
        if self.directory and not self._fresh(self.directory[0]):
            self.directory = None
            removed += 1
        return removed

    async def _cleanup_cache_periodically(self):
        """Background task to clean up stale cache entries"""
        while True:
            await asyncio.sleep(self.cache_ttl)
            removed = self.cleanup_expired()
            if removed > 0:
                logger.info(f"Cache cleanup: {removed} stale entries removed")

    def get_cache_stats(self) -> Dict[str, Any]:
        return {
            "user_cache_count": len(self.user_cache),
            "channel_cache_count": len(self.channel_cache),
            "directory_cached": self.get_directory() is not None,
            "cache_ttl": self.cache_ttl
        }
