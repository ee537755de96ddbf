"""
Slack Business Logic Services

Core services for Slack functionality:
- User, channel and member directory caching
- User profile, permalink and member lookups
"""

from .cache_service import SlackCacheService
from .user_service import SlackUserService

__all__ = ['SlackCacheService', 'SlackUserService']
