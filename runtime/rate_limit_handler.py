"""
Rate Limit Handler for Slack API Calls

Retries Slack Web API calls that were rate limited:
- Honors the Retry-After header Slack sends with HTTP 429
- Falls back to exponential backoff when no header is present
- Raises RateLimitError once retries are exhausted
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from slack_sdk.errors import SlackApiError

logger = logging.getLogger(__name__)

T = TypeVar('T')


@dataclass
class RateLimitConfig:
    """Configuration for rate limit handling"""
    max_retries: int = 2
    initial_delay: float = 1.0
    max_delay: float = 30.0
    backoff_factor: float = 2.0


class RateLimitError(Exception):
    """Raised when a Slack call stays rate limited after every retry"""

    def __init__(self, message: str, retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after


class RateLimitHandler:
    """Runs Slack calls with retry on rate limiting"""

    def __init__(self, config: Optional[RateLimitConfig] = None, sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep):
        self.config = config or RateLimitConfig()
        self._sleep = sleep

    async def execute_with_retry(self, func: Callable[..., Awaitable[T]], *args, **kwargs) -> T:
        """Execute an async Slack call, retrying while it is rate limited"""
        retry_count = 0
        while True:
            try:
                return await func(*args, **kwargs)
            except SlackApiError as e:
                error_info = self._parse_error(e)
                if not error_info['is_rate_limit']:
                    raise

                retry_count += 1
                if retry_count > self.config.max_retries:
                    raise RateLimitError(
                        f"Slack rate limit persisted after {self.config.max_retries} retries",
                        retry_after=error_info['retry_after']
                    ) from e

                delay = min(
                    self.config.initial_delay * (self.config.backoff_factor ** (retry_count - 1)),
                    self.config.max_delay
                )
                if error_info['retry_after'] is not None:
                    delay = min(error_info['retry_after'], self.config.max_delay)

                logger.warning(
                    f"Slack rate limit hit, retrying in {delay}s "
                    f"(attempt {retry_count}/{self.config.max_retries})"
                )
                await self._sleep(delay)

    def _parse_error(self, error: SlackApiError) -> Dict[str, Any]:
        """Extract rate limit information from a Slack API error"""
        response = getattr(error, 'response', None)
        status_code = getattr(response, 'status_code', None)
        headers = getattr(response, 'headers', None) or {}

        slack_error = response.get('error') if response is not None else None

        retry_after = None
        raw_retry_after = headers.get('Retry-After') or headers.get('retry-after')
        if raw_retry_after is not None:
            try:
                retry_after = float(raw_retry_after)
            except (TypeError, ValueError):
                retry_after = None

        return {
            'is_rate_limit': status_code == 429 or slack_error in ('ratelimited', 'rate_limited'),
            'error': slack_error,
            'retry_after': retry_after
        }
