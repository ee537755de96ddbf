"""
Subscription Hub

In-process fan-out of normalized platform events to subscribers:
- Subscriptions are keyed by (kind, channel_id, target_ts)
- Each subscription carries a filter predicate and a callback
- Optional TTL so subscriptions can lapse on their own
- Cancellation is idempotent
"""

import time
import uuid
import logging
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from reminders.models import PlatformEvent

logger = logging.getLogger(__name__)

SubscriptionKey = Tuple[str, str, str]


@dataclass
class Subscription:
    """A live subscription handle"""
    handle: str
    key: SubscriptionKey
    predicate: Callable[[PlatformEvent], bool]
    on_event: Callable[[PlatformEvent], None]
    expires_at: Optional[float] = None

    def expired(self, now: float) -> bool:
        return self.expires_at is not None and now >= self.expires_at


class SubscriptionHub:
    """Routes published platform events to matching subscriptions"""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._subscriptions: Dict[str, Subscription] = {}
        self._by_key: Dict[SubscriptionKey, Dict[str, Subscription]] = {}

    def subscribe(self, kind: str, channel_id: str, target_ts: str,
                  predicate: Callable[[PlatformEvent], bool],
                  on_event: Callable[[PlatformEvent], None],
                  ttl: Optional[float] = None) -> str:
        """Register a subscription and return its handle"""
        handle = uuid.uuid4().hex
        key = (kind, channel_id, target_ts)
        expires_at = self._clock() + ttl if ttl else None
        subscription = Subscription(handle, key, predicate, on_event, expires_at)
        self._subscriptions[handle] = subscription
        self._by_key.setdefault(key, {})[handle] = subscription
        logger.debug(f"Subscribed {handle} to {key}")
        return handle

    def cancel(self, handle: str) -> bool:
        """Cancel a subscription. Returns False if it was already gone."""
        subscription = self._subscriptions.pop(handle, None)
        if subscription is None:
            return False
        bucket = self._by_key.get(subscription.key)
        if bucket is not None:
            bucket.pop(handle, None)
            if not bucket:
                del self._by_key[subscription.key]
        logger.debug(f"Cancelled subscription {handle}")
        return True

    def is_active(self, handle: str) -> bool:
        subscription = self._subscriptions.get(handle)
        return subscription is not None and not subscription.expired(self._clock())

    def publish(self, event: PlatformEvent) -> int:
        """Deliver an event to every matching subscription; returns the match count"""
        bucket = self._by_key.get((event.kind, event.channel_id, event.target_ts))
        if not bucket:
            return 0

        now = self._clock()
        delivered = 0
        for subscription in list(bucket.values()):
            if subscription.expired(now):
                logger.info(f"Subscription {subscription.handle} on {subscription.key} expired")
                self.cancel(subscription.handle)
                continue
            try:
                if not subscription.predicate(event):
                    continue
                subscription.on_event(event)
                delivered += 1
            except Exception as e:
                logger.error(f"Subscriber {subscription.handle} failed on {event.kind} event: {e}")
        return delivered

    def close(self):
        """Drop every subscription"""
        self._subscriptions.clear()
        self._by_key.clear()

    def __len__(self) -> int:
        return len(self._subscriptions)
