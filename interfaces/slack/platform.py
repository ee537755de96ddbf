"""
Slack Platform Adapter

Outbound side of the reminder engine on Slack:
- Direct message delivery with rate limit retries
- Reaction, reply and thread subscriptions on top of the subscription hub
"""

import logging
from typing import Callable, Optional

from slack_sdk.errors import SlackApiError

from reminders.errors import DeliveryError
from reminders.models import NotificationPayload, OriginRef, PlatformEvent, ThreadRef
from runtime.rate_limit_handler import RateLimitError, RateLimitHandler
from runtime.subscriptions import SubscriptionHub

logger = logging.getLogger(__name__)


class SlackPlatform:
    """Delivers reminders and exposes acknowledgment subscriptions"""

    def __init__(self, slack_client, hub: Optional[SubscriptionHub] = None,
                 rate_limiter: Optional[RateLimitHandler] = None):
        self.slack_client = slack_client
        self.hub = hub or SubscriptionHub()
        self.rate_limiter = rate_limiter or RateLimitHandler()

    async def deliver_direct_message(self, user_id: str, payload: NotificationPayload) -> None:
        """
        Send a payload as a DM.

        Raises:
            DeliveryError: if the DM could not be opened or posted
        """
        try:
            conversation = await self.rate_limiter.execute_with_retry(
                self.slack_client.conversations_open, users=user_id
            )
            channel_id = conversation["channel"]["id"]
            await self.rate_limiter.execute_with_retry(
                self.slack_client.chat_postMessage,
                channel=channel_id,
                blocks=payload.blocks,
                text=payload.text  # Fallback for notifications
            )
        except RateLimitError as e:
            raise DeliveryError(user_id, str(e)) from e
        except SlackApiError as e:
            reason = e.response.get('error') if e.response is not None else str(e)
            raise DeliveryError(user_id, reason) from e
        except (KeyError, TypeError) as e:
            raise DeliveryError(user_id, f"unexpected conversations.open response: {e}") from e

    # === Subscriptions ===

    def subscribe_reactions(self, origin: OriginRef, predicate: Callable[[PlatformEvent], bool],
                            on_event: Callable[[PlatformEvent], None], ttl: Optional[float] = None) -> str:
        return self.hub.subscribe("reaction", origin.channel_id, origin.ts, predicate, on_event, ttl=ttl)

    def subscribe_replies(self, origin: OriginRef, predicate: Callable[[PlatformEvent], bool],
                          on_event: Callable[[PlatformEvent], None], ttl: Optional[float] = None) -> str:
        return self.hub.subscribe("reply", origin.channel_id, origin.ts, predicate, on_event, ttl=ttl)

    def subscribe_thread_messages(self, thread: ThreadRef, predicate: Callable[[PlatformEvent], bool],
                                  on_event: Callable[[PlatformEvent], None], ttl: Optional[float] = None) -> str:
        return self.hub.subscribe("thread_message", thread.channel_id, thread.thread_ts, predicate, on_event, ttl=ttl)

    def cancel_subscription(self, handle: str) -> bool:
        return self.hub.cancel(handle)

    def publish(self, event: PlatformEvent) -> int:
        """Feed a normalized Slack event to the subscribers"""
        return self.hub.publish(event)
