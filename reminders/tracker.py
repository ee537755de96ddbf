"""
Acknowledgment Tracker

Bridges raw platform notifications (reaction added, reply to the message,
post in the derived thread) into AcknowledgementEvents for the engine.
The tracker never touches engine state; it only emits events.
"""

import logging
from typing import Callable, Dict, FrozenSet, Iterable, List, Union

from .errors import SubscriptionError
from .models import AcknowledgementEvent, OriginRef, PlatformEvent, ThreadRef

logger = logging.getLogger(__name__)

AcknowledgeCallback = Callable[[AcknowledgementEvent], None]


class AcknowledgmentTracker:
    """Manages acknowledgment subscriptions per tracked message"""

    def __init__(self, platform, ttl=None):
        self.platform = platform
        self.ttl = ttl
        self._handles: Dict[str, List[str]] = {}

    def watch(self, origin: OriginRef, recipients: Iterable[str], on_acknowledge: AcknowledgeCallback) -> None:
        """
        Watch reactions on the origin message and replies that reference it.

        Raises:
            SubscriptionError: if the platform refuses either subscription
        """
        message_id = origin.message_id
        recipient_set = frozenset(recipients)

        def is_recipient(event: PlatformEvent) -> bool:
            return event.user_id in recipient_set

        def is_reply(event: PlatformEvent) -> bool:
            return event.user_id in recipient_set and event.target_ts == origin.ts

        try:
            reaction_handle = self.platform.subscribe_reactions(
                origin, is_recipient, self._emitter(message_id, "reaction", on_acknowledge), ttl=self.ttl
            )
            self._handles.setdefault(message_id, []).append(reaction_handle)

            reply_handle = self.platform.subscribe_replies(
                origin, is_reply, self._emitter(message_id, "reply", on_acknowledge), ttl=self.ttl
            )
            self._handles[message_id].append(reply_handle)
        except Exception as e:
            raise SubscriptionError(message_id, str(e)) from e

        logger.info(f"Watching reactions and replies on {message_id} for {len(recipient_set)} recipients")

    def watch_thread(self, thread: ThreadRef, recipients: Iterable[str], on_acknowledge: AcknowledgeCallback) -> None:
        """Treat any recipient post inside the thread as an acknowledgment"""
        message_id = thread.origin_message_id
        recipient_set: FrozenSet[str] = frozenset(recipients)

        try:
            handle = self.platform.subscribe_thread_messages(
                thread,
                lambda event: event.user_id in recipient_set,
                self._emitter(message_id, "thread", on_acknowledge),
                ttl=self.ttl
            )
        except Exception as e:
            raise SubscriptionError(message_id, str(e)) from e

        self._handles.setdefault(message_id, []).append(handle)
        logger.info(f"Watching thread {thread.thread_ts} for {message_id}")

    def unwatch(self, origin: Union[OriginRef, str]) -> int:
        """Cancel every subscription for a message. Safe to call repeatedly."""
        message_id = origin.message_id if isinstance(origin, OriginRef) else origin
        handles = self._handles.pop(message_id, [])
        cancelled = 0
        for handle in handles:
            try:
                if self.platform.cancel_subscription(handle):
                    cancelled += 1
            except Exception as e:
                logger.warning(f"Failed to cancel subscription {handle} for {message_id}: {e}")
        if handles:
            logger.info(f"Stopped watching {message_id} ({cancelled}/{len(handles)} subscriptions still live)")
        return cancelled

    def active_subscriptions(self, message_id: str) -> List[str]:
        return list(self._handles.get(message_id, []))

    @staticmethod
    def _emitter(message_id: str, source: str, on_acknowledge: AcknowledgeCallback) -> Callable[[PlatformEvent], None]:
        def emit(event: PlatformEvent):
            logger.info(f"User {event.user_id} acknowledged {message_id} via {source}")
            on_acknowledge(AcknowledgementEvent(message_id=message_id, user_id=event.user_id, source=source))
        return emit
