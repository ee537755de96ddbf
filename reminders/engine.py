"""
Reminder Engine

Owns the tracked-message registry and the per-message reminder cycle:
- Repeating reminder loop on a fixed interval
- Quiet-hours deferral (no reminders, no budget consumed)
- Bounded reminders per recipient
- Retirement once every recipient acknowledged or exhausted their budget

All record mutations happen on the event loop. Acknowledgments arrive as
immutable events through a queue and are applied by a single consumer task.
"""

import asyncio
import datetime
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from .config import ReminderConfig
from .errors import DeliveryError, SubscriptionError
from .models import (
    AcknowledgementEvent, Member, NotificationPayload, OriginRef, RecordState, ThreadRef, TrackedMessage
)
from .quiet_hours import QuietHours
from .renderer import ReminderRenderer
from .tracker import AcknowledgmentTracker

logger = logging.getLogger(__name__)


class ReminderEngine:
    """Schedules reminders for tracked messages until they converge"""

    def __init__(self, platform, config: Optional[ReminderConfig] = None,
                 tracker: Optional[AcknowledgmentTracker] = None,
                 renderer: Optional[ReminderRenderer] = None,
                 clock: Optional[Callable[[], datetime.datetime]] = None):
        self.platform = platform
        self.config = config or ReminderConfig()
        self.tracker = tracker or AcknowledgmentTracker(platform, ttl=self.config.subscription_ttl)
        self.renderer = renderer or ReminderRenderer()
        self.quiet_hours = QuietHours.from_config(self.config, clock=clock)

        self._records: Dict[str, TrackedMessage] = {}
        self._ack_queue: asyncio.Queue = asyncio.Queue()
        self._consumer_task: Optional[asyncio.Task] = None
        self._cycle_tasks: Set[asyncio.Task] = set()

    # === Lifecycle ===

    async def start(self):
        """Start consuming acknowledgment events"""
        if self._consumer_task is None or self._consumer_task.done():
            self._consumer_task = asyncio.create_task(self._consume_acknowledgements())
            logger.info("Reminder engine started")

    async def stop(self):
        """Retire every record and stop background work"""
        for message_id in list(self._records):
            self.retire(message_id)

        tasks = list(self._cycle_tasks)
        if self._consumer_task is not None:
            tasks.append(self._consumer_task)
            self._consumer_task = None
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.error(f"Background task failed during shutdown: {e}")
        self._cycle_tasks.clear()
        logger.info("Reminder engine stopped")

    # === Registry ===

    def get(self, message_id: str) -> Optional[TrackedMessage]:
        return self._records.get(message_id)

    def __contains__(self, message_id: str) -> bool:
        return message_id in self._records

    def __len__(self) -> int:
        return len(self._records)

    def status(self) -> List[Dict[str, Any]]:
        """Snapshot of every tracked record"""
        return [record.snapshot() for record in self._records.values()]

    # === Inbound operations ===

    def create(self, origin: OriginRef, recipients: Iterable[str]) -> TrackedMessage:
        """
        Start tracking a message with mentions.

        Args:
            origin: Reference to the original message
            recipients: Mentioned user ids, must not be empty

        Returns:
            The new (or already existing) TrackedMessage
        """
        recipient_set = frozenset(user_id for user_id in recipients if user_id)
        if not recipient_set:
            raise ValueError(f"No recipients for message {origin.message_id}")

        message_id = origin.message_id
        existing = self._records.get(message_id)
        if existing is not None:
            # Slack retries event delivery, so the same message can show up twice
            logger.warning(f"Message {message_id} is already tracked, ignoring duplicate")
            return existing

        record = TrackedMessage(origin=origin, recipients=recipient_set)
        self._records[message_id] = record
        logger.info(f"Tracking {message_id} for {len(recipient_set)} recipients: {sorted(recipient_set)}")

        try:
            self.tracker.watch(origin, recipient_set, self.acknowledge)
        except SubscriptionError as e:
            logger.warning(f"{e}. Reminders continue without acknowledgment tracking.")

        self._schedule(message_id, self.config.reminder_interval)
        return record

    def on_mention_everyone(self, origin: OriginRef, members: Iterable[Member],
                            self_id: Optional[str] = None,
                            excluding: Optional[Iterable[str]] = None) -> Optional[TrackedMessage]:
        """Resolve a broadcast mention to concrete recipients and track them"""
        excluded = {origin.author_id}
        if self_id:
            excluded.add(self_id)
        if excluding:
            excluded.update(excluding)

        recipients = {
            member.user_id for member in members
            if not member.is_bot and not member.deleted and member.user_id not in excluded
        }
        if not recipients:
            logger.info(f"Broadcast mention in {origin.message_id} resolved to nobody, not tracking")
            return None

        logger.info(f"Broadcast mention in {origin.message_id} resolved to {len(recipients)} recipients")
        return self.create(origin, recipients)

    def on_thread_created(self, thread: ThreadRef, origin_message_id: Optional[str] = None) -> bool:
        """Count recipient posts in a thread derived from a tracked message as acknowledgments"""
        message_id = origin_message_id or thread.origin_message_id
        record = self._records.get(message_id)
        if record is None:
            return False
        if record.thread_watched:
            return True

        try:
            self.tracker.watch_thread(thread, record.recipients, self.acknowledge)
            record.thread_watched = True
        except SubscriptionError as e:
            logger.warning(f"{e}. Thread posts will not count as acknowledgments.")
        return True

    def acknowledge(self, event: AcknowledgementEvent) -> None:
        """Queue an acknowledgment for the single consumer"""
        self._ack_queue.put_nowait(event)

    async def join_acknowledgements(self):
        """Wait until every queued acknowledgment has been applied"""
        if self._consumer_task is None or self._consumer_task.done():
            while not self._ack_queue.empty():
                event = self._ack_queue.get_nowait()
                try:
                    self._apply_acknowledgement(event)
                finally:
                    self._ack_queue.task_done()
            return
        await self._ack_queue.join()

    # === Reminder cycle ===

    async def cycle(self, message_id: str) -> None:
        """One check-and-send pass for a tracked message"""
        record = self._records.get(message_id)
        if record is None or record.state is RecordState.RETIRED:
            return

        now = self.quiet_hours.now()
        if self.quiet_hours.is_quiet(now):
            delay = self.quiet_hours.delay_until_end(now)
            resume_at = self.quiet_hours.window_end(now)
            logger.info(f"Quiet hours: delaying reminders for {message_id} until {resume_at.isoformat()}")
            self._schedule(message_id, delay)
            return

        record.cycles_run += 1
        max_reminders = self.config.max_reminders
        targets = []
        for user_id in record.pending_recipients():
            if record.attempt_count[user_id] < max_reminders:
                targets.append(user_id)
            else:
                logger.debug(f"Max reminders reached for {user_id} on {message_id}")

        if targets:
            # Render every payload first so a render fault aborts before any DM goes out
            payloads = {user_id: self._render(record, user_id) for user_id in targets}
            results = await asyncio.gather(
                *(self._remind(record, user_id, payload) for user_id, payload in payloads.items())
            )
            sent = sum(1 for delivered in results if delivered)
            logger.info(f"Cycle {record.cycles_run} for {message_id}: sent {sent}/{len(targets)} reminders")

        # The record may have been retired while deliveries were in flight
        if self._records.get(message_id) is not record:
            return

        if record.is_converged(max_reminders):
            self.retire(message_id)
        else:
            self._schedule(message_id, self.config.reminder_interval)

    def _render(self, record: TrackedMessage, user_id: str) -> NotificationPayload:
        origin = record.origin
        return self.renderer.render(
            origin.channel_name or origin.channel_id,
            origin.author_name or origin.author_id,
            origin.author_avatar_url,
            origin.content,
            origin.permalink,
            record.attempt_count[user_id] + 1,
            self.config.max_reminders
        )

    async def _remind(self, record: TrackedMessage, user_id: str, payload: NotificationPayload) -> bool:
        """Deliver one reminder; only a successful delivery consumes budget"""
        attempt = record.attempt_count[user_id] + 1
        try:
            await self.platform.deliver_direct_message(user_id, payload)
        except DeliveryError as e:
            logger.warning(f"{e} (reminder {attempt} for {record.message_id})")
            return False
        except Exception as e:
            logger.warning(f"Failed to deliver reminder {attempt} to {user_id}: {e}")
            return False

        record.attempt_count[user_id] = min(attempt, self.config.max_reminders)
        logger.info(f"Sent reminder {attempt} to {user_id} for {record.message_id}")
        return True

    # === Retirement ===

    def retire(self, message_id: str) -> bool:
        """Stop tracking a message. Idempotent; returns False if it was not tracked."""
        record = self._records.pop(message_id, None)
        if record is None:
            return False

        timer, record.pending_timer = record.pending_timer, None
        try:
            record.state = RecordState.RETIRED
            self.tracker.unwatch(message_id)
        except Exception as e:
            logger.warning(f"Failed to stop watching {message_id}: {e}")
        finally:
            if timer is not None:
                timer.cancel()

        logger.info(
            f"Retired {message_id}: acknowledged={sorted(record.acknowledged)} "
            f"attempts={record.attempt_count}"
        )
        return True

    # === Internals ===

    def _schedule(self, message_id: str, delay: float) -> None:
        """Replace the record's pending timer with one firing after delay seconds"""
        record = self._records.get(message_id)
        if record is None or record.state is RecordState.RETIRED:
            return
        if record.pending_timer is not None:
            record.pending_timer.cancel()
        loop = asyncio.get_running_loop()
        record.pending_timer = loop.call_later(delay, self._launch_cycle, message_id)

    def _launch_cycle(self, message_id: str) -> None:
        record = self._records.get(message_id)
        if record is None:
            return
        record.pending_timer = None
        task = asyncio.get_running_loop().create_task(self._run_cycle(message_id))
        self._cycle_tasks.add(task)
        task.add_done_callback(self._cycle_tasks.discard)

    async def _run_cycle(self, message_id: str) -> None:
        try:
            await self.cycle(message_id)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            asyncio.get_running_loop().call_exception_handler({
                "message": f"Reminder cycle failed for {message_id}, retiring it",
                "exception": e,
            })
            self.retire(message_id)

    def _apply_acknowledgement(self, event: AcknowledgementEvent) -> bool:
        record = self._records.get(event.message_id)
        if record is None or event.user_id not in record.recipients:
            return False
        if event.user_id in record.acknowledged:
            return False
        record.acknowledged.add(event.user_id)
        logger.info(f"{event.user_id} acknowledged {event.message_id} ({event.source})")
        return True

    async def _consume_acknowledgements(self):
        while True:
            event = await self._ack_queue.get()
            try:
                self._apply_acknowledgement(event)
            except Exception as e:
                logger.error(f"Failed to apply acknowledgment {event}: {e}")
            finally:
                self._ack_queue.task_done()
