from unittest.mock import MagicMock

import pytest

from helpers import make_origin
from interfaces.slack.platform import SlackPlatform
from reminders.errors import SubscriptionError
from reminders.models import PlatformEvent, ThreadRef
from reminders.tracker import AcknowledgmentTracker
from runtime.subscriptions import SubscriptionHub


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def make_tracker(ttl=None, clock=None):
    hub = SubscriptionHub(clock=clock) if clock else SubscriptionHub()
    platform = SlackPlatform(MagicMock(), hub=hub)
    return AcknowledgmentTracker(platform, ttl=ttl), platform


def test_reactions_from_recipients_emit_acknowledgments():
    tracker, platform = make_tracker()
    origin = make_origin()
    received = []
    tracker.watch(origin, {"UA", "UB"}, received.append)

    platform.publish(PlatformEvent("reaction", origin.channel_id, "UA", origin.ts))
    platform.publish(PlatformEvent("reaction", origin.channel_id, "UOTHER", origin.ts))
    platform.publish(PlatformEvent("reaction", origin.channel_id, "UB", "1760000099.000000"))

    assert [(e.message_id, e.user_id, e.source) for e in received] == [(origin.message_id, "UA", "reaction")]


def test_replies_must_reference_the_origin():
    tracker, platform = make_tracker()
    origin = make_origin()
    received = []
    tracker.watch(origin, {"UA"}, received.append)

    platform.publish(PlatformEvent("reply", origin.channel_id, "UA", origin.ts, ts="1760000001.000001"))
    platform.publish(PlatformEvent("reply", "C0OTHER", "UA", origin.ts, ts="1760000001.000002"))

    assert [(e.user_id, e.source) for e in received] == [("UA", "reply")]


def test_each_qualifying_event_is_emitted():
    tracker, platform = make_tracker()
    origin = make_origin()
    received = []
    tracker.watch(origin, {"UA"}, received.append)

    platform.publish(PlatformEvent("reaction", origin.channel_id, "UA", origin.ts))
    platform.publish(PlatformEvent("reaction", origin.channel_id, "UA", origin.ts))
    assert len(received) == 2


def test_watch_thread_filters_to_recipients():
    tracker, platform = make_tracker()
    origin = make_origin()
    received = []
    thread = ThreadRef(origin.channel_id, origin.ts, origin.message_id)
    tracker.watch_thread(thread, {"UA"}, received.append)

    platform.publish(PlatformEvent("thread_message", origin.channel_id, "UA", origin.ts))
    platform.publish(PlatformEvent("thread_message", origin.channel_id, "UZ", origin.ts))

    assert [(e.user_id, e.source) for e in received] == [("UA", "thread")]


def test_unwatch_cancels_everything_and_is_repeatable():
    tracker, platform = make_tracker()
    origin = make_origin()
    received = []
    tracker.watch(origin, {"UA"}, received.append)
    tracker.watch_thread(ThreadRef(origin.channel_id, origin.ts, origin.message_id), {"UA"}, received.append)
    assert len(tracker.active_subscriptions(origin.message_id)) == 3

    assert tracker.unwatch(origin) == 3
    assert tracker.unwatch(origin.message_id) == 0
    assert len(platform.hub) == 0

    platform.publish(PlatformEvent("reaction", origin.channel_id, "UA", origin.ts))
    assert received == []


def test_unwatch_after_subscriptions_expired():
    clock = FakeClock()
    tracker, platform = make_tracker(ttl=60, clock=clock)
    origin = make_origin()
    received = []
    tracker.watch(origin, {"UA"}, received.append)

    clock.now += 61
    assert platform.publish(PlatformEvent("reaction", origin.channel_id, "UA", origin.ts)) == 0
    assert received == []

    # The reaction subscription lapsed on its own, only the reply one is left
    assert tracker.unwatch(origin) == 1


def test_subscription_failure_raises_subscription_error():
    platform = MagicMock()
    platform.subscribe_reactions.side_effect = RuntimeError("message_not_found")
    tracker = AcknowledgmentTracker(platform)

    with pytest.raises(SubscriptionError) as excinfo:
        tracker.watch(make_origin(), {"UA"}, lambda event: None)
    assert "message_not_found" in str(excinfo.value)
