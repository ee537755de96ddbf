"""
Slack Interface Tests

Drives the Slack event handlers with a mocked Slack client:
- Direct and broadcast mentions start tracking
- Reactions, pasted message links and thread posts acknowledge
- Bot traffic is ignored
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

from helpers import AsyncPages
from interfaces.slack.core_slack_orchestration import SlackInterface
from reminders.config import ReminderConfig

CHANNEL = "C0DEPLOYS"
TS = "1760000000.000100"
MESSAGE_ID = f"{CHANNEL}:{TS}"
BOT_USER_ID = "UREMINDER"

USERS = {
    "UAUTHOR": {"id": "UAUTHOR", "name": "alice", "profile": {"display_name": "Alice", "image_72": "https://avatars.slack-edge.com/alice_72.png"}},
    "UBOB": {"id": "UBOB", "name": "bob", "profile": {"display_name": "Bob"}},
    "UCAROL": {"id": "UCAROL", "name": "carol", "profile": {"display_name": "Carol"}},
    "UDEPLOYBOT": {"id": "UDEPLOYBOT", "name": "deploybot", "is_bot": True, "profile": {}},
    "UGONE": {"id": "UGONE", "name": "gone", "deleted": True, "profile": {}},
    BOT_USER_ID: {"id": BOT_USER_ID, "name": "reminder", "is_bot": True, "profile": {}},
}


def make_interface():
    client = AsyncMock()
    client.users_info.side_effect = lambda user: {"ok": True, "user": USERS.get(user, {"id": user, "profile": {}})}
    client.conversations_info.return_value = {"ok": True, "channel": {"id": CHANNEL, "name": "deploys"}}
    client.chat_getPermalink.return_value = {"ok": True, "permalink": f"https://acme.slack.com/archives/{CHANNEL}/p1760000000000100"}

    app = MagicMock()
    app.client = client

    config = ReminderConfig(reminder_interval_ms=60000, max_reminders=3, quiet_hours_enabled=False)
    interface = SlackInterface(app=app, config=config)
    interface.bot_user_id = BOT_USER_ID
    return interface, client


def mention_event(text, user="UAUTHOR", ts=TS, **extra):
    event = {"type": "message", "channel": CHANNEL, "user": user, "text": text, "ts": ts, "team": "T0ACME"}
    event.update(extra)
    return event


def test_direct_mention_starts_tracking():
    async def scenario():
        interface, _ = make_interface()
        await interface._handle_message(mention_event("<@UBOB> <@UCAROL|carol> can you review?"))

        record = interface.engine.get(MESSAGE_ID)
        assert record is not None
        assert record.recipients == frozenset({"UBOB", "UCAROL"})
        assert record.origin.author_name == "Alice"
        assert record.origin.author_avatar_url.endswith("alice_72.png")
        assert record.origin.channel_name == "deploys"
        assert record.origin.permalink.startswith("https://acme.slack.com/archives/")

        await interface.engine.stop()

    asyncio.run(scenario())


def test_author_bots_and_deleted_users_are_not_recipients():
    async def scenario():
        interface, _ = make_interface()
        text = f"<@UAUTHOR> <@UDEPLOYBOT> <@UGONE> <@{BOT_USER_ID}> ping"
        await interface._handle_message(mention_event(text))
        assert len(interface.engine) == 0

        await interface._handle_message(mention_event("<@UDEPLOYBOT> <@UBOB>", ts="1760000001.000100"))
        record = interface.engine.get(f"{CHANNEL}:1760000001.000100")
        assert record.recipients == frozenset({"UBOB"})

        await interface.engine.stop()

    asyncio.run(scenario())


def test_bot_messages_are_ignored():
    async def scenario():
        interface, client = make_interface()
        await interface._handle_message(mention_event("<@UBOB> deploy finished", bot_id="B0DEPLOY"))
        await interface._handle_message(mention_event("<@UBOB> joined", subtype="channel_join"))

        assert len(interface.engine) == 0
        client.users_info.assert_not_awaited()

        await interface.engine.stop()

    asyncio.run(scenario())


def test_reaction_acknowledges():
    async def scenario():
        interface, _ = make_interface()
        await interface._handle_message(mention_event("<@UBOB> <@UCAROL> review please"))

        interface._handle_reaction({"user": "UBOB", "reaction": "eyes", "item": {"type": "message", "channel": CHANNEL, "ts": TS}})
        # Reactions on files or from non-recipients do nothing
        interface._handle_reaction({"user": "UCAROL", "item": {"type": "file", "file": "F1"}})
        interface._handle_reaction({"user": "UDAVE", "item": {"type": "message", "channel": CHANNEL, "ts": TS}})
        await interface.engine.join_acknowledgements()

        assert interface.engine.get(MESSAGE_ID).acknowledged == {"UBOB"}

        await interface.engine.stop()

    asyncio.run(scenario())


def test_thread_post_opens_thread_and_acknowledges():
    async def scenario():
        interface, _ = make_interface()
        await interface._handle_message(mention_event("<@UBOB> <@UCAROL> review please"))

        await interface._handle_message(mention_event("on it", user="UCAROL", ts="1760000050.000200", thread_ts=TS))
        await interface._handle_message(mention_event("same", user="UBOB", ts="1760000051.000200", thread_ts=TS))
        await interface.engine.join_acknowledgements()

        # reactions + replies + thread, the thread is only watched once
        assert len(interface.engine.tracker.active_subscriptions(MESSAGE_ID)) == 3
        assert interface.engine.get(MESSAGE_ID).acknowledged == {"UBOB", "UCAROL"}

        await interface.engine.stop()

    asyncio.run(scenario())


def test_retired_threaded_record_leaves_nothing_behind():
    async def scenario():
        interface, _ = make_interface()
        await interface._handle_message(mention_event("<@UBOB> <@UCAROL> review please"))
        await interface._handle_message(mention_event("looking", user="UCAROL", ts="1760000050.000200", thread_ts=TS))

        assert interface.engine.retire(MESSAGE_ID)
        assert len(interface.engine) == 0
        assert interface.engine.tracker.active_subscriptions(MESSAGE_ID) == []
        assert len(interface.platform.hub) == 0

        # Later posts in the old thread are just ignored
        await interface._handle_message(mention_event("late", user="UBOB", ts="1760000090.000200", thread_ts=TS))
        assert len(interface.platform.hub) == 0

        await interface.engine.stop()

    asyncio.run(scenario())


def test_pasted_message_link_counts_as_reply():
    async def scenario():
        interface, _ = make_interface()
        await interface._handle_message(mention_event("<@UBOB> <@UCAROL> review please"))

        unfurl = {"is_msg_unfurl": True, "channel_id": CHANNEL, "ts": TS, "text": "review please"}
        await interface._handle_message({
            "type": "message", "channel": "C0OTHER", "user": "UBOB",
            "text": "answered here", "ts": "1760000070.000100", "attachments": [unfurl],
        })
        # Unfurls usually arrive later as an edit of the message
        await interface._handle_message({
            "type": "message", "subtype": "message_changed", "channel": "C0OTHER",
            "message": {"user": "UCAROL", "text": "me too", "ts": "1760000071.000100", "attachments": [unfurl]},
        })
        await interface.engine.join_acknowledgements()

        assert interface.engine.get(MESSAGE_ID).acknowledged == {"UBOB", "UCAROL"}

        await interface.engine.stop()

    asyncio.run(scenario())


def test_channel_broadcast_reaches_human_members():
    async def scenario():
        interface, client = make_interface()
        humans = [f"UHUMAN{i}" for i in range(8)]
        member_ids = ["UAUTHOR", BOT_USER_ID] + humans
        directory = [USERS["UAUTHOR"], USERS[BOT_USER_ID]] + [{"id": u, "profile": {}} for u in humans]
        client.conversations_members.return_value = AsyncPages({"members": member_ids[:5]}, {"members": member_ids[5:]})
        client.users_list.return_value = AsyncPages({"members": directory})

        await interface._handle_message(mention_event("<!channel> release freeze starts now"))

        record = interface.engine.get(MESSAGE_ID)
        assert record.recipients == frozenset(humans)
        client.conversations_members.assert_awaited_once_with(channel=CHANNEL, limit=1000)

        await interface.engine.stop()

    asyncio.run(scenario())


def test_broadcast_without_humans_is_not_tracked():
    async def scenario():
        interface, client = make_interface()
        client.conversations_members.return_value = AsyncPages({"members": ["UAUTHOR", BOT_USER_ID, "UDEPLOYBOT"]})
        client.users_list.return_value = AsyncPages({"members": list(USERS.values())})

        await interface._handle_message(mention_event("<!here> anyone?"))
        assert len(interface.engine) == 0

        await interface.engine.stop()

    asyncio.run(scenario())
