"""
Slack Event Orchestration

Routes Slack events into the reminder engine:
- Messages with user or broadcast mentions start tracking
- Reactions, linked messages and thread posts become acknowledgments
"""

import os
import logging
from typing import Any, Dict, Optional

from slack_bolt.async_app import AsyncApp
from slack_bolt.adapter.fastapi.async_handler import AsyncSlackRequestHandler

from reminders.config import ReminderConfig, load_config_from_yaml
from reminders.engine import ReminderEngine
from reminders.models import PlatformEvent, ThreadRef, make_message_id
from runtime.rate_limit_handler import RateLimitConfig, RateLimitHandler

from .formatters.mention_resolver import SlackMentionResolver
from .platform import SlackPlatform
from .services.cache_service import SlackCacheService
from .services.user_service import SlackUserService

logger = logging.getLogger(__name__)

# Message subtypes that are real user posts
USER_MESSAGE_SUBTYPES = {None, "thread_broadcast", "file_share", "me_message"}


class SlackInterface:
    """
    Slack front end of the reminder bot - mentions in, reminder DMs out
    """

    def __init__(self, app: Optional[AsyncApp] = None, config: Optional[ReminderConfig] = None,
                 engine: Optional[ReminderEngine] = None):
        # Initialize Slack app
        self.app = app or AsyncApp(
            token=os.environ.get("SLACK_BOT_TOKEN"),
            signing_secret=os.environ.get("SLACK_SIGNING_SECRET")
        )
        self.config = config or load_config_from_yaml()

        # Initialize modular services
        self.cache_service = SlackCacheService()
        self.user_service = SlackUserService(self.app.client, self.cache_service)
        self.mention_resolver = SlackMentionResolver()
        self.platform = SlackPlatform(
            self.app.client,
            rate_limiter=RateLimitHandler(RateLimitConfig(max_retries=self.config.delivery_max_retries))
        )
        self.engine = engine or ReminderEngine(self.platform, self.config)

        self.bot_user_id: Optional[str] = None

        # Setup handlers
        self._setup_handlers()

        # Create FastAPI handler
        self.handler = AsyncSlackRequestHandler(self.app)

    async def start(self):
        """Resolve our own identity and start the engine"""
        await self.engine.start()
        self.cache_service.ensure_cleanup_task_started()
        try:
            auth = await self.app.client.auth_test()
            self.bot_user_id = auth.get("user_id")
            logger.info(f"Reminder bot running as {self.bot_user_id}")
        except Exception as e:
            logger.warning(f"auth.test failed, own identity unknown: {e}")

    async def stop(self):
        await self.engine.stop()
        await self.cache_service.stop()
        self.platform.hub.close()

    def _setup_handlers(self):
        """Setup Slack event handlers"""

        @self.app.event("message")
        async def handle_message(event, logger):
            await self._handle_message(event)

        @self.app.event("reaction_added")
        async def handle_reaction_added(event, logger):
            self._handle_reaction(event)

        @self.app.event("app_mention")
        async def handle_app_mention(event, logger):
            # The same post also arrives as a message event, which does the work
            logger.debug(f"app_mention in {event.get('channel')}")

    def _handle_reaction(self, event: Dict[str, Any]):
        item = event.get("item", {})
        if item.get("type") != "message" or not event.get("user"):
            return
        self.platform.publish(PlatformEvent(
            kind="reaction",
            channel_id=item.get("channel"),
            user_id=event["user"],
            target_ts=item.get("ts"),
        ))

    async def _handle_message(self, event: Dict[str, Any]):
        """Route one message event to acknowledgments and new reminders"""
        subtype = event.get("subtype")
        if subtype == "message_changed":
            # Link unfurls are attached to the message after it was posted
            message = dict(event.get("message") or {})
            message.setdefault("channel", event.get("channel"))
            self._publish_references(message)
            return

        # Skip bot messages and housekeeping subtypes
        if event.get("bot_id") or subtype not in USER_MESSAGE_SUBTYPES:
            return

        user_id = event.get("user")
        channel_id = event.get("channel")
        ts = event.get("ts")
        if not user_id or not channel_id or not ts:
            return

        thread_ts = event.get("thread_ts")
        if thread_ts and thread_ts != ts:
            self._handle_thread_post(channel_id, thread_ts, user_id, ts)

        self._publish_references(event)

        try:
            await self._track_mentions(event)
        except Exception as e:
            logger.error(f"Error handling mentions in {channel_id}/{ts}: {e}")

    def _handle_thread_post(self, channel_id: str, thread_ts: str, user_id: str, ts: str):
        parent_id = make_message_id(channel_id, thread_ts)
        if parent_id in self.engine:
            # The engine watches a tracked message's thread once, on its first reply
            self.engine.on_thread_created(ThreadRef(channel_id, thread_ts, parent_id), parent_id)

        self.platform.publish(PlatformEvent(
            kind="thread_message",
            channel_id=channel_id,
            user_id=user_id,
            target_ts=thread_ts,
            ts=ts,
        ))

    def _publish_references(self, event: Dict[str, Any]):
        user_id = event.get("user")
        if not user_id:
            return
        for channel_id, target_ts in self.mention_resolver.extract_message_references(event):
            self.platform.publish(PlatformEvent(
                kind="reply",
                channel_id=channel_id,
                user_id=user_id,
                target_ts=target_ts,
                ts=event.get("ts", ""),
            ))

    async def _track_mentions(self, event: Dict[str, Any]):
        text = event.get("text", "")
        author_id = event.get("user")
        broadcast = self.mention_resolver.extract_broadcast(text)

        if broadcast:
            logger.info(f"@{broadcast} was mentioned in {event.get('channel')}")
            origin = await self.user_service.build_origin(event)
            if broadcast == "everyone":
                members = await self.user_service.list_workspace_members()
            else:
                members = await self.user_service.list_channel_members(origin.channel_id)
            self.engine.on_mention_everyone(origin, members, self_id=self.bot_user_id)
            return

        exclude = [author_id] + ([self.bot_user_id] if self.bot_user_id else [])
        mentioned = []
        for user_id in self.mention_resolver.extract_user_mentions(text, exclude=exclude):
            profile = await self.user_service.get_user_profile(user_id)
            # Bots and deactivated users can never acknowledge
            if profile["is_bot"] or profile["deleted"]:
                continue
            mentioned.append(user_id)
        if not mentioned:
            return

        logger.info(f"Mentioned users: {', '.join(mentioned)}")
        origin = await self.user_service.build_origin(event)
        self.engine.create(origin, mentioned)

    def get_fastapi_handler(self):
        """Get FastAPI handler for webhook integration"""
        return self.handler


# For FastAPI integration
def create_slack_app(config: Optional[ReminderConfig] = None) -> SlackInterface:
    """Create the Slack interface for FastAPI"""
    return SlackInterface(config=config)
