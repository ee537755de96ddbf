"""
Slack User Service

Resolves the Slack facts the reminder engine needs about a message:
- Author display name and avatar
- Channel name and permalink
- Workspace and channel member lists for broadcast mentions
"""

import logging
from typing import Any, Dict, List, Optional

from reminders.models import Member, OriginRef

logger = logging.getLogger(__name__)


def fallback_permalink(channel_id: str, ts: str, team_domain: Optional[str] = None) -> str:
    """Build a message link without calling chat.getPermalink"""
    host = f"https://{team_domain}.slack.com" if team_domain else "https://slack.com"
    return f"{host}/archives/{channel_id}/p{ts.replace('.', '')}"


class SlackUserService:
    """Service for Slack user, channel and member lookups"""

    def __init__(self, slack_client=None, cache_service=None):
        self.slack_client = slack_client
        self.cache_service = cache_service

    async def get_user_profile(self, user_id: str) -> Dict[str, Any]:
        """
        Get display name, avatar and bot flag for a user

        Uses the cache first, then users.info. Falls back to the bare id.
        """
        if self.cache_service:
            cached = self.cache_service.get_user(user_id)
            if cached:
                return cached

        if not self.slack_client:
            logger.error("Slack client not set - cannot fetch user info")
            return self._get_default_profile(user_id)

        try:
            response = await self.slack_client.users_info(user=user_id)
            if not response["ok"]:
                logger.error(f"Slack API error for user {user_id}: {response.get('error')}")
                return self._get_default_profile(user_id)

            profile = self._profile_from_user(response["user"])
            if self.cache_service:
                self.cache_service.store_user(user_id, profile)
            return profile

        except Exception as e:
            logger.error(f"Error getting user info for {user_id}: {e}")
            return self._get_default_profile(user_id)

    async def get_channel_name(self, channel_id: str) -> str:
        if self.cache_service:
            cached = self.cache_service.get_channel_name(channel_id)
            if cached:
                return cached

        try:
            channel_info = await self.slack_client.conversations_info(channel=channel_id)
            if channel_info.get("ok"):
                name = channel_info.get("channel", {}).get("name", channel_id)
                if self.cache_service:
                    self.cache_service.store_channel_name(channel_id, name)
                return name
            logger.warning(f"Failed to get channel info for {channel_id}: {channel_info.get('error')}")
        except Exception as e:
            logger.error(f"Error resolving channel {channel_id}: {e}")
        return channel_id

    async def get_permalink(self, channel_id: str, ts: str) -> str:
        try:
            response = await self.slack_client.chat_getPermalink(channel=channel_id, message_ts=ts)
            if response.get("ok") and response.get("permalink"):
                return response["permalink"]
            logger.warning(f"chat.getPermalink failed for {channel_id}/{ts}: {response.get('error')}")
        except Exception as e:
            logger.warning(f"Error getting permalink for {channel_id}/{ts}: {e}")
        return fallback_permalink(channel_id, ts)

    async def build_origin(self, event: Dict[str, Any]) -> OriginRef:
        """Collect everything the reminders need to describe the original message"""
        channel_id = event["channel"]
        ts = event["ts"]
        author_id = event.get("user", "")

        profile = await self.get_user_profile(author_id)
        channel_name = await self.get_channel_name(channel_id)
        permalink = await self.get_permalink(channel_id, ts)

        return OriginRef(
            channel_id=channel_id,
            ts=ts,
            author_id=author_id,
            content=event.get("text", ""),
            permalink=permalink,
            channel_name=channel_name,
            team_id=event.get("team", ""),
            author_name=profile["display_name"],
            author_avatar_url=profile["avatar_url"],
        )

    # === Members ===

    async def list_workspace_members(self) -> List[Member]:
        """Every member of the workspace, used for @everyone"""
        directory = self.cache_service.get_directory() if self.cache_service else None
        if directory is None:
            directory = []
            async for page in await self.slack_client.users_list(limit=1000):
                for user in page.get("members", []):
                    directory.append({
                        "id": user.get("id"),
                        "is_bot": bool(user.get("is_bot")) or user.get("id") == "USLACKBOT",
                        "deleted": bool(user.get("deleted")),
                    })
                    if self.cache_service:
                        self.cache_service.store_user(user.get("id"), self._profile_from_user(user))
            if self.cache_service:
                self.cache_service.store_directory(directory)
            logger.info(f"Member directory populated with {len(directory)} users.")

        return [Member(user_id=u["id"], is_bot=u["is_bot"], deleted=u["deleted"]) for u in directory if u.get("id")]

    async def list_channel_members(self, channel_id: str) -> List[Member]:
        """Members of one channel, used for @channel and @here"""
        member_ids = []
        async for page in await self.slack_client.conversations_members(channel=channel_id, limit=1000):
            member_ids.extend(page.get("members", []))

        directory = {m.user_id: m for m in await self.list_workspace_members()}
        members = []
        for user_id in member_ids:
            member = directory.get(user_id)
            if member is None:
                profile = await self.get_user_profile(user_id)
                member = Member(user_id=user_id, is_bot=profile["is_bot"], deleted=profile["deleted"])
            members.append(member)
        logger.info(f"Channel {channel_id} has {len(members)} members")
        return members

    @staticmethod
    def _profile_from_user(user: Dict[str, Any]) -> Dict[str, Any]:
        profile = user.get("profile", {})
        return {
            "display_name": (profile.get("display_name") or user.get("real_name")
                             or profile.get("real_name") or user.get("name") or user.get("id", "")),
            "avatar_url": profile.get("image_72") or profile.get("image_48") or "",
            "is_bot": bool(user.get("is_bot")),
            "deleted": bool(user.get("deleted")),
        }

    def _get_default_profile(self, user_id: str) -> Dict[str, Any]:
        """Profile used when Slack lookups fail"""
        return {
            "display_name": user_id,
            "avatar_url": "",
            "is_bot": False,
            "deleted": False,
        }
