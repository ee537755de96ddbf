import asyncio
import time
from unittest.mock import AsyncMock

from interfaces.slack.formatters.mention_resolver import SlackMentionResolver
from interfaces.slack.services.cache_service import SlackCacheService
from interfaces.slack.services.user_service import SlackUserService, fallback_permalink


def test_mentions_are_unique_and_ordered():
    text = "<@UBOB> and <@W0CAROL|carol>, also <@UBOB> again. cc <@UAUTHOR>"
    assert SlackMentionResolver.extract_user_mentions(text, exclude=["UAUTHOR"]) == ["UBOB", "W0CAROL"]
    assert SlackMentionResolver.extract_user_mentions("") == []


def test_everyone_wins_over_other_broadcasts():
    assert SlackMentionResolver.extract_broadcast("<!here> and <!everyone>") == "everyone"
    assert SlackMentionResolver.extract_broadcast("<!channel|@channel> heads up") == "channel"
    assert SlackMentionResolver.extract_broadcast("<@UBOB> hi") is None


def test_message_references_come_from_unfurls():
    event = {"attachments": [
        {"is_msg_unfurl": True, "channel_id": "C1", "ts": "1.2"},
        {"is_share": True, "channel_id": "C2", "ts": "3.4"},
        {"title": "just a link", "channel_id": "C3", "ts": "5.6"},
    ]}
    assert SlackMentionResolver.extract_message_references(event) == [("C1", "1.2"), ("C2", "3.4")]


def test_fallback_permalink():
    assert fallback_permalink("C0DEPLOYS", "1760000000.000100") == "https://slack.com/archives/C0DEPLOYS/p1760000000000100"
    assert fallback_permalink("C1", "1.5", team_domain="acme") == "https://acme.slack.com/archives/C1/p15"


def test_permalink_falls_back_when_slack_fails():
    async def scenario():
        client = AsyncMock()
        client.chat_getPermalink.side_effect = RuntimeError("timeout")
        service = SlackUserService(client)
        assert await service.get_permalink("C1", "1.5") == "https://slack.com/archives/C1/p15"

    asyncio.run(scenario())


def test_user_profiles_are_cached():
    async def scenario():
        client = AsyncMock()
        client.users_info.return_value = {"ok": True, "user": {
            "id": "UBOB", "real_name": "Bob Builder", "profile": {"display_name": "", "image_72": "https://a/b.png"}
        }}
        service = SlackUserService(client, SlackCacheService())

        first = await service.get_user_profile("UBOB")
        second = await service.get_user_profile("UBOB")

        assert first == second
        assert first["display_name"] == "Bob Builder"
        assert first["avatar_url"] == "https://a/b.png"
        client.users_info.assert_awaited_once_with(user="UBOB")

    asyncio.run(scenario())


def test_failed_profile_lookup_uses_user_id():
    async def scenario():
        client = AsyncMock()
        client.users_info.return_value = {"ok": False, "error": "user_not_found"}
        profile = await SlackUserService(client).get_user_profile("UGHOST")
        assert profile["display_name"] == "UGHOST"
        assert profile["is_bot"] is False

    asyncio.run(scenario())


def test_cache_cleanup_drops_stale_entries():
    cache = SlackCacheService(cache_ttl=60)
    cache.store_user("UBOB", {"display_name": "Bob"})
    cache.store_channel_name("C1", "deploys")
    cache.store_directory([{"id": "UBOB", "is_bot": False, "deleted": False}])
    cache.user_cache["UOLD"] = (time.time() - 120, {"display_name": "Old"})

    assert cache.get_user("UOLD") is None
    assert cache.cleanup_expired() == 1
    assert cache.get_cache_stats() == {
        "user_cache_count": 1,
        "channel_cache_count": 1,
        "directory_cached": True,
        "cache_ttl": 60,
    }
