"""
Slack Mention Resolver

Extracts who a Slack message mentions from its raw text:
- <@U123> and <@U123|name> user mentions
- <!everyone>, <!channel> and <!here> broadcast mentions
- Message references made by pasting a link to another message
"""

import re
import logging
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

# Slack user ids do not always start with U (W for enterprise grid users)
USER_MENTION_PATTERN = re.compile(r'<@([A-Z0-9]+)(?:\|[^>]+)?>')
BROADCAST_PATTERN = re.compile(r'<!(everyone|channel|here)(?:\|[^>]+)?>')


class SlackMentionResolver:
    """Parses mentions and message references out of Slack events"""

    @staticmethod
    def extract_user_mentions(text: str, exclude: Optional[List[str]] = None) -> List[str]:
        """Unique mentioned user ids, in order of first appearance"""
        excluded = set(exclude or [])
        seen = []
        for user_id in USER_MENTION_PATTERN.findall(text or ""):
            if user_id not in excluded and user_id not in seen:
                seen.append(user_id)
        return seen

    @staticmethod
    def extract_broadcast(text: str) -> Optional[str]:
        """Return "everyone", "channel" or "here" if the text has a broadcast mention"""
        matches = BROADCAST_PATTERN.findall(text or "")
        if not matches:
            return None
        # @everyone reaches the most people, so it wins over the others
        if "everyone" in matches:
            return "everyone"
        return matches[0]

    @staticmethod
    def extract_message_references(event: Dict[str, Any]) -> List[Tuple[str, str]]:
        """
        (channel_id, ts) pairs of messages this event references.

        Slack unfurls a pasted message link into an attachment carrying the
        referenced channel and ts.
        """
        references = []
        for attachment in event.get("attachments") or []:
            if not (attachment.get("is_msg_unfurl") or attachment.get("is_share")):
                continue
            channel_id = attachment.get("channel_id")
            ts = attachment.get("ts")
            if channel_id and ts:
                references.append((channel_id, str(ts)))
        if references:
            logger.debug(f"Message references found: {references}")
        return references
