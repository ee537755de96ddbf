"""
Reminder Notification Renderer

Builds the Block Kit payload for a reminder direct message. Pure formatting,
no Slack calls.
"""

from typing import Any, Dict, List

from .models import NotificationPayload

# Slack rejects section text longer than 3000 characters
SECTION_TEXT_LIMIT = 3000


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit - 1] + "…"


def _quote(content: str) -> str:
    lines = content.strip().split('\n') or [""]
    return '\n'.join(f"> {line}" for line in lines)


class ReminderRenderer:
    """Render reminder notifications as Slack Block Kit"""

    @staticmethod
    def render(channel_name: str, sender_name: str, sender_avatar_url: str, content: str,
               link: str, attempt_number: int, max_attempts: int) -> NotificationPayload:
        """
        Render one reminder.

        Args:
            channel_name: Name of the channel the original message was posted in
            sender_name: Display name of the person who mentioned the recipient
            sender_avatar_url: Avatar image of that person
            content: Original message text
            link: Permalink to the original message
            attempt_number: 1-based number of this reminder
            max_attempts: Reminder budget per recipient

        Returns:
            NotificationPayload with fallback text and blocks
        """
        values = {
            "channel_name": channel_name,
            "sender_name": sender_name,
            "sender_avatar_url": sender_avatar_url,
            "content": content,
            "link": link,
            "attempt_number": attempt_number,
            "max_attempts": max_attempts,
        }
        missing = [name for name, value in values.items() if value is None]
        if missing:
            raise ValueError(f"Missing reminder fields: {', '.join(missing)}")
        if max_attempts < 1 or not 1 <= attempt_number <= max_attempts:
            raise ValueError(f"Invalid reminder attempt {attempt_number} of {max_attempts}")

        context_elements: List[Dict[str, Any]] = []
        if sender_avatar_url:
            context_elements.append({
                "type": "image",
                "image_url": sender_avatar_url,
                "alt_text": sender_name or "sender"
            })
        context_elements.append({
            "type": "mrkdwn",
            "text": f"*{sender_name or 'Someone'}* mentioned you"
        })

        quoted = _truncate(_quote(content), SECTION_TEXT_LIMIT) if content.strip() else "_(no text)_"

        blocks = [
            {
                "type": "header",
                "text": {"type": "plain_text", "text": "❗ You have yet to respond", "emoji": True}
            },
            {"type": "context", "elements": context_elements},
            {
                "type": "section",
                "fields": [
                    {"type": "mrkdwn", "text": f"*Channel:*\n#{channel_name}"},
                    {"type": "mrkdwn", "text": f"*Link to message:*\n<{link}|Click here to view the message>"}
                ]
            },
            {
                "type": "section",
                "text": {"type": "mrkdwn", "text": quoted}
            },
            {
                "type": "section",
                "text": {
                    "type": "mrkdwn",
                    "text": "Please react, reply or post in the thread to stop receiving reminders."
                }
            },
            {
                "type": "context",
                "elements": [{"type": "mrkdwn", "text": f"Reminder {attempt_number} of {max_attempts}"}]
            }
        ]

        text = (
            f"Reminder {attempt_number} of {max_attempts}: "
            f"{sender_name or 'Someone'} mentioned you in #{channel_name} {link}"
        )
        return NotificationPayload(text=text, blocks=blocks)


def render(channel_name: str, sender_name: str, sender_avatar_url: str, content: str,
           link: str, attempt_number: int, max_attempts: int) -> NotificationPayload:
    return ReminderRenderer.render(
        channel_name, sender_name, sender_avatar_url, content, link, attempt_number, max_attempts
    )
