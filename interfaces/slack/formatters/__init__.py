"""
Slack Content Formatters

Handles reading Slack's encoded message content:
- User and broadcast mention extraction
- Message references from link unfurls
"""

from .mention_resolver import SlackMentionResolver

__all__ = ['SlackMentionResolver']
