"""
Slack Integration Module

Slack side of the mention reminder bot:
- Message, reaction and thread event routing
- Mention and broadcast resolution
- Reminder delivery as direct messages
"""

from .core_slack_orchestration import SlackInterface, create_slack_app

__all__ = ['SlackInterface', 'create_slack_app']
