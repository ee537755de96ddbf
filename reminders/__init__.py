"""
Mention Reminder Engine

Nags mentioned users until they acknowledge a message:
- Per-message tracking records with bounded reminders per recipient
- Quiet hours deferral in a fixed reference time zone
- Acknowledgment tracking through reactions, replies and thread posts
"""

from .config import ReminderConfig, load_config_from_yaml
from .engine import ReminderEngine
from .models import AcknowledgementEvent, Member, OriginRef, ThreadRef, TrackedMessage
from .renderer import ReminderRenderer
from .tracker import AcknowledgmentTracker

__all__ = [
    'ReminderConfig', 'load_config_from_yaml', 'ReminderEngine', 'AcknowledgementEvent',
    'Member', 'OriginRef', 'ThreadRef', 'TrackedMessage', 'ReminderRenderer', 'AcknowledgmentTracker'
]
