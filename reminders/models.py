"""
Reminder Data Model

Records shared by the engine, the acknowledgment tracker and the platform adapter.
"""

import time
from enum import Enum
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Optional, Set


def make_message_id(channel_id: str, ts: str) -> str:
    """Slack timestamps are only unique per channel, so key messages by both"""
    return f"{channel_id}:{ts}"


class RecordState(str, Enum):
    ACTIVE = "active"
    RETIRED = "retired"


@dataclass(frozen=True)
class OriginRef:
    """Everything needed to re-derive the original message with mentions"""
    channel_id: str
    ts: str
    author_id: str
    content: str
    permalink: str
    channel_name: str = ""
    team_id: str = ""
    author_name: str = ""
    author_avatar_url: str = ""

    @property
    def message_id(self) -> str:
        return make_message_id(self.channel_id, self.ts)


@dataclass(frozen=True)
class ThreadRef:
    """A discussion thread derived from a tracked message"""
    channel_id: str
    thread_ts: str
    origin_message_id: str


@dataclass(frozen=True)
class Member:
    """A workspace or channel member considered for broadcast mentions"""
    user_id: str
    is_bot: bool = False
    deleted: bool = False


@dataclass(frozen=True)
class PlatformEvent:
    """
    Normalized raw platform notification

    kind is one of "reaction", "reply" or "thread_message". target_ts is the
    message reacted to, the message replied to, or the thread parent.
    """
    kind: str
    channel_id: str
    user_id: str
    target_ts: str
    ts: str = ""


@dataclass(frozen=True)
class AcknowledgementEvent:
    """Immutable record that a recipient responded to a tracked message"""
    message_id: str
    user_id: str
    source: str
    observed_at: float = field(default_factory=time.time)


@dataclass(frozen=True)
class NotificationPayload:
    """Opaque direct-message payload: fallback text plus Block Kit blocks"""
    text: str
    blocks: List[Dict[str, Any]]


@dataclass
class TrackedMessage:
    """Per-message reminder state, owned by the engine"""
    origin: OriginRef
    recipients: FrozenSet[str]
    acknowledged: Set[str] = field(default_factory=set)
    attempt_count: Dict[str, int] = field(default_factory=dict)
    created_at: float = field(default_factory=time.time)
    pending_timer: Optional[Any] = None
    state: RecordState = RecordState.ACTIVE
    cycles_run: int = 0
    thread_watched: bool = False

    def __post_init__(self):
        if not self.recipients:
            raise ValueError("A tracked message needs at least one recipient")
        for user_id in self.recipients:
            self.attempt_count.setdefault(user_id, 0)

    @property
    def message_id(self) -> str:
        return self.origin.message_id

    def pending_recipients(self) -> List[str]:
        """Recipients that have not acknowledged yet, in stable order"""
        return sorted(u for u in self.recipients if u not in self.acknowledged)

    def eligible_recipients(self, max_reminders: int) -> List[str]:
        """Pending recipients with reminder budget left"""
        return [u for u in self.pending_recipients() if self.attempt_count[u] < max_reminders]

    def is_converged(self, max_reminders: int) -> bool:
        return not self.eligible_recipients(max_reminders)

    def snapshot(self) -> Dict[str, Any]:
        return {
            "message_id": self.message_id,
            "channel_id": self.origin.channel_id,
            "state": self.state.value,
            "recipients": sorted(self.recipients),
            "acknowledged": sorted(self.acknowledged),
            "attempt_count": dict(self.attempt_count),
            "created_at": self.created_at,
            "cycles_run": self.cycles_run,
        }
