"""
Per-conversation state tracked by the engagement engine.
"""

import asyncio
from datetime import datetime
from typing import Dict, Any, List, Optional
from dataclasses import dataclass, field
from enum import Enum

from honeytrack.core.intelligence import ExtractedData


class SessionStatus(Enum):
    """Session status enumeration. ACTIVE -> COMPLETED only."""
    ACTIVE = "active"
    COMPLETED = "completed"


class TerminationReason(str, Enum):
    """Reasons a conversation can end."""
    MAX_MESSAGES_REACHED = "MAX_MESSAGES_REACHED"
    MAX_DURATION_REACHED = "MAX_DURATION_REACHED"
    INACTIVITY_TIMEOUT = "INACTIVITY_TIMEOUT"
    EXTRACTION_COMPLETE = "EXTRACTION_COMPLETE"
    SCAMMER_SUSPICIOUS = "SCAMMER_SUSPICIOUS"
    SCAMMER_FRUSTRATED = "SCAMMER_FRUSTRATED"
    MANUAL_TERMINATION = "MANUAL_TERMINATION"

    @classmethod
    def metric_label(cls, value: str) -> str:
        """Label for the termination counter; caller-supplied codes share one label."""
        return value if value in cls.__members__ else "OTHER"


class Sender(str, Enum):
    """Who wrote a message."""
    COUNTERPARTY = "counterparty"
    AGENT = "agent"

    @classmethod
    def from_raw(cls, value: Any) -> "Sender":
        """Map the sender spellings used by callers; unknown means counterparty."""
        if isinstance(value, Sender):
            return value
        if isinstance(value, str) and value.strip().lower() in ("agent", "user", "honeypot", "assistant"):
            return cls.AGENT
        return cls.COUNTERPARTY


@dataclass
class HistoryEntry:
    """One processed message kept for advisory context."""
    sender: str
    text: str
    timestamp: datetime


@dataclass
class SessionTracker:
    """Complete accumulating state for one conversation id."""
    session_id: str
    started_at: datetime
    last_activity_at: datetime
    completeness_threshold: int
    message_count: int = 0
    extracted_data: ExtractedData = field(default_factory=ExtractedData)
    completeness_score: int = 0
    frustration_level: int = 0
    scam_detected: bool = False
    status: SessionStatus = SessionStatus.ACTIVE
    termination_reason: Optional[str] = None
    ended_at: Optional[datetime] = None
    history: List[HistoryEntry] = field(default_factory=list)
    final_result: Optional[Any] = field(default=None, repr=False)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False, compare=False)

    @property
    def is_active(self) -> bool:
        return self.status == SessionStatus.ACTIVE

    @property
    def is_completed(self) -> bool:
        return self.status == SessionStatus.COMPLETED

    @property
    def final_report(self):
        return self.final_result.report if self.final_result else None

    def record_message(self, sender: Sender, text: str, now: datetime, history_limit: int) -> None:
        """Count a message, refresh activity and keep it for context."""
        self.message_count += 1
        self.last_activity_at = now
        self.history.append(HistoryEntry(sender=sender.value, text=text, timestamp=now))
        if len(self.history) > history_limit:
            del self.history[:len(self.history) - history_limit]

    def elapsed_seconds(self, now: datetime) -> int:
        end = self.ended_at or now
        return max(int((end - self.started_at).total_seconds()), 0)

    def get_state(self, now: datetime) -> Dict[str, Any]:
        """Snapshot of the tracker for listings."""
        return {
            "conversationId": self.session_id,
            "status": self.status.value,
            "messageCount": self.message_count,
            "completenessScore": self.completeness_score,
            "completenessThreshold": self.completeness_threshold,
            "scammerFrustrationLevel": self.frustration_level,
            "extractedData": self.extracted_data.to_dict(),
            "duration": self.elapsed_seconds(now),
            "startTime": self.started_at.isoformat(),
            "lastActivity": self.last_activity_at.isoformat(),
            "terminationReason": self.termination_reason,
        }
