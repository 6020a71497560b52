"""
Multi-tier termination policy.

Rules are evaluated in strict priority order, first match wins:
hard limits (message count, duration, inactivity), then the advisory
service when eligible, then the rule-based fallback (completeness against
the session's threshold, then frustration).
"""

from datetime import datetime
from typing import Dict, Any, List, Optional
from dataclasses import dataclass

from config.settings import EngagementSettings
from honeytrack.core.advisory import AdvisoryDecision, AdvisoryRecommendation, AdvisoryRequest
from honeytrack.core.session_tracker import SessionTracker, TerminationReason

GENERIC_DESCRIPTION = "Conversation ended"

TERMINATION_DESCRIPTIONS: Dict[str, str] = {
    TerminationReason.MAX_MESSAGES_REACHED.value: "Maximum number of messages reached",
    TerminationReason.MAX_DURATION_REACHED.value: "Maximum conversation duration reached",
    TerminationReason.INACTIVITY_TIMEOUT.value: "Counterparty inactive for too long",
    TerminationReason.EXTRACTION_COMPLETE.value: "Sufficient intelligence extracted",
    TerminationReason.SCAMMER_SUSPICIOUS.value: "Counterparty appears suspicious of the engagement",
    TerminationReason.SCAMMER_FRUSTRATED.value: "Counterparty showing high frustration",
    TerminationReason.MANUAL_TERMINATION.value: "Conversation terminated manually",
}

ADVISORY_REASON_MAP: Dict[AdvisoryRecommendation, TerminationReason] = {
    AdvisoryRecommendation.SUCCESS: TerminationReason.EXTRACTION_COMPLETE,
    AdvisoryRecommendation.COMPLETE: TerminationReason.EXTRACTION_COMPLETE,
    AdvisoryRecommendation.SUSPICIOUS: TerminationReason.SCAMMER_SUSPICIOUS,
    AdvisoryRecommendation.FRUSTRATION: TerminationReason.SCAMMER_FRUSTRATED,
}


def describe_reason(reason: Any) -> str:
    """Human-readable description for a reason code; never fails."""
    if isinstance(reason, TerminationReason):
        reason = reason.value
    return TERMINATION_DESCRIPTIONS.get(reason, GENERIC_DESCRIPTION)


@dataclass
class TerminationDecision:
    """Outcome of a policy evaluation that ends the conversation."""
    reason: str
    description: str
    source: str


class TerminationPolicy:
    """Decides, per processed message, whether a conversation should end."""

    def __init__(self, engagement: EngagementSettings):
        self.engagement = engagement

    def check_hard_limits(self, tracker: SessionTracker, now: datetime,
                          previous_activity: datetime) -> Optional[TerminationDecision]:
        """
        Rules 1-3. `previous_activity` is the last activity time before the
        current message was recorded, so inactivity is the gap this message
        closed.
        """
        limits = self.engagement

        if tracker.message_count >= limits.max_messages:
            return TerminationDecision(
                reason=TerminationReason.MAX_MESSAGES_REACHED.value,
                description=f"Max messages ({limits.max_messages}) reached",
                source="hard_limit",
            )

        if (now - tracker.started_at).total_seconds() >= limits.max_duration_seconds:
            return TerminationDecision(
                reason=TerminationReason.MAX_DURATION_REACHED.value,
                description=f"Max duration ({limits.max_duration_seconds // 60} min) reached",
                source="hard_limit",
            )

        if (now - previous_activity).total_seconds() >= limits.inactivity_timeout_seconds:
            return TerminationDecision(
                reason=TerminationReason.INACTIVITY_TIMEOUT.value,
                description=f"Inactivity timeout ({limits.inactivity_timeout_seconds // 60} min) exceeded",
                source="hard_limit",
            )

        return None

    def select_history(self, tracker: SessionTracker,
                       recent_history: Optional[List[Dict[str, Any]]] = None) -> List[Dict[str, str]]:
        """Recent history for the advisory request; caller history wins when given."""
        if recent_history:
            entries = [
                {
                    "sender": str(item.get("sender", "unknown")),
                    "text": str(item.get("text", item.get("message", ""))),
                }
                for item in recent_history
                if isinstance(item, dict)
            ]
        else:
            entries = [{"sender": h.sender, "text": h.text} for h in tracker.history]
        window = self.engagement.advisory_history_window
        return entries[-window:] if window > 0 else []

    def advisory_eligible(self, tracker: SessionTracker, history: List[Dict[str, str]]) -> bool:
        return (
            tracker.message_count >= self.engagement.min_messages_for_advisory
            and len(history) >= self.engagement.min_history_for_advisory
        )

    def build_advisory_request(self, tracker: SessionTracker, history: List[Dict[str, str]],
                               now: datetime) -> AdvisoryRequest:
        return AdvisoryRequest(
            recent_history=history,
            extracted_data=tracker.extracted_data.to_dict(),
            message_count=tracker.message_count,
            duration_ms=max(int((now - tracker.started_at).total_seconds() * 1000), 0),
            completeness_score=tracker.completeness_score,
            frustration_level=tracker.frustration_level,
        )

    def from_advisory(self, decision: Optional[AdvisoryDecision]) -> Optional[TerminationDecision]:
        """Rule 4. No decision, CONTINUE or shouldTerminate=false keep the conversation going."""
        if decision is None or not decision.terminates:
            return None

        reason = ADVISORY_REASON_MAP[decision.recommendation]
        description = decision.reasoning or describe_reason(reason)
        return TerminationDecision(
            reason=reason.value,
            description=description,
            source="advisory",
        )

    def check_fallback(self, tracker: SessionTracker) -> Optional[TerminationDecision]:
        """Rule 5."""
        if (tracker.message_count >= self.engagement.min_messages_for_extraction
                and tracker.completeness_score >= tracker.completeness_threshold):
            return TerminationDecision(
                reason=TerminationReason.EXTRACTION_COMPLETE.value,
                description=f"Extraction completeness ({tracker.completeness_score}%) reached threshold",
                source="fallback",
            )

        if tracker.frustration_level >= self.engagement.frustration_threshold:
            return TerminationDecision(
                reason=TerminationReason.SCAMMER_FRUSTRATED.value,
                description="Scammer showing high frustration",
                source="fallback",
            )

        return None
