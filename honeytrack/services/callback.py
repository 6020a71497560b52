"""
Webhook payload for completed conversations.

Only the payload is built here; delivering it is left to the caller.
"""

from typing import Dict, Any, List, Optional
from dataclasses import dataclass

from honeytrack.core.logging import get_logger
from honeytrack.core.session_tracker import SessionTracker

logger = get_logger(__name__)

# history length below which the exchange counts as a quick conversion attempt
QUICK_CONVERSION_MESSAGES = 10


@dataclass
class CallbackPayload:
    """Report delivered to the external sink for one conversation."""
    sessionId: str
    scamDetected: bool
    totalMessagesExchanged: int
    extractedIntelligence: Dict[str, List[str]]
    agentNotes: str
    status: str
    terminationReason: Optional[str] = None
    finalReport: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sessionId": self.sessionId,
            "scamDetected": self.scamDetected,
            "totalMessagesExchanged": self.totalMessagesExchanged,
            "extractedIntelligence": self.extractedIntelligence,
            "agentNotes": self.agentNotes,
            "status": self.status,
            "terminationReason": self.terminationReason,
            "finalReport": self.finalReport,
        }


def _intelligence_block(tracker: SessionTracker) -> Dict[str, List[str]]:
    data = tracker.extracted_data
    return {
        "bankAccounts": sorted(data.bank_accounts),
        "paymentHandles": sorted(data.payment_handles),
        "phishingLinks": sorted(data.links),
        "phoneNumbers": sorted(data.phone_numbers),
        "emails": sorted(data.emails),
        "suspiciousKeywords": sorted(data.suspicious_keywords),
    }


def generate_agent_notes(tracker: SessionTracker) -> str:
    """
    Summarize what the counterparty gave away, one clause per category,
    followed by the severity and the termination reason when known.
    """
    notes = []
    data = tracker.extracted_data

    if data.links:
        notes.append(f"Shared {len(data.links)} phishing link(s)")

    if data.payment_handles:
        notes.append(f"Requested payment to {len(data.payment_handles)} payment handle(s)")

    if data.phone_numbers:
        notes.append(f"Provided {len(data.phone_numbers)} phone number(s) for callback")

    if data.bank_accounts:
        notes.append(f"Mentioned {len(data.bank_accounts)} account number(s)")

    if data.emails:
        notes.append(f"Shared {len(data.emails)} email address(es)")

    if data.impersonated_entity:
        notes.append(f"Impersonated {data.impersonated_entity}")

    if data.scam_type:
        notes.append(f"Scam types: {', '.join(sorted(data.scam_type))}")

    if data.psychological_techniques:
        notes.append(f"Pressure tactics: {', '.join(sorted(data.psychological_techniques))}")

    if tracker.message_count < QUICK_CONVERSION_MESSAGES:
        notes.append("Scammer attempted quick conversion")
    else:
        notes.append("Extended conversation to build trust")

    report = tracker.final_report
    if report is not None:
        notes.append(f"Severity {report.severity.value}")

    if tracker.termination_reason:
        notes.append(f"Ended: {tracker.termination_reason}")

    return ". ".join(notes) + "."


def build_callback_payload(tracker: SessionTracker) -> CallbackPayload:
    """
    Build the webhook payload for a conversation.

    Args:
        tracker: Conversation tracker, active or completed

    Returns:
        CallbackPayload: Payload with the final report when available
    """
    report = tracker.final_report
    payload = CallbackPayload(
        sessionId=tracker.session_id,
        scamDetected=tracker.scam_detected,
        totalMessagesExchanged=tracker.message_count,
        extractedIntelligence=_intelligence_block(tracker),
        agentNotes=generate_agent_notes(tracker),
        status=tracker.status.value,
        terminationReason=tracker.termination_reason,
        finalReport=report.to_dict() if report is not None else None,
    )

    logger.info(
        "Built callback payload",
        extra={"session_id": tracker.session_id, "payload_status": payload.status},
    )
    return payload
