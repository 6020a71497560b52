"""
Final report synthesis for completed conversations.
"""

from typing import Dict, List, Optional, Any
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from honeytrack.core.intelligence import ExtractedData
from honeytrack.core.logging import get_logger

logger = get_logger(__name__)


class ScamSeverity(Enum):
    """Severity classifications for a completed conversation."""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


HIGH_SEVERITY_SCAM_TYPES = frozenset({
    "FINANCIAL_FRAUD",
    "OTP_THEFT",
    "CREDENTIAL_THEFT",
    "IDENTITY_THEFT",
})


@dataclass
class ReportSummary:
    total_messages: int
    duration_seconds: int
    completeness_score: int
    frustration_level: int


@dataclass
class FinalReport:
    """Terminal artifact for one conversation. Built once, never mutated."""
    conversation_id: str
    summary: ReportSummary
    extracted_intelligence: Dict[str, Any]
    severity: ScamSeverity
    data_at_risk: List[str]
    recommended_actions: List[str]
    start_time: datetime
    end_time: datetime
    termination_reason: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "conversationId": self.conversation_id,
            "summary": {
                "totalMessages": self.summary.total_messages,
                "durationSeconds": self.summary.duration_seconds,
                "completenessScore": self.summary.completeness_score,
                "scammerFrustrationLevel": self.summary.frustration_level,
            },
            "extractedIntelligence": self.extracted_intelligence,
            "assessment": {
                "scamSeverity": self.severity.value,
                "dataAtRisk": list(self.data_at_risk),
                "recommendedActions": list(self.recommended_actions),
            },
            "metadata": {
                "startTime": self.start_time.isoformat(),
                "endTime": self.end_time.isoformat(),
                "terminationReason": self.termination_reason,
                **self.metadata,
            },
        }


class ReportGenerator:
    """Derives severity and recommended actions from a session's final data."""

    def classify_severity(self, data: ExtractedData) -> ScamSeverity:
        """
        CRITICAL when a high-severity scam type co-occurs with a captured
        link, HIGH for a high-severity type alone, MEDIUM for any other scam
        type, LOW otherwise.
        """
        has_high_severity = bool(data.scam_type & HIGH_SEVERITY_SCAM_TYPES)

        if has_high_severity and data.links:
            return ScamSeverity.CRITICAL
        if has_high_severity:
            return ScamSeverity.HIGH
        if data.scam_type:
            return ScamSeverity.MEDIUM
        return ScamSeverity.LOW

    def recommend_actions(self, data: ExtractedData) -> List[str]:
        recommendations = []

        if data.links:
            recommendations.append("Report malicious links to security services")
            recommendations.append("Block domains: " + ", ".join(sorted(data.links)))

        if data.phone_numbers:
            recommendations.append("Report phone numbers to fraud hotline")

        if data.payment_handles:
            recommendations.append("Flag payment handles with the payment provider")

        if data.bank_accounts:
            recommendations.append("Alert the issuing bank about the reported account numbers")

        if data.emails:
            recommendations.append("Report email addresses to the mail provider")

        if data.impersonated_entity:
            recommendations.append(f"Notify {data.impersonated_entity} of impersonation")

        if "OTP_THEFT" in data.scam_type:
            recommendations.append("Warn users about OTP sharing scams")

        return recommendations

    def generate(self, session_id: str, data: ExtractedData, message_count: int,
                 completeness_score: int, frustration_level: int,
                 started_at: datetime, ended_at: datetime,
                 termination_reason: str,
                 metadata: Optional[Dict[str, Any]] = None) -> FinalReport:
        """
        Build the final report for a conversation that just ended.

        Args:
            session_id: Conversation identifier
            data: Cumulative extracted data at termination
            message_count: Messages processed
            completeness_score: Score at termination
            frustration_level: Frustration at termination
            started_at: Tracker creation time
            ended_at: Termination time
            termination_reason: Reason code
            metadata: Extra fields for the report metadata block

        Returns:
            FinalReport: Report holding a copy of the data snapshot
        """
        severity = self.classify_severity(data)
        report = FinalReport(
            conversation_id=session_id,
            summary=ReportSummary(
                total_messages=message_count,
                duration_seconds=max(int((ended_at - started_at).total_seconds()), 0),
                completeness_score=completeness_score,
                frustration_level=frustration_level,
            ),
            extracted_intelligence=data.to_dict(),
            severity=severity,
            data_at_risk=sorted(data.requested_data),
            recommended_actions=self.recommend_actions(data),
            start_time=started_at,
            end_time=ended_at,
            termination_reason=termination_reason,
            metadata=dict(metadata or {}),
        )

        logger.info(
            "Generated final report",
            extra={
                "session_id": session_id,
                "severity": severity.value,
                "termination_reason": termination_reason,
                "recommendation_count": len(report.recommended_actions),
            },
        )
        return report
