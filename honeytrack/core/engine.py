"""
Conversation engine: the per-message pipeline from ingestion to decision.

    message -> extraction merge -> completeness score -> termination policy
            -> progress snapshot | final report

Mutation of one tracker is serialized by that tracker's lock. The lock is
released while the advisory service is consulted and the session status is
checked again afterwards, so a manual termination or a concurrent message
that ended the conversation in the meantime wins.
"""

import random
from datetime import datetime
from typing import Dict, Any, List, Optional, Union
from dataclasses import dataclass

from config.settings import Settings
from honeytrack.core.advisory import AdvisoryConsultant
from honeytrack.core.analysis import StructuredAnalysis
from honeytrack.core.intelligence import CompletenessScorer, ExtractionMerger, FrustrationTracker
from honeytrack.core.logging import session_logger
from honeytrack.core.metrics import MetricsCollector
from honeytrack.core.pattern_extraction import PatternExtractor, pattern_extractor
from honeytrack.core.registry import Clock, TrackerRegistry
from honeytrack.core.reporting import FinalReport, ReportGenerator
from honeytrack.core.session_tracker import SessionStatus, SessionTracker, Sender, TerminationReason
from honeytrack.core.termination import TerminationDecision, TerminationPolicy, describe_reason


@dataclass
class ProgressSnapshot:
    message_count: int
    completeness: int
    duration_seconds: int
    frustration: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "messageCount": self.message_count,
            "completeness": self.completeness,
            "duration": self.duration_seconds,
            "scammerFrustration": self.frustration,
        }


@dataclass
class EngagementResult:
    """Outcome of processing one message or a manual termination."""
    session_id: str
    should_continue: bool
    status: SessionStatus
    progress: Optional[ProgressSnapshot] = None
    termination_reason: Optional[str] = None
    termination_description: Optional[str] = None
    report: Optional[FinalReport] = None

    @classmethod
    def active(cls, tracker: SessionTracker, now: datetime) -> "EngagementResult":
        return cls(
            session_id=tracker.session_id,
            should_continue=True,
            status=SessionStatus.ACTIVE,
            progress=ProgressSnapshot(
                message_count=tracker.message_count,
                completeness=tracker.completeness_score,
                duration_seconds=tracker.elapsed_seconds(now),
                frustration=tracker.frustration_level,
            ),
        )

    @classmethod
    def completed(cls, tracker: SessionTracker, decision: TerminationDecision,
                  report: FinalReport) -> "EngagementResult":
        return cls(
            session_id=tracker.session_id,
            should_continue=False,
            status=SessionStatus.COMPLETED,
            termination_reason=decision.reason,
            termination_description=decision.description,
            report=report,
        )

    def to_dict(self) -> Dict[str, Any]:
        if self.should_continue:
            return {
                "shouldContinue": True,
                "status": self.status.value,
                "progress": self.progress.to_dict(),
            }
        return {
            "shouldContinue": False,
            "status": self.status.value,
            "terminationReason": self.termination_reason,
            "terminationDescription": self.termination_description,
            "finalReport": self.report.to_dict() if self.report else None,
        }


class ConversationEngine:
    """Explicitly constructed facade over the registry and the policy."""

    def __init__(
        self,
        registry: TrackerRegistry,
        settings: Settings,
        consultant: Optional[AdvisoryConsultant] = None,
        clock: Optional[Clock] = None,
        extractor: Optional[PatternExtractor] = None,
    ):
        self.registry = registry
        self.settings = settings
        self.consultant = consultant
        self.clock = clock or registry.clock
        self.extractor = extractor or pattern_extractor
        self.merger = ExtractionMerger()
        self.scorer = CompletenessScorer()
        self.frustration = FrustrationTracker(step=settings.engagement.frustration_step)
        self.policy = TerminationPolicy(settings.engagement)
        self.reporter = ReportGenerator()

    @classmethod
    def create(cls, settings: Settings, consultant: Optional[AdvisoryConsultant] = None,
               clock: Optional[Clock] = None, rng: Optional[random.Random] = None) -> "ConversationEngine":
        """Build an engine together with its own registry."""
        registry = TrackerRegistry(settings.engagement, settings.registry, clock=clock, rng=rng)
        return cls(registry, settings, consultant=consultant, clock=clock)

    async def process_message(
        self,
        session_id: str,
        sender: Union[str, Sender],
        text: str,
        analysis: Any = None,
        recent_history: Optional[List[Dict[str, Any]]] = None,
    ) -> EngagementResult:
        """
        Process one inbound message for a conversation.

        Args:
            session_id: Conversation identifier
            sender: Counterparty or agent; unknown values count as counterparty
            text: Message text
            analysis: Optional structured analysis from the upstream classifier
            recent_history: Optional caller-held history for the advisory service

        Returns:
            EngagementResult: Progress snapshot, or the final report once ended
        """
        tracker = self.registry.get_or_create(session_id)
        sender = Sender.from_raw(sender)
        log = session_logger(__name__, session_id)

        async with tracker.lock:
            if tracker.is_completed:
                log.debug("Message for completed conversation ignored")
                return tracker.final_result

            now = self.clock()
            previous_activity = tracker.last_activity_at
            self._apply_message(tracker, sender, text or "", analysis, now, log)

            decision = self.policy.check_hard_limits(tracker, now, previous_activity)
            if decision is not None:
                return self._complete(tracker, decision, now, log)

            advisory_request = None
            if sender is Sender.COUNTERPARTY and self.consultant is not None:
                history = self.policy.select_history(tracker, recent_history)
                if self.policy.advisory_eligible(tracker, history):
                    advisory_request = self.policy.build_advisory_request(tracker, history, now)

            if advisory_request is None:
                return self._evaluate_fallback(tracker, now, log)

        advisory = await self.consultant.consult(advisory_request, session_id=session_id)

        async with tracker.lock:
            if tracker.is_completed:
                log.info("Conversation ended during advisory consultation")
                return tracker.final_result

            now = self.clock()
            decision = self.policy.from_advisory(advisory)
            if decision is not None:
                return self._complete(tracker, decision, now, log)
            return self._evaluate_fallback(tracker, now, log)

    async def terminate(self, session_id: str,
                        reason: Union[str, TerminationReason] = TerminationReason.MANUAL_TERMINATION) -> EngagementResult:
        """
        End an active conversation immediately.

        Raises:
            ValueError: If the conversation is unknown
        """
        tracker = self.registry.get(session_id)
        if tracker is None:
            raise ValueError(f"Conversation {session_id} not found")

        reason_code = reason.value if isinstance(reason, TerminationReason) else str(reason)
        log = session_logger(__name__, session_id)

        async with tracker.lock:
            if tracker.is_completed:
                return tracker.final_result

            decision = TerminationDecision(
                reason=reason_code,
                description=describe_reason(reason_code),
                source="manual",
            )
            return self._complete(tracker, decision, self.clock(), log)

    def get_state(self, session_id: str) -> Optional[Dict[str, Any]]:
        tracker = self.registry.get(session_id)
        if tracker is None:
            return None

        state = tracker.get_state(self.clock())
        if tracker.final_report is not None:
            state["finalReport"] = tracker.final_report.to_dict()
        return state

    def _apply_message(self, tracker: SessionTracker, sender: Sender, text: str,
                       analysis: Any, now: datetime, log) -> None:
        tracker.record_message(sender, text, now, self.settings.engagement.history_limit)
        MetricsCollector.record_message(sender.value)
        data = tracker.extracted_data

        added = 0
        if sender is Sender.COUNTERPARTY:
            candidates = self.extractor.extract(text)
            added += self.merger.merge_candidates(data, candidates)
            tracker.frustration_level = self.frustration.observe(
                tracker.frustration_level, candidates.frustration_marker
            )

        # external analysis is merged after local patterns so it wins for the entity
        if analysis is not None:
            parsed = StructuredAnalysis.parse_lenient(analysis)
            added += self.merger.merge_analysis(data, parsed)
            if parsed.isScam:
                tracker.scam_detected = True

        if data.scam_type:
            tracker.scam_detected = True

        tracker.completeness_score = self.scorer.score(data)
        log.debug(
            "Message processed",
            sender=sender.value,
            message_count=tracker.message_count,
            new_values=added,
            completeness=tracker.completeness_score,
            frustration=tracker.frustration_level,
        )

    def _evaluate_fallback(self, tracker: SessionTracker, now: datetime, log) -> EngagementResult:
        decision = self.policy.check_fallback(tracker)
        if decision is not None:
            return self._complete(tracker, decision, now, log)
        return EngagementResult.active(tracker, now)

    def _complete(self, tracker: SessionTracker, decision: TerminationDecision,
                  now: datetime, log) -> EngagementResult:
        tracker.status = SessionStatus.COMPLETED
        tracker.termination_reason = decision.reason
        tracker.ended_at = now

        report = self.reporter.generate(
            session_id=tracker.session_id,
            data=tracker.extracted_data,
            message_count=tracker.message_count,
            completeness_score=tracker.completeness_score,
            frustration_level=tracker.frustration_level,
            started_at=tracker.started_at,
            ended_at=now,
            termination_reason=decision.reason,
        )
        result = EngagementResult.completed(tracker, decision, report)
        tracker.final_result = result

        MetricsCollector.record_termination(TerminationReason.metric_label(decision.reason))
        self.registry.update_metrics()
        log.info(
            "Conversation terminated",
            reason=decision.reason,
            decided_by=decision.source,
            completeness=tracker.completeness_score,
            message_count=tracker.message_count,
        )
        return result
