"""
Unit tests for the termination policy rules.
"""

from datetime import timedelta

import pytest

from honeytrack.core.advisory import AdvisoryDecision, AdvisoryRecommendation
from honeytrack.core.session_tracker import SessionTracker, Sender, TerminationReason
from honeytrack.core.termination import GENERIC_DESCRIPTION, TerminationPolicy, describe_reason
from fakes import START_TIME




def make_tracker(**overrides) -> SessionTracker:
    fields = dict(
        session_id="policy-session",
        started_at=START_TIME,
        last_activity_at=START_TIME,
        completeness_threshold=75,
    )
    fields.update(overrides)
    return SessionTracker(**fields)


class TestHardLimits:

    def setup_method(self):
        from config.test_settings import test_settings
        self.policy = TerminationPolicy(test_settings.engagement)

    def test_no_limit_reached(self):
        tracker = make_tracker(message_count=5)
        assert self.policy.check_hard_limits(tracker, START_TIME, START_TIME) is None

    def test_message_cap(self):
        tracker = make_tracker(message_count=30)
        decision = self.policy.check_hard_limits(tracker, START_TIME, START_TIME)

        assert decision.reason == TerminationReason.MAX_MESSAGES_REACHED.value
        assert decision.source == "hard_limit"

    def test_duration_cap(self):
        tracker = make_tracker(message_count=3)
        now = START_TIME + timedelta(seconds=1800)
        decision = self.policy.check_hard_limits(tracker, now, now)

        assert decision.reason == TerminationReason.MAX_DURATION_REACHED.value

    def test_inactivity(self):
        tracker = make_tracker(message_count=3)
        now = START_TIME + timedelta(seconds=600)
        previous = START_TIME + timedelta(seconds=300)
        decision = self.policy.check_hard_limits(tracker, now, previous)

        assert decision.reason == TerminationReason.INACTIVITY_TIMEOUT.value

    def test_message_cap_outranks_duration(self):
        tracker = make_tracker(message_count=30)
        now = START_TIME + timedelta(hours=2)
        decision = self.policy.check_hard_limits(tracker, now, START_TIME)

        assert decision.reason == TerminationReason.MAX_MESSAGES_REACHED.value


class TestFallback:

    def setup_method(self):
        from config.test_settings import test_settings
        self.policy = TerminationPolicy(test_settings.engagement)

    def test_completeness_needs_minimum_messages(self):
        tracker = make_tracker(message_count=5, completeness_score=100)
        assert self.policy.check_fallback(tracker) is None

    def test_completeness_against_session_threshold(self):
        tracker = make_tracker(message_count=6, completeness_score=70, completeness_threshold=70)
        decision = self.policy.check_fallback(tracker)

        assert decision.reason == TerminationReason.EXTRACTION_COMPLETE.value
        assert decision.source == "fallback"

    def test_below_threshold_continues(self):
        tracker = make_tracker(message_count=6, completeness_score=69, completeness_threshold=70)
        assert self.policy.check_fallback(tracker) is None

    def test_frustration(self):
        tracker = make_tracker(message_count=2, frustration_level=80)
        decision = self.policy.check_fallback(tracker)

        assert decision.reason == TerminationReason.SCAMMER_FRUSTRATED.value

    def test_completeness_outranks_frustration(self):
        tracker = make_tracker(message_count=6, completeness_score=90, frustration_level=90)
        assert self.policy.check_fallback(tracker).reason == TerminationReason.EXTRACTION_COMPLETE.value


class TestAdvisoryRules:

    def setup_method(self):
        from config.test_settings import test_settings
        self.policy = TerminationPolicy(test_settings.engagement)

    @pytest.mark.parametrize("recommendation,expected", [
        (AdvisoryRecommendation.SUCCESS, TerminationReason.EXTRACTION_COMPLETE),
        (AdvisoryRecommendation.COMPLETE, TerminationReason.EXTRACTION_COMPLETE),
        (AdvisoryRecommendation.SUSPICIOUS, TerminationReason.SCAMMER_SUSPICIOUS),
        (AdvisoryRecommendation.FRUSTRATION, TerminationReason.SCAMMER_FRUSTRATED),
    ])
    def test_reason_mapping(self, recommendation, expected):
        decision = AdvisoryDecision(should_terminate=True, recommendation=recommendation)
        assert self.policy.from_advisory(decision).reason == expected.value

    def test_continue_is_not_termination(self):
        decision = AdvisoryDecision(should_terminate=True, recommendation=AdvisoryRecommendation.CONTINUE)
        assert self.policy.from_advisory(decision) is None

    def test_should_terminate_false_is_not_termination(self):
        decision = AdvisoryDecision(should_terminate=False, recommendation=AdvisoryRecommendation.SUCCESS)
        assert self.policy.from_advisory(decision) is None

    def test_no_decision(self):
        assert self.policy.from_advisory(None) is None

    def test_eligibility(self):
        tracker = make_tracker(message_count=4)
        history = [{"sender": "counterparty", "text": "hi"}, {"sender": "agent", "text": "hello"}]

        assert self.policy.advisory_eligible(tracker, history) is True
        assert self.policy.advisory_eligible(tracker, history[:1]) is False
        assert self.policy.advisory_eligible(make_tracker(message_count=3), history) is False

    def test_caller_history_wins_and_is_windowed(self):
        tracker = make_tracker()
        tracker.record_message(Sender.COUNTERPARTY, "own history", START_TIME, 50)
        caller = [{"sender": "scammer", "text": f"m{i}"} for i in range(10)]

        history = self.policy.select_history(tracker, caller)

        assert len(history) == 6
        assert history[-1] == {"sender": "scammer", "text": "m9"}

    def test_zero_history_window_sends_nothing(self):
        from config.test_settings import test_settings
        policy = TerminationPolicy(test_settings.engagement.model_copy(update={"advisory_history_window": 0}))
        tracker = make_tracker(message_count=4)
        caller = [{"sender": "scammer", "text": f"m{i}"} for i in range(10)]

        history = policy.select_history(tracker, caller)

        assert history == []
        assert policy.advisory_eligible(tracker, history) is False

    def test_tracker_history_used_without_caller_history(self):
        tracker = make_tracker()
        tracker.record_message(Sender.COUNTERPARTY, "own history", START_TIME, 50)

        assert self.policy.select_history(tracker, None) == [{"sender": "counterparty", "text": "own history"}]

    def test_request_stats(self):
        tracker = make_tracker(message_count=4, completeness_score=60, frustration_level=15)
        request = self.policy.build_advisory_request(tracker, [], START_TIME + timedelta(seconds=90))
        stats = request.to_dict()["stats"]

        assert stats == {"messageCount": 4, "durationMs": 90000, "completenessScore": 60, "frustrationLevel": 15}


class TestDescriptions:

    def test_known_reason(self):
        assert describe_reason(TerminationReason.MANUAL_TERMINATION) == "Conversation terminated manually"

    def test_unknown_reason_is_generic(self):
        assert describe_reason("SOMETHING_ELSE") == GENERIC_DESCRIPTION
        assert describe_reason(None) == GENERIC_DESCRIPTION
