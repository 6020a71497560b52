"""
Integration tests for the conversation engine.

Drives whole conversations through process_message and checks progress
snapshots, termination reasons, terminal stability, manual termination
and per-session serialization.
"""

import asyncio

import pytest
from prometheus_client import REGISTRY

from honeytrack.core.session_tracker import SessionStatus, TerminationReason
from fakes import GatedAdvisoryService, SlowAdvisoryService, StaticAdvisoryService

SCENARIO = [
    ("scammer", "Send your OTP code now, urgent!"),
    ("scammer", "Your bank account will be suspended. Verify at http://secure-bank-verify.xyz/login"),
    ("scammer", "Call our officer at +91 9876543210"),
    ("scammer", "This is the Amazon security team"),
    ("agent", "Oh dear, what should I do?"),
    ("scammer", "Just follow the steps I gave you"),
]


class TestConversationScenario:

    @pytest.mark.asyncio
    async def test_first_message_continues(self, engine):
        result = await engine.process_message("s1", "scammer", "Send your OTP code now, urgent!")
        tracker = engine.registry.get("s1")

        assert result.should_continue is True
        assert result.to_dict() == {
            "shouldContinue": True,
            "status": "active",
            "progress": {"messageCount": 1, "completeness": 60, "duration": 0, "scammerFrustration": 0},
        }
        assert "OTP_THEFT" in tracker.extracted_data.scam_type
        assert "URGENCY" in tracker.extracted_data.psychological_techniques

    @pytest.mark.asyncio
    async def test_extraction_complete(self, engine):
        scores = []
        result = None
        for sender, text in SCENARIO:
            result = await engine.process_message("s1", sender, text)
            scores.append(engine.registry.get("s1").completeness_score)
            if not result.should_continue:
                break

        assert scores == [60, 85, 90, 95, 95, 95]
        assert result.should_continue is False
        assert result.termination_reason == TerminationReason.EXTRACTION_COMPLETE.value

        body = result.to_dict()
        assert body["status"] == "completed"
        assert body["finalReport"]["summary"]["totalMessages"] == 6
        assert body["finalReport"]["assessment"]["scamSeverity"] == "CRITICAL"
        assert body["finalReport"]["extractedIntelligence"]["impersonatedEntity"] == "Amazon"

    @pytest.mark.asyncio
    async def test_agent_text_is_not_extracted(self, engine):
        await engine.process_message("s2", "agent", "My OTP is 123456, visit http://example.xyz")
        tracker = engine.registry.get("s2")

        assert tracker.message_count == 1
        assert tracker.extracted_data.to_dict()["links"] == []
        assert tracker.completeness_score == 0

    @pytest.mark.asyncio
    async def test_structured_analysis_merged(self, engine):
        await engine.process_message("s3", "scammer", "hello", analysis={
            "scamTypes": ["CREDENTIAL_THEFT"],
            "isScam": True,
            "psychologicalTechniques": ["AUTHORITY"],
            "extraction": {"requestedData": ["PASSWORD"], "attackMethod": ["PRETEXTING"]},
        })
        tracker = engine.registry.get("s3")

        assert tracker.scam_detected is True
        assert tracker.completeness_score == 80

    @pytest.mark.asyncio
    async def test_malformed_analysis_is_ignored(self, engine):
        result = await engine.process_message("s4", "scammer", "hello", analysis={"scamTypes": {"bad": 1}, "extraction": 7})

        assert result.should_continue is True
        assert engine.registry.get("s4").completeness_score == 0


class TestHardLimits:

    @pytest.mark.asyncio
    async def test_message_cap_with_empty_messages(self, engine):
        result = None
        for _ in range(30):
            result = await engine.process_message("cap", "scammer", "")

        assert result.should_continue is False
        assert result.termination_reason == TerminationReason.MAX_MESSAGES_REACHED.value
        assert engine.registry.get("cap").message_count == 30

    @pytest.mark.asyncio
    async def test_duration_limit(self, engine, clock):
        await engine.process_message("long", "scammer", "hi")
        for _ in range(8):
            clock.advance(250)
            result = await engine.process_message("long", "scammer", "still here")

        assert result.termination_reason == TerminationReason.MAX_DURATION_REACHED.value

    @pytest.mark.asyncio
    async def test_inactivity_timeout(self, engine, clock):
        await engine.process_message("idle", "scammer", "hi")
        clock.advance(301)
        result = await engine.process_message("idle", "scammer", "back again")

        assert result.termination_reason == TerminationReason.INACTIVITY_TIMEOUT.value

    @pytest.mark.asyncio
    async def test_frustration_fallback(self, engine):
        result = None
        for _ in range(6):
            result = await engine.process_message("angry", "scammer", "Hello? Are you there?")
            if not result.should_continue:
                break

        assert result.termination_reason == TerminationReason.SCAMMER_FRUSTRATED.value
        assert engine.registry.get("angry").frustration_level == 90


class TestTerminalStability:

    @pytest.mark.asyncio
    async def test_completed_session_returns_cached_result(self, engine):
        await engine.process_message("done", "scammer", "Send OTP")
        final = await engine.terminate("done")
        tracker = engine.registry.get("done")
        snapshot = tracker.extracted_data.to_dict()

        again = await engine.process_message("done", "scammer", "Visit http://new-link.xyz and call 9876543210")
        and_again = await engine.process_message("done", "scammer", "more")

        assert again is final
        assert and_again is final
        assert tracker.message_count == 1
        assert tracker.extracted_data.to_dict() == snapshot

    @pytest.mark.asyncio
    async def test_terminate_twice_returns_same_result(self, engine):
        await engine.process_message("twice", "scammer", "hi")
        first = await engine.terminate("twice")
        second = await engine.terminate("twice", TerminationReason.EXTRACTION_COMPLETE)

        assert second is first
        assert second.termination_reason == TerminationReason.MANUAL_TERMINATION.value


class TestManualTermination:

    @pytest.mark.asyncio
    async def test_manual_termination_report(self, engine):
        await engine.process_message("manual", "scammer", "Send your OTP code now, urgent!")
        result = await engine.terminate("manual")
        tracker = engine.registry.get("manual")

        assert tracker.status == SessionStatus.COMPLETED
        assert result.termination_reason == "MANUAL_TERMINATION"
        assert result.termination_description == "Conversation terminated manually"
        assert result.report.severity.value == "HIGH"

    @pytest.mark.asyncio
    async def test_unknown_reason_gets_generic_description(self, engine):
        await engine.process_message("custom", "scammer", "hi")
        result = await engine.terminate("custom", "OPERATOR_REQUEST")

        assert result.termination_reason == "OPERATOR_REQUEST"
        assert result.termination_description == "Conversation ended"

    @pytest.mark.asyncio
    async def test_custom_reasons_share_one_metric_label(self, engine):
        def terminated(reason):
            return REGISTRY.get_sample_value("honeytrack_sessions_terminated_total", {"reason": reason}) or 0

        before = terminated("OTHER")
        for i in range(5):
            await engine.process_message(f"custom-{i}", "scammer", "hi")
            result = await engine.terminate(f"custom-{i}", f"ARBITRARY_{i}")
            assert result.termination_reason == f"ARBITRARY_{i}"

        assert terminated("OTHER") == before + 5
        assert REGISTRY.get_sample_value("honeytrack_sessions_terminated_total", {"reason": "ARBITRARY_0"}) is None

    @pytest.mark.asyncio
    async def test_unknown_session_raises(self, engine):
        with pytest.raises(ValueError):
            await engine.terminate("missing")

    @pytest.mark.asyncio
    async def test_get_state(self, engine):
        assert engine.get_state("missing") is None

        await engine.process_message("state", "scammer", "Send OTP")
        state = engine.get_state("state")
        assert state["status"] == "active"
        assert state["messageCount"] == 1
        assert "finalReport" not in state

        await engine.terminate("state")
        assert engine.get_state("state")["finalReport"]["metadata"]["terminationReason"] == "MANUAL_TERMINATION"


class TestAdvisoryIntegration:

    async def _feed(self, engine, session_id, count):
        result = None
        for i in range(count):
            result = await engine.process_message(session_id, "scammer", f"message {i}")
        return result

    @pytest.mark.asyncio
    async def test_advisory_terminates(self, make_engine):
        service = StaticAdvisoryService({"shouldTerminate": True, "reason": "TERMINATE_SUSPICIOUS",
                                         "reasoning": "Scammer asked if we are recording"})
        engine = make_engine(service)

        result = await self._feed(engine, "adv", 4)

        assert len(service.requests) == 1
        assert result.termination_reason == TerminationReason.SCAMMER_SUSPICIOUS.value
        assert result.termination_description == "Scammer asked if we are recording"

    @pytest.mark.asyncio
    async def test_advisory_not_consulted_for_agent_messages(self, make_engine):
        service = StaticAdvisoryService({"shouldTerminate": True, "reason": "COMPLETE"})
        engine = make_engine(service)

        for _ in range(5):
            result = await engine.process_message("agent-only", "agent", "reply")

        assert service.requests == []
        assert result.should_continue is True

    @pytest.mark.asyncio
    async def test_advisory_continue(self, make_engine):
        service = StaticAdvisoryService({"shouldTerminate": False, "reason": "CONTINUE"})
        engine = make_engine(service)

        result = await self._feed(engine, "cont", 5)

        assert len(service.requests) == 2
        assert result.should_continue is True

    @pytest.mark.asyncio
    async def test_advisory_error_falls_back(self, make_engine):
        engine = make_engine(StaticAdvisoryService(ConnectionError("unreachable")))

        result = None
        for _ in range(6):
            result = await engine.process_message("err", "scammer", "Hello? Are you there?")
            if not result.should_continue:
                break

        assert result.termination_reason == TerminationReason.SCAMMER_FRUSTRATED.value

    @pytest.mark.asyncio
    async def test_advisory_timeout_falls_back(self, make_engine):
        engine = make_engine(SlowAdvisoryService(delay=5.0), timeout_seconds=0.05)

        result = await self._feed(engine, "slow", 4)

        assert result.should_continue is True
        assert result.progress.message_count == 4

    @pytest.mark.asyncio
    async def test_caller_history_sent_to_advisory(self, make_engine):
        service = StaticAdvisoryService({"shouldTerminate": False})
        engine = make_engine(service)
        history = [{"sender": "scammer", "text": "earlier"}, {"sender": "user", "text": "reply"}]

        await self._feed(engine, "hist", 3)
        await engine.process_message("hist", "scammer", "fourth", recent_history=history)

        assert service.requests[0].recent_history == [
            {"sender": "scammer", "text": "earlier"},
            {"sender": "user", "text": "reply"},
        ]

    @pytest.mark.asyncio
    async def test_manual_termination_during_advisory(self, make_engine):
        service = GatedAdvisoryService({"shouldTerminate": True, "reason": "COMPLETE"})
        engine = make_engine(service, timeout_seconds=2.0)
        await self._feed(engine, "race", 3)

        pending = asyncio.create_task(engine.process_message("race", "scammer", "fourth"))
        await service.entered.wait()
        manual = await engine.terminate("race")
        service.release.set()
        result = await pending

        assert result is manual
        assert result.termination_reason == TerminationReason.MANUAL_TERMINATION.value


class TestConcurrency:

    @pytest.mark.asyncio
    async def test_same_session_messages_serialized(self, engine):
        await asyncio.gather(*[
            engine.process_message("busy", "scammer", f"message {i}") for i in range(10)
        ])

        tracker = engine.registry.get("busy")
        assert tracker.message_count == 10
        assert len(tracker.history) == 10

    @pytest.mark.asyncio
    async def test_sessions_are_independent(self, engine):
        await engine.process_message("a", "scammer", "Send OTP")
        await engine.terminate("a")
        result = await engine.process_message("b", "scammer", "hi")

        assert result.should_continue is True
        assert engine.registry.get("b").is_active
