"""
Test doubles shared by the test modules.
"""

import asyncio
from datetime import datetime, timedelta, timezone

from honeytrack.core.advisory import AdvisoryService

START_TIME = datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: datetime = START_TIME):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class StaticAdvisoryService(AdvisoryService):
    """Returns a fixed reply, or raises it when the reply is an exception."""

    name = "static"

    def __init__(self, reply):
        self.reply = reply
        self.requests = []

    async def decide(self, request):
        self.requests.append(request)
        if isinstance(self.reply, Exception):
            raise self.reply
        return self.reply


class SlowAdvisoryService(AdvisoryService):
    """Never answers within a test-sized timeout."""

    name = "slow"

    def __init__(self, delay: float = 5.0):
        self.delay = delay
        self.requests = []

    async def decide(self, request):
        self.requests.append(request)
        await asyncio.sleep(self.delay)
        return {"shouldTerminate": True, "reason": "COMPLETE"}


class GatedAdvisoryService(AdvisoryService):
    """Blocks until released so tests can act while a consultation is in flight."""

    name = "gated"

    def __init__(self, reply):
        self.reply = reply
        self.entered = asyncio.Event()
        self.release = asyncio.Event()
        self.requests = []

    async def decide(self, request):
        self.requests.append(request)
        self.entered.set()
        await self.release.wait()
        return self.reply
