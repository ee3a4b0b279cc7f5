"""Fake collaborators for testing.

These replace the clock, the autosave timer, the AI backend and the
speech/location producers with deterministic, inspectable versions:

- FakeClock advances only when told to
- FakeScheduler never fires on its own; tests call ``fire_all()``
- FakeAIService answers from canned text and can be held mid-request
"""
import asyncio
import datetime
from typing import Any, Callable, List, Optional, Tuple

from magicnotes.ai.attachments import Attachment
from magicnotes.editor.producers import Position
from magicnotes.exceptions import UnsupportedCapability


class FakeClock:
    """Callable clock starting at a fixed instant."""

    def __init__(self, start: Optional[datetime.datetime] = None):
        self.now = start or datetime.datetime(2024, 1, 1, 12, 0, tzinfo=datetime.timezone.utc)

    def __call__(self) -> datetime.datetime:
        return self.now

    def advance(self, seconds: float = 1.0) -> datetime.datetime:
        self.now = self.now + datetime.timedelta(seconds=seconds)
        return self.now


class FakeTimer:
    def __init__(self, scheduler: "FakeScheduler", delay: float, callback: Callable[[], Any]):
        self.scheduler = scheduler
        self.delay = delay
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    """Manual timer source with the ``call_later`` contract."""

    def __init__(self):
        self.timers: List[FakeTimer] = []

    def call_later(self, delay: float, callback: Callable[[], Any]) -> FakeTimer:
        timer = FakeTimer(self, delay, callback)
        self.timers.append(timer)
        return timer

    @property
    def pending(self) -> List[FakeTimer]:
        return [t for t in self.timers if not t.cancelled]

    def fire_all(self) -> int:
        """Run every pending timer once. Returns how many fired."""
        fired = 0
        for timer in list(self.pending):
            timer.cancelled = True
            timer.callback()
            fired += 1
        return fired


class FakeAIService:
    """AI backend returning canned responses.

    Set ``gate`` to an ``asyncio.Event`` to hold every call until it is set.
    Set ``error`` to make every call fail.
    """

    def __init__(self, response: str = "AI text"):
        self.response = response
        self.error: Optional[Exception] = None
        self.gate: Optional[asyncio.Event] = None
        self.calls: List[Tuple[str, Tuple[Any, ...]]] = []

    async def _answer(self, operation: str, *args: Any) -> str:
        self.calls.append((operation, args))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.response

    async def generate_title(self, content: str) -> str:
        return await self._answer("generate_title", content)

    async def summarize(self, content: str) -> str:
        return await self._answer("summarize", content)

    async def continue_writing(self, content: str) -> str:
        return await self._answer("continue_writing", content)

    async def fix_grammar(self, content: str) -> str:
        return await self._answer("fix_grammar", content)

    async def custom_generate(
        self, prompt: str, context: str, attachment: Optional[Attachment] = None
    ) -> str:
        return await self._answer("custom_generate", prompt, context, attachment)


def fake_speech(*utterances: str):
    """Speech source yielding the given utterances."""

    async def source():
        for utterance in utterances:
            yield utterance

    return source


def unavailable_speech():
    async def source():
        raise UnsupportedCapability("Speech recognition")
        yield  # pragma: no cover

    return source


def fake_location(latitude: float, longitude: float):
    async def source() -> Position:
        return Position(latitude, longitude)

    return source


def unavailable_location():
    async def source() -> Position:
        raise UnsupportedCapability("Geolocation")

    return source
