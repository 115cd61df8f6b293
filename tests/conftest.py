from datetime import datetime, timedelta, timezone

import pytest

from snapnet.identity import Identity
from snapnet.message import MessageBuilder, MessageValidator

T0 = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock pinned to a settable instant."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def alice():
    return Identity.generate()


@pytest.fixture
def bob():
    return Identity.generate()


@pytest.fixture
def validator():
    return MessageValidator()


@pytest.fixture
def hello(alice, bob, validator, clock):
    return (
        MessageBuilder(alice, validator=validator, clock=clock)
        .to(bob)
        .text("hello")
        .build()
    )
