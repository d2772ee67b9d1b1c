"""Pytest configuration and fixtures for test suite."""

import pytest

from pureflow.domain.models import DeliveryResult, NotificationEnvelope
from pureflow.domain.thresholds import ThresholdRegistry
from pureflow.services.dispatch import DispatchConfig, NotificationService


async def no_sleep(_seconds: float) -> None:
    return None


class ScriptedProvider:
    """Provider that replays a list of outcomes: DeliveryResult or an exception to raise."""

    def __init__(self, outcomes=None) -> None:
        self.outcomes = list(outcomes or [])
        self.calls: list[NotificationEnvelope] = []

    async def send(self, envelope: NotificationEnvelope) -> DeliveryResult:
        self.calls.append(envelope)
        outcome = self.outcomes.pop(0) if self.outcomes else DeliveryResult(success=True, message_id="ok")
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


@pytest.fixture
def registry() -> ThresholdRegistry:
    return ThresholdRegistry("freshwater")


@pytest.fixture
def service() -> NotificationService:
    return NotificationService(DispatchConfig(max_retries=3, retry_delay=1.0), sleep=no_sleep)
