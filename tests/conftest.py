"""Shared fixtures for simulator tests."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

import pytest

from twoway_sms.config.settings import LeadSettings, TimingSettings
from twoway_sms.models import ResponseCategory
from twoway_sms.scheduler import ManualScheduler
from twoway_sms.state_machine import ConversationOrchestrator

FIXED_NOW = datetime(2026, 10, 19, 10, 2)


@dataclass
class FakeClassifier:
    """Returns a preset category and records what it was asked."""
    category: ResponseCategory = ResponseCategory.UNKNOWN_MESSAGE
    calls: list[tuple[str, bool]] = field(default_factory=list)
    gate: Optional[asyncio.Event] = None

    async def classify(self, text: str, ai_enabled: bool) -> ResponseCategory:
        self.calls.append((text, ai_enabled))
        if self.gate is not None:
            await self.gate.wait()
        return self.category


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def classifier() -> FakeClassifier:
    return FakeClassifier()


@pytest.fixture
def orchestrator(classifier: FakeClassifier, scheduler: ManualScheduler) -> ConversationOrchestrator:
    return ConversationOrchestrator(
        classifier=classifier,
        scheduler=scheduler,
        timing=TimingSettings(),
        lead=LeadSettings(),
        clock=lambda: FIXED_NOW,
        session_id="test-session",
    )
