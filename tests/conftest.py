"""
Shared fixtures.

Tests run against the in-memory backend and local store; no network.
Coroutines are driven with asyncio.run.
"""

import datetime as dt

import pytest

from moneytrackr.models.finance import (
    GoalCategory,
    GoalCreate,
    TransactionCreate,
    TransactionType,
)
from moneytrackr.models.history import DeviceInfo
from moneytrackr.services.storage import InMemoryBackend, MemoryLocalStore
from moneytrackr.session import UserSession


USER_ID = "user-1"


@pytest.fixture
def local_store():
    return MemoryLocalStore()


@pytest.fixture
def backend():
    return InMemoryBackend()


@pytest.fixture
def session():
    return UserSession(user_id=USER_ID, email="user@example.com")


@pytest.fixture
def device_info():
    return DeviceInfo(user_agent="MoneyTrackr/test", platform="test", session_id="test-session")


def make_transaction(
    kind: TransactionType = TransactionType.EXPENSE,
    amount: float = 10.0,
    category: str = "Food & Dining",
    on: str = "2024-01-15",
    at: str = "12:00:00",
    description: str = "Lunch",
    **extra,
) -> TransactionCreate:
    return TransactionCreate(
        type=kind,
        amount=amount,
        description=description,
        category=category,
        date=on,
        time=at,
        **extra,
    )


def make_goal(
    title: str = "Emergency Fund",
    target: float = 500.0,
    current: float = 0.0,
    category: GoalCategory = GoalCategory.SAVINGS,
    **extra,
) -> GoalCreate:
    return GoalCreate(
        title=title,
        target_amount=target,
        current_amount=current,
        deadline=dt.date.today() + dt.timedelta(days=90),
        category=category,
        **extra,
    )
