"""
Tests for MoneyTrackr

Test strategy:
1. Unit tests for individual components (models, analytics, currency)
2. Integration tests for the stores against the in-memory backend
3. No real API calls in tests
"""

import datetime as dt
from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from moneytrackr.models.audit import (
    PasswordStrength,
    SecurityEventType,
    SecurityLogEntry,
)
from moneytrackr.models.finance import (
    EXPENSE_CATEGORIES,
    AppearanceUpdate,
    FontSize,
    Goal,
    GoalCategory,
    GoalCreate,
    GoalStatus,
    NotificationPreferencesUpdate,
    ProfileUpdate,
    SettingsUpdate,
    Transaction,
    TransactionCreate,
    TransactionType,
    UserSettings,
    merge_settings,
)
from moneytrackr.models.history import (
    DataSnapshot,
    DeviceInfo,
    EntityType,
    HistoryFilter,
    SnapshotMetadata,
    SnapshotOperation,
)


def _snapshot(**overrides) -> DataSnapshot:
    fields = dict(
        id="s1",
        user_id="u1",
        timestamp=datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc),
        version=1705320000000,
        operation=SnapshotOperation.CREATE,
        entity_type=EntityType.TRANSACTION,
        entity_id="t1",
        new_data={"description": "Coffee beans", "amount": 12.5},
        change_description="create transaction (t1)",
        device_info=DeviceInfo(user_agent="ua", platform="linux", session_id="abc"),
        metadata=SnapshotMetadata(size=10, checksum="1f"),
    )
    fields.update(overrides)
    return DataSnapshot(**fields)


class TestTransactionModels:
    """Tests for transaction Pydantic models."""

    def test_transaction_create(self):
        t = TransactionCreate(
            type=TransactionType.EXPENSE,
            amount=42.5,
            description="Groceries",
            category="Food & Dining",
            date="2024-01-15",
            time="18:30:00",
        )
        assert t.date == dt.date(2024, 1, 15)
        assert t.recurring is False
        assert t.currency is None

    def test_transaction_strips_whitespace(self):
        t = TransactionCreate(
            type="income",
            amount=10,
            description="  Salary  ",
            category="Employment",
            date="2024-01-15",
            time="09:00:00",
        )
        assert t.description == "Salary"

    def test_transaction_rejects_non_positive_amount(self):
        with pytest.raises(ValidationError):
            TransactionCreate(
                type="expense",
                amount=0,
                description="Nothing",
                category="Other",
                date="2024-01-15",
                time="09:00:00",
            )

    def test_transaction_rejects_empty_description(self):
        with pytest.raises(ValidationError):
            TransactionCreate(
                type="expense",
                amount=5,
                description="",
                category="Other",
                date="2024-01-15",
                time="09:00:00",
            )

    def test_currency_is_upper_cased(self):
        t = TransactionCreate(
            type="expense",
            amount=5,
            description="Snack",
            category="Other",
            date="2024-01-15",
            time="09:00:00",
            currency="eur",
        )
        assert t.currency == "EUR"

    def test_local_shape_is_camel_case(self):
        t = Transaction(
            id="1",
            type="expense",
            amount=5,
            description="Taxi",
            category="Transportation",
            date="2024-01-15",
            time="09:00:00",
            payment_method="card",
        )
        local = t.to_local()
        assert local["paymentMethod"] == "card"
        assert "payment_method" in t.to_row()

    def test_accepts_camel_case_input(self):
        t = Transaction.model_validate({
            "id": "1",
            "type": "expense",
            "amount": 5,
            "description": "Taxi",
            "category": "Transportation",
            "date": "2024-01-15",
            "time": "09:00:00",
            "paymentMethod": "cash",
        })
        assert t.payment_method == "cash"


class TestGoalModels:
    """Tests for goal models."""

    def test_new_goal_deadline_cannot_be_past(self):
        with pytest.raises(ValidationError):
            GoalCreate(
                title="Old",
                target_amount=100,
                deadline=dt.date.today() - dt.timedelta(days=1),
                category=GoalCategory.SAVINGS,
            )

    def test_stored_goal_may_be_past_deadline(self):
        goal = Goal(
            id="g1",
            title="Old",
            target_amount=100,
            deadline=dt.date(2020, 1, 1),
            category=GoalCategory.SAVINGS,
        )
        assert goal.status == GoalStatus.ACTIVE

    def test_progress_may_exceed_target(self):
        goal = Goal(
            id="g1",
            title="Trip",
            target_amount=500,
            current_amount=600,
            deadline=dt.date(2030, 1, 1),
            category=GoalCategory.SAVINGS,
        )
        assert goal.progress_percentage == 120

    def test_target_must_be_positive(self):
        with pytest.raises(ValidationError):
            GoalCreate(
                title="Zero",
                target_amount=0,
                deadline=dt.date.today(),
                category=GoalCategory.SAVINGS,
            )


class TestSettingsMerge:
    """Tests for the per-group settings merge."""

    def test_defaults(self):
        settings = UserSettings()
        assert settings.profile.name == "User"
        assert settings.profile.currency == "USD"
        assert settings.notifications.budget_alerts is True
        assert settings.notifications.weekly_reports is False
        assert settings.privacy.analytics is False
        assert settings.appearance.font_size == FontSize.MEDIUM

    def test_merge_single_field_leaves_everything_else(self):
        current = UserSettings()
        patch = SettingsUpdate(notifications=NotificationPreferencesUpdate(budget_alerts=False))
        merged = merge_settings(current, patch)

        assert merged.notifications.budget_alerts is False
        assert merged.notifications.goal_reminders == current.notifications.goal_reminders
        assert merged.profile == current.profile
        assert merged.privacy == current.privacy
        assert merged.appearance == current.appearance

    def test_merge_multiple_groups(self):
        merged = merge_settings(
            UserSettings(),
            SettingsUpdate(
                profile=ProfileUpdate(name="Ana"),
                appearance=AppearanceUpdate(font_size="large"),
            ),
        )
        assert merged.profile.name == "Ana"
        assert merged.profile.avatar == "👤"
        assert merged.appearance.font_size == FontSize.LARGE
        assert merged.appearance.color_scheme == "green"

    def test_merge_does_not_mutate_current(self):
        current = UserSettings()
        merge_settings(current, SettingsUpdate(profile=ProfileUpdate(name="Changed")))
        assert current.profile.name == "User"


class TestHistoryModels:
    """Tests for snapshot models."""

    def test_snapshot_is_frozen(self):
        snapshot = _snapshot()
        with pytest.raises(ValidationError):
            snapshot.change_description = "edited"

    def test_naive_timestamp_treated_as_utc(self):
        snapshot = _snapshot(timestamp=datetime(2024, 1, 15, 12, 0))
        assert snapshot.timestamp.tzinfo is not None
        assert snapshot.timestamp.utcoffset().total_seconds() == 0

    def test_matches_text_searches_payload(self):
        snapshot = _snapshot()
        assert snapshot.matches_text("COFFEE")
        assert snapshot.matches_text("create transaction")
        assert not snapshot.matches_text("rent")

    def test_filter_matches(self):
        snapshot = _snapshot()
        assert HistoryFilter(entity_type=EntityType.TRANSACTION).matches(snapshot)
        assert not HistoryFilter(entity_type=EntityType.GOAL).matches(snapshot)
        assert not HistoryFilter(operation=SnapshotOperation.DELETE).matches(snapshot)
        assert HistoryFilter(entity_id="t1", search_query="beans").matches(snapshot)
        assert not HistoryFilter(start_date=datetime(2024, 2, 1)).matches(snapshot)
        assert HistoryFilter(end_date=datetime(2024, 2, 1)).matches(snapshot)


class TestAuditModels:
    """Tests for security log models."""

    def test_security_log_entry_to_log_dict(self):
        entry = SecurityLogEntry(id="e1", type=SecurityEventType.LOGIN, details="Successful login")
        log_dict = entry.to_log_dict()
        assert log_dict["entry_id"] == "e1"
        assert log_dict["event_type"] == "login"
        assert log_dict["details"] == "Successful login"

    def test_password_strength_bounds(self):
        with pytest.raises(ValidationError):
            PasswordStrength(score=6)
        assert PasswordStrength(score=4).is_strong
        assert not PasswordStrength(score=3).is_strong


class TestCategories:
    """Tests for category lists."""

    def test_expense_categories(self):
        assert "Food & Dining" in EXPENSE_CATEGORIES
        assert "Other" in EXPENSE_CATEGORIES
