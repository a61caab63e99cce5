"""
Notification Center

In-app notifications, persisted in the local store under
``notifications`` (newest first), plus the rules that turn the current
goals and transactions into budget, goal and summary notifications.

Each rule is deduplicated against notifications already present within
its window, so running the generator repeatedly is safe.
"""

import uuid
from datetime import datetime, timedelta
from typing import Optional, Sequence

import structlog
from pydantic import ValidationError

from moneytrackr.currency.rates import format_currency
from moneytrackr.models.account import Notification, NotificationType
from moneytrackr.models.base import ensure_utc, utc_now
from moneytrackr.models.finance import (
    Goal,
    GoalCategory,
    GoalStatus,
    Transaction,
    TransactionType,
)
from moneytrackr.services.storage.local import LocalStore
from moneytrackr.store.analytics import infer_target_category, month_spending


logger = structlog.get_logger(__name__)

NOTIFICATIONS_KEY = "notifications"
LAST_CURRENCY_UPDATE_KEY = "last_currency_update"
LAST_WEEKLY_SUMMARY_KEY = "last_weekly_summary"

DAY = timedelta(days=1)
WEEK = timedelta(days=7)

BUDGET_ALERT_THRESHOLD = 80
SAVINGS_MILESTONE = 75


def _epoch_ms(value: datetime) -> int:
    return int(value.timestamp() * 1000)


class NotificationCenter:
    """Notification list with read state and financial alert generation."""

    def __init__(self, local_store: LocalStore):
        self._local = local_store
        self.notifications: list[Notification] = self._load()

    def _load(self) -> list[Notification]:
        notifications = []
        for raw in self._local.get(NOTIFICATIONS_KEY, []):
            try:
                notifications.append(Notification.model_validate(raw))
            except ValidationError as e:
                logger.warning("notification_invalid", error=str(e))
        return notifications

    def _save(self) -> None:
        self._local.set(NOTIFICATIONS_KEY, [n.to_local() for n in self.notifications])

    @property
    def unread_count(self) -> int:
        return sum(1 for n in self.notifications if not n.read)

    def add(
        self,
        notification_type: NotificationType,
        title: str,
        message: str,
        now: Optional[datetime] = None,
    ) -> Notification:
        notification = Notification(
            id=str(uuid.uuid4()),
            type=notification_type,
            title=title,
            message=message,
            timestamp=ensure_utc(now or utc_now()),
        )
        self.notifications = [notification] + self.notifications
        self._save()
        logger.info("notification_added", notification_id=notification.id, title=title)
        return notification

    def mark_as_read(self, notification_id: str) -> None:
        self.notifications = [
            n.model_copy(update={"read": True}) if n.id == notification_id else n
            for n in self.notifications
        ]
        self._save()

    def mark_all_as_read(self) -> None:
        self.notifications = [n.model_copy(update={"read": True}) for n in self.notifications]
        self._save()

    def remove(self, notification_id: str) -> None:
        self.notifications = [n for n in self.notifications if n.id != notification_id]
        self._save()

    def clear_all(self) -> None:
        self.notifications = []
        self._save()

    def _recent(self, title: str, since: datetime, contains: Optional[str] = None) -> bool:
        """Whether a notification with this title exists after ``since``."""
        return any(
            n.title == title
            and n.timestamp > since
            and (contains is None or contains in n.message)
            for n in self.notifications
        )

    # =========================================================================
    # GENERATION
    # =========================================================================

    def generate_financial_notifications(
        self,
        goals: Sequence[Goal],
        transactions: Sequence[Transaction],
        currency: str,
        now: Optional[datetime] = None,
    ) -> list[Notification]:
        """
        Add every notification the current data warrants.

        Returns:
            The notifications added by this call
        """
        now = ensure_utc(now or utc_now())
        today = now.date()
        added: list[Notification] = []

        for goal in goals:
            if goal.status != GoalStatus.ACTIVE:
                continue
            if goal.category == GoalCategory.EXPENSE_LIMIT:
                added.extend(self._budget_alert(goal, transactions, now))
            elif goal.category == GoalCategory.SAVINGS:
                added.extend(self._savings_progress(goal, now))

        for goal in goals:
            if goal.status == GoalStatus.ACTIVE and goal.deadline < today:
                added.extend(self._overdue(goal, now))

        added.extend(self._currency_update(currency, now))
        added.extend(self._weekly_summary(transactions, currency, now))
        return added

    def _budget_alert(self, goal: Goal, transactions: Sequence[Transaction], now: datetime) -> list[Notification]:
        category = infer_target_category(goal)
        spent = month_spending(transactions, category, now.date())
        percentage = spent / goal.target_amount * 100 if goal.target_amount > 0 else 0
        if percentage <= BUDGET_ALERT_THRESHOLD:
            return []

        label = category.lower()
        if self._recent("Budget Alert", now - DAY, label):
            return []

        if percentage > 100:
            return [self.add(
                NotificationType.ERROR,
                "Budget Alert",
                f"You've exceeded your {label} budget by {percentage - 100:.0f}%",
                now,
            )]
        return [self.add(
            NotificationType.WARNING,
            "Budget Alert",
            f"You've spent {percentage:.0f}% of your {label} budget",
            now,
        )]

    def _savings_progress(self, goal: Goal, now: datetime) -> list[Notification]:
        progress = goal.progress_percentage
        label = goal.title.lower()

        if SAVINGS_MILESTONE <= progress < 100:
            if self._recent("Goal Progress", now - WEEK, label):
                return []
            return [self.add(
                NotificationType.SUCCESS,
                "Goal Progress",
                f"You're {progress:.0f}% towards your {label} goal!",
                now,
            )]

        if progress >= 100:
            if self._recent("Goal Completed", now - DAY, label):
                return []
            return [self.add(
                NotificationType.SUCCESS,
                "Goal Completed",
                f"Congratulations! You've completed your {label} goal!",
                now,
            )]
        return []

    def _overdue(self, goal: Goal, now: datetime) -> list[Notification]:
        if self._recent("Goal Overdue", now - DAY, goal.title):
            return []
        return [self.add(
            NotificationType.WARNING,
            "Goal Overdue",
            f'Your goal "{goal.title}" has passed its deadline. Consider updating or extending it.',
            now,
        )]

    def _currency_update(self, currency: str, now: datetime) -> list[Notification]:
        last = self._local.get(LAST_CURRENCY_UPDATE_KEY)
        day_ago = now - DAY
        if last is not None and last >= _epoch_ms(day_ago):
            return []
        if self._recent("Currency Update", day_ago):
            return []

        notification = self.add(
            NotificationType.INFO,
            "Currency Update",
            f"Exchange rates have been updated for {currency}",
            now,
        )
        self._local.set(LAST_CURRENCY_UPDATE_KEY, _epoch_ms(now))
        return [notification]

    def _weekly_summary(self, transactions: Sequence[Transaction], currency: str, now: datetime) -> list[Notification]:
        last = self._local.get(LAST_WEEKLY_SUMMARY_KEY)
        week_ago = now - WEEK
        if last is not None and last >= _epoch_ms(week_ago):
            return []

        today = now.date()
        weekly = [
            t for t in transactions
            if t.type == TransactionType.EXPENSE
            and t.date.year == today.year
            and t.date.month == today.month
            and t.date > week_ago.date()
        ]
        total = sum(t.amount for t in weekly)
        if total <= 0 or self._recent("Weekly Summary", week_ago):
            return []

        notification = self.add(
            NotificationType.INFO,
            "Weekly Summary",
            f"This week you spent {format_currency(total, currency)} across {len(weekly)} transactions",
            now,
        )
        self._local.set(LAST_WEEKLY_SUMMARY_KEY, _epoch_ms(now))
        return [notification]
