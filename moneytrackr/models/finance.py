"""
Core Finance Models for MoneyTrackr

Transactions, goals and user settings. Input models (``*Create`` and
``*Update``) carry the validation a form performs before it calls the
store; the store itself trusts what it is given.
"""

import datetime as dt
from enum import Enum
from typing import Optional

from pydantic import Field, field_validator, model_validator

from moneytrackr.models.base import CamelModel, utc_now


# =============================================================================
# ENUMS
# =============================================================================

class TransactionType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"


class GoalCategory(str, Enum):
    """
    What a goal measures.

    EXPENSE_LIMIT goals are budgets: progress is the month's spending in
    the goal's target category rather than ``current_amount``.
    """
    SAVINGS = "savings"
    EXPENSE_LIMIT = "expense-limit"
    INCOME_TARGET = "income-target"


class GoalPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class GoalStatus(str, Enum):
    """
    Goal lifecycle.

    ACTIVE <-> PAUSED by explicit toggle; ACTIVE/PAUSED -> COMPLETED by an
    explicit completion. COMPLETED is terminal.
    """
    ACTIVE = "active"
    COMPLETED = "completed"
    PAUSED = "paused"


class FontSize(str, Enum):
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"


class Layout(str, Enum):
    COMPACT = "compact"
    COMFORTABLE = "comfortable"


# Categories offered by the entry forms. Transaction.category stays free-form.
EXPENSE_CATEGORIES = (
    "Food & Dining",
    "Transportation",
    "Shopping",
    "Entertainment",
    "Bills & Utilities",
    "Healthcare",
    "Education",
    "Travel",
    "Other",
)

INCOME_CATEGORIES = (
    "Employment",
    "Freelance",
    "Investment",
    "Business",
    "Rental",
    "Gift",
    "Other",
)


# =============================================================================
# TRANSACTIONS
# =============================================================================

class TransactionCreate(CamelModel):
    """Fields a caller supplies to record a transaction."""

    type: TransactionType
    amount: float = Field(
        ...,
        gt=0,
        description="Amount in the transaction's currency"
    )
    description: str = Field(..., min_length=1, max_length=500)
    category: str = Field(..., min_length=1, max_length=100)
    date: dt.date
    time: dt.time
    payment_method: Optional[str] = None
    source: Optional[str] = None
    merchant: Optional[str] = None
    notes: Optional[str] = Field(default=None, max_length=1000)
    recurring: bool = False
    currency: Optional[str] = Field(
        default=None,
        description="ISO-like currency code; defaults to the profile currency"
    )

    @field_validator('currency')
    @classmethod
    def upper_currency(cls, v: Optional[str]) -> Optional[str]:
        return v.upper() if v else v


class Transaction(TransactionCreate):
    """A stored transaction. Owned by exactly one user (or the anonymous session)."""

    id: str = Field(..., min_length=1)


class TransactionUpdate(CamelModel):
    """Partial update. Only fields explicitly set are applied."""

    type: Optional[TransactionType] = None
    amount: Optional[float] = Field(default=None, gt=0)
    description: Optional[str] = Field(default=None, min_length=1, max_length=500)
    category: Optional[str] = Field(default=None, min_length=1, max_length=100)
    date: Optional[dt.date] = None
    time: Optional[dt.time] = None
    payment_method: Optional[str] = None
    source: Optional[str] = None
    merchant: Optional[str] = None
    notes: Optional[str] = Field(default=None, max_length=1000)
    recurring: Optional[bool] = None
    currency: Optional[str] = None


# =============================================================================
# GOALS
# =============================================================================

class GoalCreate(CamelModel):
    """Fields a caller supplies to create a goal."""

    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(default="", max_length=1000)
    target_amount: float = Field(..., gt=0)
    current_amount: float = Field(default=0.0, ge=0)
    deadline: dt.date
    category: GoalCategory
    priority: GoalPriority = GoalPriority.MEDIUM
    status: GoalStatus = GoalStatus.ACTIVE
    currency: Optional[str] = None
    target_category: Optional[str] = Field(
        default=None,
        description=(
            "Transaction category an expense-limit goal tracks. Soft reference: "
            "may be absent (inferred from the title) and need not match any "
            "existing transaction."
        )
    )

    @model_validator(mode='after')
    def validate_deadline(self) -> 'GoalCreate':
        """New goals must have a deadline that has not already passed."""
        if type(self) is GoalCreate and self.deadline < dt.date.today():
            raise ValueError("Goal deadline cannot be in the past")
        return self


class Goal(GoalCreate):
    """
    A stored goal.

    ``current_amount`` may exceed ``target_amount``; over-achievement and
    over-budget are valid states, not errors.
    """

    id: str = Field(..., min_length=1)
    created_at: dt.datetime = Field(default_factory=utc_now)

    @property
    def progress_percentage(self) -> float:
        if self.target_amount <= 0:
            return 0.0
        return self.current_amount / self.target_amount * 100


class GoalUpdate(CamelModel):
    """Partial goal update. Only fields explicitly set are applied."""

    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    target_amount: Optional[float] = Field(default=None, gt=0)
    current_amount: Optional[float] = Field(default=None, ge=0)
    deadline: Optional[dt.date] = None
    category: Optional[GoalCategory] = None
    priority: Optional[GoalPriority] = None
    status: Optional[GoalStatus] = None
    currency: Optional[str] = None
    target_category: Optional[str] = None


# =============================================================================
# USER SETTINGS
# =============================================================================

class ProfileSettings(CamelModel):
    name: str = "User"
    avatar: str = "👤"
    currency: str = "USD"


class NotificationPreferences(CamelModel):
    budget_alerts: bool = True
    goal_reminders: bool = True
    weekly_reports: bool = False
    email_notifications: bool = False


class PrivacyPreferences(CamelModel):
    show_balances: bool = True
    data_backup: bool = True
    analytics: bool = False


class AppearanceSettings(CamelModel):
    color_scheme: str = "green"
    font_size: FontSize = FontSize.MEDIUM
    layout: Layout = Layout.COMFORTABLE


class UserSettings(CamelModel):
    """Per-user singleton, created with these defaults on first load."""

    profile: ProfileSettings = Field(default_factory=ProfileSettings)
    notifications: NotificationPreferences = Field(default_factory=NotificationPreferences)
    privacy: PrivacyPreferences = Field(default_factory=PrivacyPreferences)
    appearance: AppearanceSettings = Field(default_factory=AppearanceSettings)


class ProfileUpdate(CamelModel):
    name: Optional[str] = None
    avatar: Optional[str] = None
    currency: Optional[str] = None


class NotificationPreferencesUpdate(CamelModel):
    budget_alerts: Optional[bool] = None
    goal_reminders: Optional[bool] = None
    weekly_reports: Optional[bool] = None
    email_notifications: Optional[bool] = None


class PrivacyPreferencesUpdate(CamelModel):
    show_balances: Optional[bool] = None
    data_backup: Optional[bool] = None
    analytics: Optional[bool] = None


class AppearanceUpdate(CamelModel):
    color_scheme: Optional[str] = None
    font_size: Optional[FontSize] = None
    layout: Optional[Layout] = None


class SettingsUpdate(CamelModel):
    """Partial settings update; each group is merged field by field."""

    profile: Optional[ProfileUpdate] = None
    notifications: Optional[NotificationPreferencesUpdate] = None
    privacy: Optional[PrivacyPreferencesUpdate] = None
    appearance: Optional[AppearanceUpdate] = None


def _merge_group(current: CamelModel, patch: Optional[CamelModel]) -> CamelModel:
    if patch is None:
        return current
    changes = patch.model_dump(exclude_unset=True, exclude_none=True)
    return type(current).model_validate({**current.model_dump(), **changes})


def merge_settings(current: UserSettings, patch: SettingsUpdate) -> UserSettings:
    """
    Merge a partial update into settings.

    Every group is merged independently: an omitted group, or an omitted
    field inside a group, keeps its current value.
    """
    return UserSettings(
        profile=_merge_group(current.profile, patch.profile),
        notifications=_merge_group(current.notifications, patch.notifications),
        privacy=_merge_group(current.privacy, patch.privacy),
        appearance=_merge_group(current.appearance, patch.appearance),
    )
