"""
Derived analytics over a list of transactions.

Pure functions, recomputed on every call. None of them raise on empty
input: totals are 0 and mappings are empty.
"""

import re
from datetime import date, timedelta
from typing import Iterable, Literal, NamedTuple, Optional, Sequence

from moneytrackr.models.finance import (
    Goal,
    GoalCategory,
    Transaction,
    TransactionType,
)


ChangeKind = Literal["income", "expense", "networth"]

# Length of each comparison window used by recent_change
RECENT_WINDOW_DAYS = 30

# (keywords, category) pairs used to infer a budget's category from its title
_TITLE_CATEGORY_HINTS = (
    (("food", "dining", "treats"), "Food & Dining"),
    (("entertainment", "fun"), "Entertainment"),
    (("transport", "travel"), "Transportation"),
    (("education", "learning"), "Education"),
    (("shopping",), "Shopping"),
    (("utilities",), "Utilities"),
    (("healthcare", "health"), "Healthcare"),
    (("housing", "rent"), "Housing"),
)


class RecentChange(NamedTuple):
    amount: float
    percentage: float


class GoalProgress(NamedTuple):
    """Progress of a goal; ``current`` is month-to-date spending for budgets."""
    current: float
    target: float
    percentage: float
    target_category: Optional[str]

    @property
    def is_over(self) -> bool:
        return self.percentage > 100

    @property
    def is_near_limit(self) -> bool:
        return 80 < self.percentage <= 100


def _sum_by_type(transactions: Iterable[Transaction], kind: TransactionType) -> float:
    return sum(t.amount for t in transactions if t.type == kind)


def total_income(transactions: Sequence[Transaction]) -> float:
    return _sum_by_type(transactions, TransactionType.INCOME)


def total_expenses(transactions: Sequence[Transaction]) -> float:
    return _sum_by_type(transactions, TransactionType.EXPENSE)


def net_worth(transactions: Sequence[Transaction]) -> float:
    return total_income(transactions) - total_expenses(transactions)


def category_totals(transactions: Sequence[Transaction]) -> dict[str, float]:
    """Expense amount per category. Income never contributes."""
    totals: dict[str, float] = {}
    for t in transactions:
        if t.type == TransactionType.EXPENSE:
            totals[t.category] = totals.get(t.category, 0) + t.amount
    return totals


def largest_transaction_amount(transactions: Sequence[Transaction]) -> float:
    return max((t.amount for t in transactions), default=0)


def unique_categories_count(transactions: Sequence[Transaction]) -> int:
    return len({t.category for t in transactions})


def daily_average_expense(transactions: Sequence[Transaction]) -> float:
    """Total expenses divided by the number of distinct days with an expense."""
    expenses = [t for t in transactions if t.type == TransactionType.EXPENSE]
    if not expenses:
        return 0
    days = {t.date for t in expenses}
    return sum(t.amount for t in expenses) / len(days)


def _window_value(transactions: Sequence[Transaction], kind: ChangeKind) -> float:
    if kind == "income":
        return total_income(transactions)
    if kind == "expense":
        return total_expenses(transactions)
    return net_worth(transactions)


def recent_change(
    transactions: Sequence[Transaction],
    kind: ChangeKind,
    today: Optional[date] = None,
) -> RecentChange:
    """
    Compare the trailing 30 days with the 30 days before them.

    The recent window is [today - 30d, today]; the previous window is
    [today - 60d, today - 30d). The percentage is relative to the
    magnitude of the previous value and is 0 when that value is 0.
    """
    if kind not in ("income", "expense", "networth"):
        raise ValueError(f"Unknown change kind: {kind}")

    today = today or date.today()
    recent_start = today - timedelta(days=RECENT_WINDOW_DAYS)
    previous_start = today - timedelta(days=2 * RECENT_WINDOW_DAYS)

    recent = [t for t in transactions if recent_start <= t.date <= today]
    previous = [t for t in transactions if previous_start <= t.date < recent_start]

    current_value = _window_value(recent, kind)
    previous_value = _window_value(previous, kind)

    amount = current_value - previous_value
    percentage = amount / abs(previous_value) * 100 if previous_value != 0 else 0
    return RecentChange(amount=amount, percentage=percentage)


def infer_target_category(goal: Goal) -> str:
    """
    Transaction category a budget goal tracks.

    Uses ``target_category`` when set, otherwise guesses from the title
    with budget words removed, falling back to the cleaned title itself.
    """
    if goal.target_category:
        return goal.target_category

    clean_title = goal.title
    for word in ("budget", "limit", "spending"):
        clean_title = re.sub(word, "", clean_title, count=1, flags=re.IGNORECASE)
    clean_title = clean_title.strip()
    lowered = clean_title.lower()

    for keywords, category in _TITLE_CATEGORY_HINTS:
        if any(keyword in lowered for keyword in keywords):
            return category
    return clean_title or "Other"


def month_spending(
    transactions: Sequence[Transaction],
    category: str,
    today: Optional[date] = None,
) -> float:
    """Expenses in ``category`` during the calendar month containing ``today``."""
    today = today or date.today()
    return sum(
        t.amount for t in transactions
        if t.type == TransactionType.EXPENSE
        and t.category == category
        and t.date.year == today.year
        and t.date.month == today.month
    )


def goal_progress(
    goal: Goal,
    transactions: Sequence[Transaction],
    today: Optional[date] = None,
) -> GoalProgress:
    """Progress toward a goal; budgets measure this month's category spending."""
    if goal.category == GoalCategory.EXPENSE_LIMIT:
        category = infer_target_category(goal)
        current = month_spending(transactions, category, today)
    else:
        category = goal.target_category
        current = goal.current_amount

    percentage = current / goal.target_amount * 100 if goal.target_amount > 0 else 0
    return GoalProgress(
        current=current,
        target=goal.target_amount,
        percentage=percentage,
        target_category=category,
    )
