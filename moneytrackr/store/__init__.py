"""Finance data store and derived analytics."""

from moneytrackr.store.analytics import GoalProgress, RecentChange
from moneytrackr.store.finance import FinanceStore, GoalStateError, MutationListener

__all__ = [
    "FinanceStore",
    "GoalProgress",
    "GoalStateError",
    "MutationListener",
    "RecentChange",
]
