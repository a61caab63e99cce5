"""In-app notifications and financial alert rules."""

from moneytrackr.notifications.center import NotificationCenter

__all__ = ["NotificationCenter"]
