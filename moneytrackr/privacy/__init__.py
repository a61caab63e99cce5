"""Consent, data-subject requests and privacy exports."""

from moneytrackr.privacy.manager import PrivacyManager

__all__ = ["PrivacyManager"]
