"""Security audit logging package."""

from moneytrackr.audit.logger import SecurityAuditLog, check_password_strength

__all__ = ["SecurityAuditLog", "check_password_strength"]
