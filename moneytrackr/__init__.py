"""
MoneyTrackr - Core Package

The data layer of a personal-finance tracker: transactions, goals and
settings with a remote backend and a local fallback, an append-only
history of every change with backups and restore, and currency
conversion.

DESIGN PRINCIPLES:
1. The local store always holds the latest known state
2. Fail visibly: backend errors propagate, they are never hidden
3. History is append-only
4. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "MoneyTrackr Team"
