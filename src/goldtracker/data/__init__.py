"""Persistence layer.

Provides the SQLite database manager, the typed price snapshot store and
the signal ledger store.
"""

from goldtracker.data.database import TrackerDatabase
from goldtracker.data.signals import SignalStore
from goldtracker.data.store import PriceStore

__all__ = ["PriceStore", "SignalStore", "TrackerDatabase"]
