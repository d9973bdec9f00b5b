"""Store module - SQLAlchemy attendance store and registry reconciliation."""

from attendsync.store.database import Database
from attendsync.store.reconciler import DatabaseReconciler

__all__ = [
    "Database",
    "DatabaseReconciler",
]
