"""
Billing Kernel

Persistence, typed errors, structured logging and read models for the
receipt billing engine:
- Receipt lifecycle state (Draft -> Issued -> Cancelled)
- Row-level locking and guarded updates
- Persisted advisory document-generation locks
- Cash-cut buckets keyed by cashier, campus and business day
"""

__version__ = "0.1.0"
