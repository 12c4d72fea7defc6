"""
Queue Parallelizer

Resumable fan-out of an ordered task list across any number of worker
processes, backed by a leased message queue and a durable status ledger.
"""

__version__ = "1.0.0"
