"""
Enqueue planner module.
"""

from parallelizer.planner.enqueue import EnqueuePlanner, chunk

__all__ = [
    "EnqueuePlanner",
    "chunk",
]
