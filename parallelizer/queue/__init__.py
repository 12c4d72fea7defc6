"""
Queue module.
Contains the queue client interface and its SQS implementation.
"""

from parallelizer.queue.base import QueueClient, ReceivedMessage
from parallelizer.queue.sqs import SqsQueueClient

__all__ = [
    "QueueClient",
    "ReceivedMessage",
    "SqsQueueClient",
]
