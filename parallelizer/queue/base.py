"""
Queue client interface.

The queue engine is external; this module fixes the capability set the
planner and the worker rely on.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass

from parallelizer.constants import ProvisionOutcome
from parallelizer.types.job import BatchSendResult, Task


@dataclass(frozen=True)
class ReceivedMessage:
    """A leased message. Its lease is owned by whoever holds receipt_handle."""

    message_id: str
    receipt_handle: str
    body: str


class QueueClient(ABC):
    """
    Typed wrapper around a durable queue with visibility-timeout leases.

    Queues are addressed by url. Implementations raise QueueError for
    service failures and QueueNotFoundError for a missing queue.
    """

    @abstractmethod
    async def ensure_queue(self, name: str) -> tuple[str, ProvisionOutcome]:
        """Create the queue if needed and return its url."""

    @abstractmethod
    async def get_queue_url(self, name: str) -> str:
        """Resolve an existing queue by name."""

    @abstractmethod
    async def send_batch(self, queue_url: str, tasks: Sequence[Task]) -> BatchSendResult:
        """Send up to ten tasks in one call, reporting per-entry outcome."""

    @abstractmethod
    async def receive(
        self,
        queue_url: str,
        max_messages: int = 1,
        visibility_timeout: float | None = None,
    ) -> list[ReceivedMessage]:
        """Lease up to max_messages messages for visibility_timeout seconds."""

    @abstractmethod
    async def extend_lease(self, queue_url: str, receipt_handle: str, duration: float) -> None:
        """Push the lease deadline of a received message to now + duration."""

    @abstractmethod
    async def delete(self, queue_url: str, receipt_handle: str) -> None:
        """Acknowledge a received message."""

    @abstractmethod
    async def approximate_depth(self, queue_url: str) -> int | None:
        """Approximate number of visible messages, or None if unknown."""
