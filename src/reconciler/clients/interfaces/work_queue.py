"""Durable work queue interface.

Delivery is at-least-once: a read hides the message for the visibility
timeout, and the message reappears unless the consumer deletes it first.
"""

from abc import ABC, abstractmethod
from typing import Any

from reconciler.core.models import QueuedMessage


class WorkQueue(ABC):
    """Visibility-timeout queue consumed by the reconciliation loop."""

    @abstractmethod
    def read(self, queue_name: str, visibility_timeout: int) -> QueuedMessage | None:
        """Read the next visible message, hiding it for `visibility_timeout` seconds.

        Returns:
            The message, or None when no message is visible.

        Raises:
            QueueError: The queue could not be read.
        """

    @abstractmethod
    def delete(self, queue_name: str, msg_id: int) -> bool:
        """Acknowledge a message by deleting it.

        Returns:
            True if a message was deleted, False if it was already gone.

        Raises:
            QueueError: The queue could not be reached.
        """

    @abstractmethod
    def archive(self, queue_name: str, msg_id: int) -> bool:
        """Move a message out of the queue into its dead-letter archive.

        Returns:
            True if a message was archived, False if it was already gone.

        Raises:
            QueueError: The queue could not be reached.
        """

    @abstractmethod
    def send(self, queue_name: str, payload: dict[str, Any]) -> int:
        """Enqueue a payload and return its message id.

        Raises:
            QueueError: The queue could not be reached.
        """
