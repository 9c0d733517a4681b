"""pgmq work queue client.

pgmq is a message queue implemented as Postgres functions. This module calls
those functions through SQLAlchemy Core:

- `pgmq.read(queue, vt, 1)`: lease one message; it stays invisible for `vt`
  seconds and `read_ct` counts its deliveries
- `pgmq.delete(queue, msg_id)`: acknowledge
- `pgmq.archive(queue, msg_id)`: move to the archive table (dead letters)
- `pgmq.send(queue, message)`: enqueue (used by producers and tests)
- `pgmq.create(queue)`: create the queue tables

Each statement runs in its own transaction. `OperationalError` (connection
drops, server restarts) is retried a bounded number of times; every other
SQLAlchemy error, and retries that run out, surface as `QueueError`.
"""

import json
import logging
from typing import Any

import attrs
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import ArgumentError, NoSuchModuleError, OperationalError, SQLAlchemyError

from reconciler.config import QueueConfig
from reconciler.core.exceptions import QueueError, StartupError
from reconciler.core.models import QueuedMessage
from reconciler.foundation.retry import RetryWithBackoff

from .interfaces.work_queue import WorkQueue
from .mixins import LoggerMixin

logger = logging.getLogger("reconciler.clients.pgmq")

_READ_SQL = text(
    "SELECT msg_id, read_ct, enqueued_at, vt, message "
    "FROM pgmq.read(CAST(:queue_name AS text), CAST(:vt AS integer), 1)"
)
_DELETE_SQL = text("SELECT pgmq.delete(CAST(:queue_name AS text), CAST(:msg_id AS bigint))")
_ARCHIVE_SQL = text("SELECT pgmq.archive(CAST(:queue_name AS text), CAST(:msg_id AS bigint))")
_SEND_SQL = text("SELECT * FROM pgmq.send(CAST(:queue_name AS text), CAST(:message AS jsonb))")
_CREATE_SQL = text("SELECT pgmq.create(CAST(:queue_name AS text))")
_PING_SQL = text("SELECT 1")


@attrs.define(frozen=False, slots=True)
class PGMQueueClient(LoggerMixin, WorkQueue):
    """`WorkQueue` backed by the pgmq Postgres extension.

    Attributes:
        engine: SQLAlchemy engine connected to the pgmq database.
        max_retries: Attempts for one statement on `OperationalError`.
        retry_min_wait: Minimum backoff between attempts in seconds.
        retry_max_wait: Maximum backoff between attempts in seconds.

    Example:
        ```python
        from reconciler.config import QueueConfig
        from reconciler.clients.pgmq import PGMQueueClient

        queue = PGMQueueClient.from_config(QueueConfig.from_env())
        queued = queue.read("control_plane", visibility_timeout=30)
        if queued is not None:
            queue.delete("control_plane", queued.msg_id)
        ```
    """

    engine: Engine
    max_retries: int = 3
    retry_min_wait: float = 0.5
    retry_max_wait: float = 5.0
    _retry: RetryWithBackoff = attrs.field(init=False)

    def __attrs_post_init__(self) -> None:
        self._retry = RetryWithBackoff(
            max_attempts=self.max_retries,
            wait_min=self.retry_min_wait,
            wait_max=self.retry_max_wait,
            retry_exceptions=(OperationalError,),
            logger=logger,
        )

    @classmethod
    def from_config(cls, config: QueueConfig) -> "PGMQueueClient":
        """Create a client from configuration.

        The engine connects lazily; call `ping()` to verify connectivity.

        Raises:
            StartupError: The connection URL or its driver is invalid.
        """
        try:
            engine = create_engine(config.connection_url, pool_pre_ping=True)
        except (ArgumentError, NoSuchModuleError) as e:
            msg = f"Invalid queue connection URL: {e}"
            raise StartupError(msg) from e
        return cls(
            engine=engine,
            max_retries=config.max_retries,
            retry_min_wait=config.retry_min_wait,
            retry_max_wait=config.retry_max_wait,
        )

    def _execute(self, operation: str, statement, params: dict[str, Any]):
        def _run():
            with self.engine.begin() as conn:
                result = conn.execute(statement, params)
                return result.mappings().first()

        try:
            return self._retry.call(_run)
        except SQLAlchemyError as e:
            msg = f"pgmq {operation} on queue {params.get('queue_name')!r} failed: {e}"
            raise QueueError(msg) from e

    def read(self, queue_name: str, visibility_timeout: int) -> QueuedMessage | None:
        row = self._execute("read", _READ_SQL, {"queue_name": queue_name, "vt": visibility_timeout})
        if row is None:
            return None
        return QueuedMessage(
            msg_id=row["msg_id"],
            read_ct=row["read_ct"],
            payload=row["message"],
            enqueued_at=row["enqueued_at"],
        )

    def delete(self, queue_name: str, msg_id: int) -> bool:
        row = self._execute("delete", _DELETE_SQL, {"queue_name": queue_name, "msg_id": msg_id})
        return bool(row and row["delete"])

    def archive(self, queue_name: str, msg_id: int) -> bool:
        row = self._execute("archive", _ARCHIVE_SQL, {"queue_name": queue_name, "msg_id": msg_id})
        return bool(row and row["archive"])

    def send(self, queue_name: str, payload: Any) -> int:
        row = self._execute("send", _SEND_SQL, {"queue_name": queue_name, "message": json.dumps(payload)})
        if row is None:
            msg = f"pgmq send on queue {queue_name!r} returned no message id"
            raise QueueError(msg)
        return int(row["send"])

    def create_queue(self, queue_name: str) -> None:
        """Create the queue (idempotent in pgmq)."""
        self._execute("create", _CREATE_SQL, {"queue_name": queue_name})
        self._logger.info("Ensured queue exists", extra={"queue_name": queue_name})

    def ping(self) -> None:
        """Verify the database is reachable.

        Raises:
            StartupError: The database cannot be reached.
        """
        try:
            self._execute("ping", _PING_SQL, {})
        except QueueError as e:
            msg = f"Work queue database is unreachable: {e}"
            raise StartupError(msg) from e
