"""The reconciliation loop: poll, dispatch, acknowledge, repeat.

One sequential worker handles at most one message at a time. Each iteration:

1. Polls the work queue with the visibility timeout.
2. On an empty queue (or a failed poll), returns `IDLE`; the loop sleeps for
   the poll interval.
3. Decodes and dispatches the message.
4. Acknowledges (deletes) the message only after dispatch succeeded
   (`ACKNOWLEDGED`). Any failure leaves the message in the queue; it becomes
   visible again after the visibility timeout (`RETRY_PENDING`).
5. Archives a malformed message once it has been delivered
   `max_delivery_count` times (`DEAD_LETTERED`). Cluster API and other
   failures are never capped: the request is valid and waits for the cluster.
6. Logs the cluster resources of the inventory namespace. This listing never
   affects the outcome.

Acknowledging only after success gives at-least-once processing. Lifecycle
operations are idempotent, so redelivery converges to the same state.
"""

import logging
import threading
from enum import Enum

import attrs

from reconciler.clients.interfaces import ClusterAPI, WorkQueue
from reconciler.config import Settings
from reconciler.core.exceptions import MalformedMessageError, QueueError, UpstreamError
from reconciler.core.models import Message, QueuedMessage
from reconciler.core.spec_builder import SpecBuilder

from .dispatcher import MessageDispatcher
from .lifecycle_service import ResourceLifecycleManager

logger = logging.getLogger("reconciler.reconciliation_loop")


class IterationOutcome(str, Enum):
    """What one loop iteration did."""

    IDLE = "idle"
    ACKNOWLEDGED = "acknowledged"
    RETRY_PENDING = "retry_pending"
    DEAD_LETTERED = "dead_lettered"


def _build_dispatcher(context: "ReconciliationContext") -> MessageDispatcher:
    return MessageDispatcher(ResourceLifecycleManager(context.cluster_api), context.spec_builder)


@attrs.define(frozen=True, slots=True)
class ReconciliationContext:
    """Handles shared by every iteration of the loop.

    Attributes:
        cluster_api: Kubernetes API.
        work_queue: Queue holding pending messages.
        spec_builder: Builds cluster specs for Create/Update.
        settings: Runtime configuration.
        dispatcher: Routes decoded messages; derived from the handles above.
    """

    cluster_api: ClusterAPI
    work_queue: WorkQueue
    spec_builder: SpecBuilder
    settings: Settings
    dispatcher: MessageDispatcher = attrs.field(
        init=False,
        default=attrs.Factory(_build_dispatcher, takes_self=True),
    )


def _dead_letter(
    context: ReconciliationContext, queued: QueuedMessage, error: MalformedMessageError
) -> IterationOutcome:
    queue_cfg = context.settings.queue
    try:
        context.work_queue.archive(queue_cfg.queue_name, queued.msg_id)
    except QueueError:
        logger.exception("Failed to archive message", extra={"msg_id": queued.msg_id})
        return IterationOutcome.RETRY_PENDING

    logger.error(
        "Malformed message reached delivery limit, moved to archive",
        extra={
            "msg_id": queued.msg_id,
            "read_ct": queued.read_ct,
            "max_delivery_count": queue_cfg.max_delivery_count,
            "error": str(error),
            "payload": queued.payload,
        },
    )
    return IterationOutcome.DEAD_LETTERED


def _log_inventory(context: ReconciliationContext) -> None:
    k8s_cfg = context.settings.kubernetes
    if not k8s_cfg.inventory_enabled:
        return
    try:
        resources = context.cluster_api.list_cluster_resources(k8s_cfg.inventory_namespace)
    except Exception as e:
        logger.warning(
            "Failed to list cluster resources",
            extra={"namespace": k8s_cfg.inventory_namespace, "error": str(e), "error_type": type(e).__name__},
        )
        return
    logger.info(
        "Cluster resource inventory",
        extra={
            "namespace": k8s_cfg.inventory_namespace,
            "count": len(resources),
            "resources": [resource.name for resource in resources],
        },
    )


def _handle(context: ReconciliationContext, queued: QueuedMessage) -> IterationOutcome:
    extra = {"msg_id": queued.msg_id, "read_ct": queued.read_ct}

    try:
        message = Message.decode(queued)
        outcome = context.dispatcher.dispatch(message)
    except MalformedMessageError as e:
        queue_cfg = context.settings.queue
        if queue_cfg.dead_letter_enabled and queued.read_ct >= queue_cfg.max_delivery_count:
            return _dead_letter(context, queued, e)
        logger.error(
            "Malformed message left for redelivery",
            extra={**extra, "error": str(e), "payload": e.payload if e.payload is not None else queued.payload},
        )
        return IterationOutcome.RETRY_PENDING
    except UpstreamError as e:
        logger.warning(
            "Message handling failed, left for redelivery",
            extra={**extra, "error": str(e), "error_type": type(e).__name__},
        )
        return IterationOutcome.RETRY_PENDING
    except Exception:
        logger.exception("Unexpected error while handling message", extra={**extra, "payload": queued.payload})
        return IterationOutcome.RETRY_PENDING

    try:
        deleted = context.work_queue.delete(context.settings.queue.queue_name, queued.msg_id)
    except QueueError:
        logger.exception("Failed to acknowledge message", extra=extra)
        return IterationOutcome.RETRY_PENDING

    if not deleted:
        logger.warning("Message was already gone when acknowledged", extra=extra)
    logger.info(
        "Message handled",
        extra={**extra, "message_type": message.message_type.value, "outcome": outcome.value},
    )
    return IterationOutcome.ACKNOWLEDGED


def reconcile_once(context: ReconciliationContext) -> IterationOutcome:
    """Run one iteration of the loop.

    Args:
        context: Shared handles and settings.

    Returns:
        What the iteration did. Never raises for per-message failures.
    """
    queue_cfg = context.settings.queue

    try:
        queued = context.work_queue.read(queue_cfg.queue_name, queue_cfg.visibility_timeout)
    except QueueError:
        logger.exception("Failed to poll work queue", extra={"queue_name": queue_cfg.queue_name})
        return IterationOutcome.IDLE

    if queued is None:
        logger.debug("Queue empty", extra={"queue_name": queue_cfg.queue_name})
        return IterationOutcome.IDLE

    outcome = _handle(context, queued)
    if outcome is not IterationOutcome.DEAD_LETTERED:
        _log_inventory(context)
    return outcome


class ReconciliationLoop:
    """Runs `reconcile_once` until asked to stop.

    Example:
        >>> loop = ReconciliationLoop(context)
        >>> loop.run()  # blocks until loop.stop() or a signal handler sets the event
    """

    def __init__(self, context: ReconciliationContext, stop_event: threading.Event | None = None) -> None:
        self.context = context
        self.stop_event = stop_event or threading.Event()

    def stop(self) -> None:
        """Ask the loop to exit after the in-flight iteration."""
        self.stop_event.set()

    def run(self, max_iterations: int | None = None) -> int:
        """Run iterations until stopped.

        Args:
            max_iterations: Exit after this many iterations. None runs until
                `stop()` is called.

        Returns:
            Number of iterations run.
        """
        poll_interval = self.context.settings.queue.poll_interval
        iterations = 0
        logger.info(
            "Reconciliation loop started",
            extra={"queue_name": self.context.settings.queue.queue_name},
        )

        while not self.stop_event.is_set():
            outcome = reconcile_once(self.context)
            iterations += 1
            if max_iterations is not None and iterations >= max_iterations:
                break
            if outcome is IterationOutcome.IDLE:
                # Event.wait doubles as an interruptible sleep
                self.stop_event.wait(poll_interval)

        logger.info("Reconciliation loop stopped", extra={"iterations": iterations})
        return iterations
