"""Routing of decoded messages to lifecycle sequences."""

import logging

from reconciler.core.models import DispatchOutcome, Message, MessageType
from reconciler.core.spec_builder import SpecBuilder

from .lifecycle_service import ResourceLifecycleManager

logger = logging.getLogger("reconciler.dispatcher")


class MessageDispatcher:
    """Routes a message to the lifecycle sequence of its type.

    - `Create` and `Update` share one path: build the spec, then `apply`
      (the cluster resource write is an upsert). The spec is built before
      the namespace and route are ensured, so an invalid body changes nothing.
    - `Delete` runs `destroy`.
    - `Snapshot` is accepted and ignored.
    - Unknown types are logged and reported as `UNRECOGNIZED`; the loop
      acknowledges them so they are not redelivered forever.

    Errors from the spec builder and the lifecycle manager propagate.
    """

    def __init__(self, lifecycle: ResourceLifecycleManager, spec_builder: SpecBuilder) -> None:
        self.lifecycle = lifecycle
        self.spec_builder = spec_builder

    def dispatch(self, message: Message) -> DispatchOutcome:
        """Handle one decoded message.

        Args:
            message: Decoded message. Create/Update/Delete messages carry a
                validated `resource_name`.

        Returns:
            What was done with the message.

        Raises:
            MalformedMessageError: The body cannot be turned into a spec.
            UpstreamError: A Kubernetes call failed.
        """
        message_type = message.message_type

        if message_type in (MessageType.CREATE, MessageType.UPDATE):
            spec = self.spec_builder.build_spec(message.body)
            self.lifecycle.apply(message.resource_name, spec)
            return DispatchOutcome.APPLIED

        if message_type is MessageType.DELETE:
            self.lifecycle.destroy(message.resource_name)
            return DispatchOutcome.DELETED

        if message_type is MessageType.SNAPSHOT:
            logger.info("Snapshot message ignored", extra={"msg_id": message.id})
            return DispatchOutcome.SKIPPED

        logger.warning(
            "Unrecognized message type",
            extra={"msg_id": message.id, "payload": message.payload},
        )
        return DispatchOutcome.UNRECOGNIZED
