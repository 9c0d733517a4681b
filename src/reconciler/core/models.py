"""Domain models for reconciliation.

Queue payloads are untyped JSON. They are decoded exactly once, at the queue
boundary, into a typed `Message`; downstream code (dispatcher, lifecycle
manager) never re-inspects raw fields.

All classes use `attrs` for concise, correct class definitions.
"""

import re
from datetime import datetime
from enum import Enum
from typing import Any

import attrs

from reconciler.core.exceptions import MalformedMessageError

# RFC 1123 label: the resource name doubles as the namespace name
_RFC1123_LABEL = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")
_MAX_LABEL_LENGTH = 63


class MessageType(str, Enum):
    """Declared type of a queue message."""

    CREATE = "Create"
    UPDATE = "Update"
    DELETE = "Delete"
    SNAPSHOT = "Snapshot"
    UNKNOWN = "Unknown"

    @classmethod
    def parse(cls, value: Any) -> "MessageType":
        """Classify a raw `message_type` value.

        Matching is case-insensitive, so the `SnapShot` spelling used by some
        producers maps to `SNAPSHOT`. Missing, non-string and unrecognised
        values map to `UNKNOWN`.
        """
        if not isinstance(value, str):
            return cls.UNKNOWN
        normalized = value.strip().lower()
        for member in cls:
            if member is not cls.UNKNOWN and member.value.lower() == normalized:
                return member
        return cls.UNKNOWN

    @property
    def targets_resource(self) -> bool:
        """Whether messages of this type must name a resource."""
        return self in (MessageType.CREATE, MessageType.UPDATE, MessageType.DELETE)


class DispatchOutcome(str, Enum):
    """Result of dispatching one message."""

    APPLIED = "applied"
    DELETED = "deleted"
    SKIPPED = "skipped"
    UNRECOGNIZED = "unrecognized"


@attrs.define(frozen=True, slots=True)
class QueuedMessage:
    """A message as delivered by the work queue.

    Attributes:
        msg_id: Queue identifier used to acknowledge (delete) the message.
        read_ct: How many times the message has been delivered, this
            delivery included.
        payload: Raw JSON payload.
        enqueued_at: When the producer enqueued the message, if known.
    """

    msg_id: int
    read_ct: int
    payload: Any
    enqueued_at: datetime | None = None


def _validate_resource_name(body: dict[str, Any], payload: Any) -> str:
    resource_name = body.get("resource_name")
    if not isinstance(resource_name, str) or not resource_name:
        msg = "body.resource_name must be a non-empty string"
        raise MalformedMessageError(msg, payload=payload)
    if len(resource_name) > _MAX_LABEL_LENGTH or not _RFC1123_LABEL.match(resource_name):
        msg = f"body.resource_name {resource_name!r} is not a valid RFC 1123 label"
        raise MalformedMessageError(msg, payload=payload)
    return resource_name


@attrs.define(frozen=True, slots=True)
class Message:
    """A decoded unit of work.

    Attributes:
        id: Queue message id, unique per delivery attempt.
        message_type: Declared type of the message.
        body: Message body (empty mapping when the payload carried none).
        resource_name: Identity key shared by the namespace, the ingress route
            and the cluster resource. Set for Create/Update/Delete.
        delivery_count: Number of deliveries so far.
        payload: Raw payload, for logging.
    """

    id: int
    message_type: MessageType
    body: dict[str, Any]
    resource_name: str | None = None
    delivery_count: int = 1
    payload: Any = None

    @classmethod
    def decode(cls, queued: QueuedMessage) -> "Message":
        """Decode a queued payload into a typed message.

        Args:
            queued: Message as delivered by the work queue.

        Returns:
            The decoded message. Payloads whose type cannot be classified decode
            to `MessageType.UNKNOWN`.

        Raises:
            MalformedMessageError: A Create/Update/Delete message lacks an
                object body or a valid `body.resource_name`.
        """
        payload = queued.payload
        raw = payload if isinstance(payload, dict) else {}
        message_type = MessageType.parse(raw.get("message_type"))
        body = raw.get("body")

        resource_name = None
        if message_type.targets_resource:
            if not isinstance(body, dict):
                msg = f"{message_type.value} message body must be an object"
                raise MalformedMessageError(msg, payload=payload)
            resource_name = _validate_resource_name(body, payload)

        return cls(
            id=queued.msg_id,
            message_type=message_type,
            body=body if isinstance(body, dict) else {},
            resource_name=resource_name,
            delivery_count=queued.read_ct,
            payload=payload,
        )


@attrs.define(frozen=True, slots=True)
class ClusterResource:
    """A database cluster custom resource as seen in the Kubernetes API.

    Attributes:
        name: Resource name.
        namespace: Namespace holding the resource.
        spec: Desired state written by the reconciler.
        status: Observed state owned by the cluster's own controller.
    """

    name: str
    namespace: str
    spec: dict[str, Any] = attrs.field(factory=dict)
    status: dict[str, Any] = attrs.field(factory=dict)

    @classmethod
    def from_k8s(cls, obj: dict[str, Any]) -> "ClusterResource":
        """Build from a custom object as returned by `CustomObjectsApi`."""
        metadata = obj.get("metadata") or {}
        return cls(
            name=metadata.get("name", ""),
            namespace=metadata.get("namespace", ""),
            spec=obj.get("spec") or {},
            status=obj.get("status") or {},
        )
