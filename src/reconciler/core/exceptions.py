"""Exception hierarchy for the reconciler.

The hierarchy encodes the recovery policy of the reconciliation loop:

- `UpstreamError` (and its subclasses): an external system failed. Retryable:
  the message is not acknowledged and comes back after the visibility timeout.
  - `ClusterAPIError`: the Kubernetes API rejected or failed a request.
    - `ResourceNotFoundError`: 404. Deletes treat it as success.
    - `ResourceConflictError`: 409, or a namespace that is still terminating.
    - `InvalidResourceError`: 422, the API rejected the object as malformed.
  - `QueueError`: the work queue failed.
- `ReconcilerError`: domain errors.
  - `MalformedMessageError`: the producer broke the message contract. Logged
    with the full payload and left for redelivery, which the delivery cap
    eventually routes to the dead-letter archive.
  - `StartupError`: the process cannot start (no Kubernetes client, no queue).
    Fatal.

## Usage

```python
from reconciler.core.exceptions import ClusterAPIError, ResourceNotFoundError

try:
    cluster_api.delete_namespace(name)
except ResourceNotFoundError:
    pass  # already gone
```
"""

from typing import Any

# Re-export UpstreamError from foundation so callers import one module
from reconciler.foundation.exceptions import UpstreamError


class ReconcilerError(Exception):
    """Base exception class for reconciler domain errors."""


class MalformedMessageError(ReconcilerError):
    """Raised when a queue message violates the producer contract.

    Examples:
        - `body.resource_name` missing, empty, or not a string
        - `body` is not a JSON object
        - a spec field has an invalid value (e.g. `replicas: 0`)

    Attributes:
        payload: The raw message payload, kept for logging.
    """

    def __init__(self, message: str, payload: Any = None) -> None:
        super().__init__(message)
        self.payload = payload


class StartupError(ReconcilerError):
    """Raised when the process cannot build a client it needs to run.

    The reconciliation loop never starts after this error and the process
    exits with a non-zero status.
    """


class ClusterAPIError(UpstreamError):
    """Raised when a Kubernetes API call fails.

    Attributes:
        status: HTTP status returned by the API server, if any.
        reason: Reason phrase returned by the API server, if any.
    """

    def __init__(self, message: str, status: int | None = None, reason: str | None = None) -> None:
        super().__init__(message)
        self.status = status
        self.reason = reason


class ResourceNotFoundError(ClusterAPIError):
    """Raised when the addressed Kubernetes object does not exist."""


class ResourceConflictError(ClusterAPIError):
    """Raised when the object is in a state that blocks the request."""


class InvalidResourceError(ClusterAPIError):
    """Raised when the API server rejects an object as invalid."""


class QueueError(UpstreamError):
    """Raised when a work queue operation fails."""


__all__ = [
    "ClusterAPIError",
    "InvalidResourceError",
    "MalformedMessageError",
    "QueueError",
    "ReconcilerError",
    "ResourceConflictError",
    "ResourceNotFoundError",
    "StartupError",
    "UpstreamError",
]
