"""Core domain models, services, and shared types for the reconciler.

This module provides shared domain code used across all layers:
- Exception hierarchy for error handling
- Typed queue messages and cluster resources
- Cluster spec builders
- Reconciliation services (dispatcher, lifecycle manager, loop) in core/services/
"""

from .exceptions import MalformedMessageError, ReconcilerError, UpstreamError
from .models import ClusterResource, DispatchOutcome, Message, MessageType, QueuedMessage

__all__ = [
    "ClusterResource",
    "DispatchOutcome",
    "MalformedMessageError",
    "Message",
    "MessageType",
    "QueuedMessage",
    "ReconcilerError",
    "UpstreamError",
]
