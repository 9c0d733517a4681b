"""Reconciliation business logic / orchestration services.

This module provides the services that turn queue messages into Kubernetes
state: the lifecycle manager (ordered, idempotent resource sequences), the
dispatcher (routing by message type) and the reconciliation loop.
"""

from .dispatcher import MessageDispatcher
from .lifecycle_service import ResourceLifecycleManager
from .reconciliation_loop import IterationOutcome, ReconciliationContext, ReconciliationLoop, reconcile_once

__all__ = [
    "IterationOutcome",
    "MessageDispatcher",
    "ReconciliationContext",
    "ReconciliationLoop",
    "ResourceLifecycleManager",
    "reconcile_once",
]
