"""External system clients (Kubernetes API, pgmq work queue).

This module provides factory functions for creating configured client
instances from centralized configuration.
"""

from reconciler.config import KubernetesConfig, QueueConfig, get_settings

from .interfaces import ClusterAPI, WorkQueue
from .kubernetes import KubernetesClusterClient
from .pgmq import PGMQueueClient


def create_cluster_client(config: KubernetesConfig | None = None) -> KubernetesClusterClient:
    """Create a configured Kubernetes cluster client.

    Args:
        config: Optional KubernetesConfig. If None, uses settings from
            get_settings().

    Raises:
        StartupError: No Kubernetes configuration could be loaded.
    """
    if config is None:
        config = get_settings().kubernetes
    return KubernetesClusterClient.from_config(config)


def create_queue_client(config: QueueConfig | None = None) -> PGMQueueClient:
    """Create a configured pgmq queue client.

    Args:
        config: Optional QueueConfig. If None, uses settings from
            get_settings().
    """
    if config is None:
        config = get_settings().queue
    return PGMQueueClient.from_config(config)


__all__ = [
    "ClusterAPI",
    "KubernetesClusterClient",
    "PGMQueueClient",
    "WorkQueue",
    "create_cluster_client",
    "create_queue_client",
]
