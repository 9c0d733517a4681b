"""Ordered, idempotent lifecycle of a managed cluster's Kubernetes objects.

Every operation is safe to repeat under redelivery:

- ensures are no-ops when the object already matches
- the cluster resource is upserted, never duplicated
- deleting an object that is already gone is success

Ordering within one message is strict. `apply` establishes the namespace, then
the ingress route, then the cluster resource (the cluster's controller expects
its namespace and routing to exist). `destroy` deletes the cluster resource
before the namespace.

Every failure other than not-found propagates unchanged so that the
reconciliation loop can leave the message for redelivery.
"""

import logging
from typing import Any

from reconciler.clients.interfaces import ClusterAPI
from reconciler.core.exceptions import ResourceNotFoundError
from reconciler.core.models import ClusterResource

logger = logging.getLogger("reconciler.lifecycle_service")


class ResourceLifecycleManager:
    """Drives the namespace, ingress route and cluster resource of one cluster.

    Example:
        >>> manager = ResourceLifecycleManager(cluster_api)
        >>> manager.apply("db1", spec)
        >>> manager.destroy("db1")
    """

    def __init__(self, cluster_api: ClusterAPI) -> None:
        """Initialize the lifecycle manager.

        Args:
            cluster_api: Kubernetes API used for every mutation.
        """
        self.cluster_api = cluster_api

    def ensure_namespace(self, name: str) -> None:
        self.cluster_api.ensure_namespace(name)

    def ensure_ingress_route(self, namespace: str) -> None:
        self.cluster_api.ensure_ingress_route(namespace)

    def create_or_update_cluster_resource(
        self, namespace: str, name: str, spec: dict[str, Any]
    ) -> ClusterResource:
        return self.cluster_api.create_or_update_cluster_resource(namespace, name, spec)

    def delete_cluster_resource(self, namespace: str, name: str) -> None:
        """Delete the cluster resource; a missing resource is success."""
        try:
            self.cluster_api.delete_cluster_resource(namespace, name)
        except ResourceNotFoundError:
            logger.info(
                "Cluster resource already absent",
                extra={"namespace": namespace, "resource_name": name},
            )

    def delete_namespace(self, name: str) -> None:
        """Delete the namespace; a missing namespace is success."""
        try:
            self.cluster_api.delete_namespace(name)
        except ResourceNotFoundError:
            logger.info("Namespace already absent", extra={"namespace": name})

    def apply(self, resource_name: str, spec: dict[str, Any]) -> ClusterResource:
        """Bring the cluster named `resource_name` to `spec`.

        Args:
            resource_name: Name of the namespace, ingress route and cluster
                resource.
            spec: Desired cluster resource spec.

        Returns:
            The cluster resource as stored by the API server.

        Raises:
            ClusterAPIError: A step failed. Earlier steps stay in place and are
                no-ops when the message is redelivered.
        """
        self.ensure_namespace(resource_name)
        self.ensure_ingress_route(resource_name)
        resource = self.create_or_update_cluster_resource(resource_name, resource_name, spec)
        logger.info("Cluster reconciled", extra={"resource_name": resource_name})
        return resource

    def destroy(self, resource_name: str) -> None:
        """Delete the cluster resource, then its namespace.

        Raises:
            ClusterAPIError: A delete failed for a reason other than not-found.
        """
        self.delete_cluster_resource(resource_name, resource_name)
        self.delete_namespace(resource_name)
        logger.info("Cluster deleted", extra={"resource_name": resource_name})
