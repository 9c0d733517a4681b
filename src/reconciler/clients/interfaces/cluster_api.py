"""Kubernetes cluster API interface.

Every resource of one logical database cluster is keyed by its resource name:
the namespace, the ingress route inside it, and the cluster custom resource
inside it all share that name.
"""

from abc import ABC, abstractmethod
from typing import Any

from reconciler.core.models import ClusterResource


class ClusterAPI(ABC):
    """Typed operations on the Kubernetes objects of a managed cluster."""

    @abstractmethod
    def ensure_namespace(self, name: str) -> None:
        """Create the namespace if it does not exist.

        Args:
            name: Namespace name.

        Raises:
            ResourceConflictError: The namespace exists but is terminating.
            ClusterAPIError: Any other API failure.

        Note:
            An existing namespace is not an error (no-op).
        """

    @abstractmethod
    def delete_namespace(self, name: str) -> None:
        """Delete the namespace, cascading to every object inside it.

        Raises:
            ResourceNotFoundError: The namespace does not exist.
            ClusterAPIError: Any other API failure.
        """

    @abstractmethod
    def ensure_ingress_route(self, namespace: str) -> None:
        """Create or correct the ingress route exposing the cluster.

        Args:
            namespace: Namespace (and name) of the cluster to expose.

        Raises:
            ClusterAPIError: The API call failed.
        """

    @abstractmethod
    def create_or_update_cluster_resource(
        self, namespace: str, name: str, spec: dict[str, Any]
    ) -> ClusterResource:
        """Create the cluster resource, or replace the spec of an existing one.

        Only the spec is written; status owned by the cluster's controller is
        left intact. An identical spec is a no-op.

        Args:
            namespace: Namespace holding the resource.
            name: Resource name.
            spec: Desired spec.

        Returns:
            The resource as stored by the API server.

        Raises:
            ClusterAPIError: The API call failed.
        """

    @abstractmethod
    def delete_cluster_resource(self, namespace: str, name: str) -> None:
        """Delete the cluster resource.

        Raises:
            ResourceNotFoundError: The resource does not exist.
            ClusterAPIError: Any other API failure.
        """

    @abstractmethod
    def list_cluster_resources(self, namespace: str) -> list[ClusterResource]:
        """List the cluster resources in a namespace.

        Raises:
            ClusterAPIError: The API call failed.
        """
