"""Kubernetes client for the objects of a managed database cluster.

This module implements `ClusterAPI` with the official Kubernetes Python
client. A managed cluster named `<name>` owns three objects:

- the namespace `<name>`
- a Traefik `IngressRouteTCP` `<name>` inside it, routing
  `HostSNI(<name>.<domain>)` to the `<name>-primary` service
- the cluster custom resource `<name>` inside it (a Crunchy `PostgresCluster`
  by default; coordinates come from `KubernetesConfig`)

## Resilience Features

1. **Per-call timeout**: every request carries `_request_timeout`. All
   attempts of one call, backoff included, fit inside the queue visibility
   timeout (`KubernetesConfig.call_budget`, checked by `Settings`).
2. **Retry with Exponential Backoff**: transport errors, throttling (429) and
   5xx responses are retried a bounded number of times.
3. **Circuit Breaker**: repeated failures open the circuit and calls fail fast
   with `UpstreamError`. Not-found, conflict and invalid-resource answers do
   not count.

## Error Mapping

`ApiException` is translated into the reconciler hierarchy:

- 404 → `ResourceNotFoundError`
- 409 → `ResourceConflictError`
- 422 → `InvalidResourceError`
- anything else (401, 403, 5xx after retries, transport errors) → `ClusterAPIError`
"""

import logging
from typing import Any

import attrs
import pybreaker
from kubernetes import client
from kubernetes import config as k8s_config
from kubernetes.client.rest import ApiException
from tenacity import Retrying, retry_if_exception, stop_after_attempt, wait_exponential
from urllib3.exceptions import HTTPError as TransportError

from reconciler.config import KubernetesConfig
from reconciler.core.exceptions import (
    ClusterAPIError,
    InvalidResourceError,
    ResourceConflictError,
    ResourceNotFoundError,
    StartupError,
)
from reconciler.core.models import ClusterResource
from reconciler.foundation.circuit_breaker import with_circuit_breaker
from reconciler.foundation.retry import HTTPErrorClassifier, create_retry_logger

from .interfaces.cluster_api import ClusterAPI
from .mixins import CircuitBreakerMixin, LoggerMixin

logger = logging.getLogger("reconciler.clients.kubernetes")

MANAGED_BY_LABELS: dict[str, str] = {"app.kubernetes.io/managed-by": "reconciler"}


class KubernetesErrorClassifier(HTTPErrorClassifier):
    """Classifies Kubernetes client exceptions into retriable and permanent."""

    def is_retriable(self, exc: BaseException) -> bool:
        if isinstance(exc, TransportError):
            return True
        if isinstance(exc, ApiException):
            # status 0 means the request never got an HTTP answer
            if not exc.status:
                return True
            return self.is_retriable_http_status(exc.status)
        return False

    def get_error_details(self, exc: BaseException) -> dict[str, Any]:
        if isinstance(exc, ApiException):
            return {"http_status": exc.status, "reason": exc.reason}
        return {}


_k8s_classifier = KubernetesErrorClassifier()
_log_retry = create_retry_logger(
    logger,
    _k8s_classifier.get_error_details,
    "Kubernetes API call failed, retrying",
)


def _translate_api_exception(operation: str, exc: ApiException) -> ClusterAPIError:
    msg = f"Kubernetes {operation} failed: {exc.status} {exc.reason}"
    if exc.status == 404:
        return ResourceNotFoundError(msg, status=exc.status, reason=exc.reason)
    if exc.status == 409:
        return ResourceConflictError(msg, status=exc.status, reason=exc.reason)
    if exc.status == 422:
        return InvalidResourceError(msg, status=exc.status, reason=exc.reason)
    return ClusterAPIError(msg, status=exc.status, reason=exc.reason)


@attrs.define(frozen=False, slots=True)
class KubernetesClusterClient(CircuitBreakerMixin, LoggerMixin, ClusterAPI):
    """`ClusterAPI` backed by `CoreV1Api` and `CustomObjectsApi`.

    Attributes:
        core_api: `kubernetes.client.CoreV1Api` instance (namespaces).
        custom_api: `kubernetes.client.CustomObjectsApi` instance (ingress
            route and cluster resource).
        config: Kubernetes settings (timeouts, retries, resource coordinates).

    Example:
        ```python
        from reconciler.config import KubernetesConfig
        from reconciler.clients.kubernetes import KubernetesClusterClient

        cluster_api = KubernetesClusterClient.from_config(KubernetesConfig.from_env())
        cluster_api.ensure_namespace("db1")
        ```
    """

    core_api: Any
    custom_api: Any
    config: KubernetesConfig = attrs.field(factory=KubernetesConfig)
    _breaker: pybreaker.CircuitBreaker = attrs.field(init=False)

    def _circuit_breaker_config(self) -> tuple[str, int, int]:
        return (
            "kubernetes",
            self.config.circuit_breaker_threshold,
            self.config.circuit_breaker_timeout,
        )

    def _circuit_breaker_exclusions(self) -> tuple[type[BaseException], ...]:
        # Answers about one object, not signs of an unhealthy API server
        return (ResourceNotFoundError, ResourceConflictError, InvalidResourceError)

    def __attrs_post_init__(self) -> None:
        self._init_circuit_breaker()

    @classmethod
    def from_config(cls, config: KubernetesConfig) -> "KubernetesClusterClient":
        """Create a client from the runtime environment.

        In-cluster configuration is tried first (service account), then the
        local kubeconfig.

        Args:
            config: Kubernetes settings.

        Returns:
            Configured client.

        Raises:
            StartupError: Neither configuration source could be loaded.
        """
        try:
            k8s_config.load_incluster_config()
            logger.info("Loaded in-cluster Kubernetes configuration")
        except k8s_config.ConfigException:
            try:
                k8s_config.load_kube_config()
            except (k8s_config.ConfigException, OSError) as e:
                msg = f"Unable to load Kubernetes configuration: {e}"
                raise StartupError(msg) from e
            logger.info("Loaded kubeconfig from local machine")

        api_client = client.ApiClient()
        return cls(
            core_api=client.CoreV1Api(api_client),
            custom_api=client.CustomObjectsApi(api_client),
            config=config,
        )

    def _call(self, operation: str, func, *args, **kwargs):
        """Execute one API request with timeout, retry and error translation.

        Args:
            operation: Name of the operation (for logging and messages).
            func: Kubernetes client method.
            *args: Positional arguments for func.
            **kwargs: Keyword arguments for func.

        Returns:
            Result of func(*args, **kwargs).

        Raises:
            ClusterAPIError: Or one of its subclasses, see module docstring.
        """
        kwargs.setdefault("_request_timeout", self.config.request_timeout)
        try:
            for attempt in Retrying(
                stop=stop_after_attempt(self.config.max_retries),
                wait=wait_exponential(min=self.config.retry_min_wait, max=self.config.retry_max_wait),
                retry=retry_if_exception(_k8s_classifier.is_retriable),
                before_sleep=_log_retry,
                reraise=True,
            ):
                with attempt:
                    return func(*args, **kwargs)
        except ApiException as e:
            raise _translate_api_exception(operation, e) from e
        except TransportError as e:
            msg = f"Kubernetes {operation} failed: {e}"
            raise ClusterAPIError(msg) from e

    # ------------------------------------------------------------------
    # Namespaces
    # ------------------------------------------------------------------
    @with_circuit_breaker("kubernetes")
    def ensure_namespace(self, name: str) -> None:
        try:
            existing = self._call("read_namespace", self.core_api.read_namespace, name=name)
        except ResourceNotFoundError:
            existing = None

        if existing is not None:
            phase = getattr(existing.status, "phase", None) if existing.status else None
            if phase == "Terminating":
                msg = f"Namespace {name} is terminating"
                raise ResourceConflictError(msg, status=409, reason="Terminating")
            self._logger.debug("Namespace already exists", extra={"namespace": name})
            return

        body = client.V1Namespace(metadata=client.V1ObjectMeta(name=name, labels=dict(MANAGED_BY_LABELS)))
        try:
            self._call("create_namespace", self.core_api.create_namespace, body=body)
        except ResourceConflictError:
            self._logger.debug("Namespace created concurrently", extra={"namespace": name})
            return
        self._logger.info("Created namespace", extra={"namespace": name})

    @with_circuit_breaker("kubernetes")
    def delete_namespace(self, name: str) -> None:
        self._call("delete_namespace", self.core_api.delete_namespace, name=name)
        self._logger.info("Deleted namespace", extra={"namespace": name})

    # ------------------------------------------------------------------
    # Ingress route
    # ------------------------------------------------------------------
    def _ingress_route_body(self, namespace: str) -> dict[str, Any]:
        cfg = self.config
        return {
            "apiVersion": f"{cfg.ingress_group}/{cfg.ingress_version}",
            "kind": "IngressRouteTCP",
            "metadata": {
                "name": namespace,
                "namespace": namespace,
                "labels": dict(MANAGED_BY_LABELS),
            },
            "spec": {
                "entryPoints": [cfg.ingress_entry_point],
                "routes": [
                    {
                        "match": f"HostSNI(`{namespace}.{cfg.ingress_domain}`)",
                        "services": [{"name": f"{namespace}-primary", "port": cfg.ingress_service_port}],
                    }
                ],
                "tls": {"passthrough": True},
            },
        }

    def _ingress_coordinates(self, namespace: str) -> dict[str, str]:
        return {
            "group": self.config.ingress_group,
            "version": self.config.ingress_version,
            "namespace": namespace,
            "plural": self.config.ingress_plural,
        }

    @with_circuit_breaker("kubernetes")
    def ensure_ingress_route(self, namespace: str) -> None:
        desired = self._ingress_route_body(namespace)
        coords = self._ingress_coordinates(namespace)

        try:
            existing = self._call(
                "get_ingress_route",
                self.custom_api.get_namespaced_custom_object,
                name=namespace,
                **coords,
            )
        except ResourceNotFoundError:
            existing = None

        if existing is None:
            try:
                self._call(
                    "create_ingress_route",
                    self.custom_api.create_namespaced_custom_object,
                    body=desired,
                    **coords,
                )
            except ResourceConflictError:
                self._logger.debug("Ingress route created concurrently", extra={"namespace": namespace})
                return
            self._logger.info("Created ingress route", extra={"namespace": namespace})
            return

        if existing.get("spec") == desired["spec"]:
            self._logger.debug("Ingress route already up to date", extra={"namespace": namespace})
            return

        self._call(
            "patch_ingress_route",
            self.custom_api.patch_namespaced_custom_object,
            name=namespace,
            body=[{"op": "add", "path": "/spec", "value": desired["spec"]}],
            **coords,
        )
        self._logger.info("Corrected drifted ingress route", extra={"namespace": namespace})

    # ------------------------------------------------------------------
    # Cluster custom resource
    # ------------------------------------------------------------------
    def _cluster_coordinates(self, namespace: str) -> dict[str, str]:
        return {
            "group": self.config.cluster_group,
            "version": self.config.cluster_version,
            "namespace": namespace,
            "plural": self.config.cluster_plural,
        }

    def _get_cluster_resource(self, namespace: str, name: str) -> dict[str, Any] | None:
        try:
            return self._call(
                "get_cluster_resource",
                self.custom_api.get_namespaced_custom_object,
                name=name,
                **self._cluster_coordinates(namespace),
            )
        except ResourceNotFoundError:
            return None

    @with_circuit_breaker("kubernetes")
    def create_or_update_cluster_resource(
        self, namespace: str, name: str, spec: dict[str, Any]
    ) -> ClusterResource:
        coords = self._cluster_coordinates(namespace)
        existing = self._get_cluster_resource(namespace, name)

        if existing is None:
            body = {
                "apiVersion": f"{self.config.cluster_group}/{self.config.cluster_version}",
                "kind": self.config.cluster_kind,
                "metadata": {"name": name, "namespace": namespace, "labels": dict(MANAGED_BY_LABELS)},
                "spec": spec,
            }
            try:
                created = self._call(
                    "create_cluster_resource",
                    self.custom_api.create_namespaced_custom_object,
                    body=body,
                    **coords,
                )
            except ResourceConflictError:
                existing = self._get_cluster_resource(namespace, name)
                if existing is None:
                    raise
            else:
                self._logger.info(
                    "Created cluster resource",
                    extra={"namespace": namespace, "resource_name": name, "kind": self.config.cluster_kind},
                )
                return ClusterResource.from_k8s(created)

        if existing.get("spec") == spec:
            self._logger.debug(
                "Cluster resource spec already up to date",
                extra={"namespace": namespace, "resource_name": name},
            )
            return ClusterResource.from_k8s(existing)

        # JSON patch on /spec only; status and metadata stay with the operator
        op = "replace" if "spec" in existing else "add"
        patched = self._call(
            "patch_cluster_resource",
            self.custom_api.patch_namespaced_custom_object,
            name=name,
            body=[{"op": op, "path": "/spec", "value": spec}],
            **coords,
        )
        self._logger.info(
            "Replaced cluster resource spec",
            extra={"namespace": namespace, "resource_name": name, "kind": self.config.cluster_kind},
        )
        return ClusterResource.from_k8s(patched)

    @with_circuit_breaker("kubernetes")
    def delete_cluster_resource(self, namespace: str, name: str) -> None:
        self._call(
            "delete_cluster_resource",
            self.custom_api.delete_namespaced_custom_object,
            name=name,
            **self._cluster_coordinates(namespace),
        )
        self._logger.info("Deleted cluster resource", extra={"namespace": namespace, "resource_name": name})

    @with_circuit_breaker("kubernetes")
    def list_cluster_resources(self, namespace: str) -> list[ClusterResource]:
        response = self._call(
            "list_cluster_resources",
            self.custom_api.list_namespaced_custom_object,
            **self._cluster_coordinates(namespace),
        )
        return [ClusterResource.from_k8s(item) for item in response.get("items", [])]
