"""Configuration management for the reconciler.

Settings are read from environment variables at process startup using
Pydantic models. `get_settings()` is cached with `@lru_cache` so settings are
loaded once per process (containers have static env vars).

## Environment Variables

**Work queue (pgmq)**
- `PG_CONN_URL` (required): Postgres connection string of the pgmq database.
  `postgres://` and `postgresql://` URLs are rewritten to the
  `postgresql+psycopg://` SQLAlchemy dialect.
- `PG_QUEUE_NAME` (required): Queue to consume.
- `QUEUE_VISIBILITY_TIMEOUT`: Seconds a read message stays invisible
  (default: `30`)
- `QUEUE_POLL_INTERVAL`: Sleep in seconds when the queue is empty
  (default: `1.0`)
- `QUEUE_MAX_DELIVERY_COUNT`: Deliveries before a malformed message is
  dead-lettered
  (default: `5`)
- `QUEUE_DEAD_LETTER_ENABLED`: Archive messages past the delivery cap
  (default: `true`)
- `QUEUE_CREATE_IF_MISSING`: Create the queue at startup (default: `false`)
- `QUEUE_MAX_RETRIES`, `QUEUE_RETRY_MIN_WAIT`, `QUEUE_RETRY_MAX_WAIT`:
  Bounded retries of one queue statement (defaults: `3`, `0.5`, `5.0`)

**Kubernetes**
- `K8S_INVENTORY_NAMESPACE`: Namespace listed after each message
  (default: `default`)
- `K8S_INVENTORY_ENABLED`: Enable the diagnostic listing (default: `true`)
- `K8S_REQUEST_TIMEOUT`: Per-call timeout in seconds (default: `5`)
- `K8S_MAX_RETRIES`, `K8S_RETRY_MIN_WAIT`, `K8S_RETRY_MAX_WAIT`
  (defaults: `3`, `0.5`, `4.0`). Every attempt plus the backoff between
  attempts must fit inside `QUEUE_VISIBILITY_TIMEOUT`.
- `K8S_CIRCUIT_BREAKER_THRESHOLD`, `K8S_CIRCUIT_BREAKER_TIMEOUT`
  (defaults: `5`, `30`)
- `CLUSTER_CRD_GROUP`, `CLUSTER_CRD_VERSION`, `CLUSTER_CRD_PLURAL`,
  `CLUSTER_CRD_KIND`: Cluster custom resource coordinates
  (default: `postgres-operator.crunchydata.com/v1beta1` `postgresclusters`)
- `INGRESS_ENTRY_POINT`, `INGRESS_DOMAIN`, `INGRESS_SERVICE_PORT`: Traefik
  `IngressRouteTCP` settings (defaults: `postgresql`,
  `coredb-development.com`, `5432`)

**Cluster spec defaults**
- `POSTGRES_IMAGE`, `PGBACKREST_IMAGE`, `POSTGRES_VERSION`,
  `DEFAULT_STORAGE`, `DEFAULT_BACKUP_STORAGE`, `DEFAULT_REPLICAS`

**Process**
- `LOG_LEVEL`: Root log level (default: `INFO`)
"""

import os
from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import SettingsConfigDict


def _require_env(name: str) -> str:
    value = os.getenv(name)
    if not value:
        msg = f"{name} must be set"
        raise ValueError(msg)
    return value


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


def normalize_connection_url(url: str) -> str:
    """Rewrite a libpq-style URL to the SQLAlchemy psycopg dialect.

    Args:
        url: Connection URL such as `postgres://user:pw@host:5432/db`.

    Returns:
        The URL with a `postgresql+psycopg://` scheme. URLs that already name
        a dialect are returned unchanged.
    """
    for prefix in ("postgres://", "postgresql://"):
        if url.startswith(prefix):
            return "postgresql+psycopg://" + url[len(prefix) :]
    return url


class QueueConfig(BaseModel):
    """Configuration for the pgmq work queue.

    Attributes:
        connection_url: SQLAlchemy connection URL of the pgmq database.
        queue_name: Name of the queue to consume.
        visibility_timeout: Seconds a read message stays invisible to other
            readers. Redelivery after this window is the at-least-once safety net.
        poll_interval: Seconds to sleep when the queue is empty.
        max_delivery_count: Deliveries after which a malformed message is
            dead-lettered.
        dead_letter_enabled: Whether to archive malformed messages at the cap.
        create_if_missing: Whether to create the queue at startup.
        max_retries: Attempts for one queue statement.
        retry_min_wait: Minimum backoff between attempts in seconds.
        retry_max_wait: Maximum backoff between attempts in seconds.
    """

    connection_url: str
    queue_name: str = Field(min_length=1)
    visibility_timeout: int = Field(default=30, gt=0)
    poll_interval: float = Field(default=1.0, gt=0)
    max_delivery_count: int = Field(default=5, ge=1)
    dead_letter_enabled: bool = True
    create_if_missing: bool = False
    max_retries: int = Field(default=3, ge=1)
    retry_min_wait: float = 0.5
    retry_max_wait: float = 5.0

    model_config = SettingsConfigDict(frozen=True)

    @classmethod
    def from_env(cls) -> "QueueConfig":
        """Create QueueConfig from environment variables.

        Raises:
            ValueError: If `PG_CONN_URL` or `PG_QUEUE_NAME` is missing.
        """
        return cls(
            connection_url=normalize_connection_url(_require_env("PG_CONN_URL")),
            queue_name=_require_env("PG_QUEUE_NAME"),
            visibility_timeout=int(os.getenv("QUEUE_VISIBILITY_TIMEOUT", "30")),
            poll_interval=float(os.getenv("QUEUE_POLL_INTERVAL", "1.0")),
            max_delivery_count=int(os.getenv("QUEUE_MAX_DELIVERY_COUNT", "5")),
            dead_letter_enabled=_env_bool("QUEUE_DEAD_LETTER_ENABLED", "true"),
            create_if_missing=_env_bool("QUEUE_CREATE_IF_MISSING", "false"),
            max_retries=int(os.getenv("QUEUE_MAX_RETRIES", "3")),
            retry_min_wait=float(os.getenv("QUEUE_RETRY_MIN_WAIT", "0.5")),
            retry_max_wait=float(os.getenv("QUEUE_RETRY_MAX_WAIT", "5.0")),
        )


class KubernetesConfig(BaseModel):
    """Configuration for the Kubernetes API client.

    Attributes:
        inventory_namespace: Namespace listed for observability after each message.
        inventory_enabled: Whether the diagnostic listing runs at all.
        request_timeout: Timeout in seconds for a single API call.
        max_retries: Attempts for a single API call on transient errors.
        retry_min_wait: Minimum backoff between attempts in seconds.
        retry_max_wait: Maximum backoff between attempts in seconds.
        circuit_breaker_threshold: Failures before the circuit opens.
        circuit_breaker_timeout: Seconds before the circuit half-opens.
        cluster_group: API group of the cluster custom resource.
        cluster_version: API version of the cluster custom resource.
        cluster_plural: Plural resource name of the cluster custom resource.
        cluster_kind: Kind of the cluster custom resource.
        ingress_group: API group of the ingress route.
        ingress_version: API version of the ingress route.
        ingress_plural: Plural resource name of the ingress route.
        ingress_entry_point: Traefik entry point that accepts database traffic.
        ingress_domain: Domain suffix of the SNI host (`<name>.<domain>`).
        ingress_service_port: Port of the cluster's primary service.
    """

    inventory_namespace: str = "default"
    inventory_enabled: bool = True
    request_timeout: int = Field(default=5, gt=0)
    max_retries: int = Field(default=3, ge=1)
    retry_min_wait: float = 0.5
    retry_max_wait: float = 4.0
    circuit_breaker_threshold: int = 5
    circuit_breaker_timeout: int = 30

    cluster_group: str = "postgres-operator.crunchydata.com"
    cluster_version: str = "v1beta1"
    cluster_plural: str = "postgresclusters"
    cluster_kind: str = "PostgresCluster"

    ingress_group: str = "traefik.containo.us"
    ingress_version: str = "v1alpha1"
    ingress_plural: str = "ingressroutetcps"
    ingress_entry_point: str = "postgresql"
    ingress_domain: str = "coredb-development.com"
    ingress_service_port: int = 5432

    model_config = SettingsConfigDict(frozen=True)

    def call_budget(self) -> float:
        """Worst-case seconds spent in one API call, retries included.

        Every attempt runs into `request_timeout`, and the exponential
        backoff between attempts (1s, 2s, 4s, ... clamped to
        `[retry_min_wait, retry_max_wait]`) is added on top.
        """
        waits = sum(
            max(self.retry_min_wait, min(2.0 ** (attempt - 1), self.retry_max_wait))
            for attempt in range(1, self.max_retries)
        )
        return self.max_retries * self.request_timeout + waits

    @classmethod
    def from_env(cls) -> "KubernetesConfig":
        """Create KubernetesConfig from environment variables."""
        return cls(
            inventory_namespace=os.getenv("K8S_INVENTORY_NAMESPACE", "default"),
            inventory_enabled=_env_bool("K8S_INVENTORY_ENABLED", "true"),
            request_timeout=int(os.getenv("K8S_REQUEST_TIMEOUT", "5")),
            max_retries=int(os.getenv("K8S_MAX_RETRIES", "3")),
            retry_min_wait=float(os.getenv("K8S_RETRY_MIN_WAIT", "0.5")),
            retry_max_wait=float(os.getenv("K8S_RETRY_MAX_WAIT", "4.0")),
            circuit_breaker_threshold=int(os.getenv("K8S_CIRCUIT_BREAKER_THRESHOLD", "5")),
            circuit_breaker_timeout=int(os.getenv("K8S_CIRCUIT_BREAKER_TIMEOUT", "30")),
            cluster_group=os.getenv("CLUSTER_CRD_GROUP", "postgres-operator.crunchydata.com"),
            cluster_version=os.getenv("CLUSTER_CRD_VERSION", "v1beta1"),
            cluster_plural=os.getenv("CLUSTER_CRD_PLURAL", "postgresclusters"),
            cluster_kind=os.getenv("CLUSTER_CRD_KIND", "PostgresCluster"),
            ingress_entry_point=os.getenv("INGRESS_ENTRY_POINT", "postgresql"),
            ingress_domain=os.getenv("INGRESS_DOMAIN", "coredb-development.com"),
            ingress_service_port=int(os.getenv("INGRESS_SERVICE_PORT", "5432")),
        )


class SpecBuilderConfig(BaseModel):
    """Defaults applied when a request body omits a cluster setting.

    Attributes:
        postgres_image: Postgres container image.
        pgbackrest_image: pgBackRest container image.
        postgres_version: Postgres major version.
        default_storage: Data volume size.
        default_backup_storage: Backup repository volume size.
        default_replicas: Number of Postgres instances.
    """

    postgres_image: str = "registry.developers.crunchydata.com/crunchydata/crunchy-postgres:ubi8-14.6-2"
    pgbackrest_image: str = "registry.developers.crunchydata.com/crunchydata/crunchy-pgbackrest:ubi8-2.41-2"
    postgres_version: int = 14
    default_storage: str = "1Gi"
    default_backup_storage: str = "1Gi"
    default_replicas: int = Field(default=1, ge=1)

    model_config = SettingsConfigDict(frozen=True)

    @classmethod
    def from_env(cls) -> "SpecBuilderConfig":
        """Create SpecBuilderConfig from environment variables."""
        defaults = cls()
        return cls(
            postgres_image=os.getenv("POSTGRES_IMAGE", defaults.postgres_image),
            pgbackrest_image=os.getenv("PGBACKREST_IMAGE", defaults.pgbackrest_image),
            postgres_version=int(os.getenv("POSTGRES_VERSION", str(defaults.postgres_version))),
            default_storage=os.getenv("DEFAULT_STORAGE", defaults.default_storage),
            default_backup_storage=os.getenv("DEFAULT_BACKUP_STORAGE", defaults.default_backup_storage),
            default_replicas=int(os.getenv("DEFAULT_REPLICAS", str(defaults.default_replicas))),
        )


class Settings(BaseModel):
    """Immutable runtime configuration for the reconciler.

    Attributes:
        queue: Work queue configuration.
        kubernetes: Kubernetes API configuration.
        spec_builder: Cluster spec defaults.
        log_level: Root log level.
    """

    queue: QueueConfig
    kubernetes: KubernetesConfig = Field(default_factory=KubernetesConfig)
    spec_builder: SpecBuilderConfig = Field(default_factory=SpecBuilderConfig)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    model_config = SettingsConfigDict(frozen=True)

    @model_validator(mode="after")
    def _check_timeouts(self) -> "Settings":
        # A call that outlives the visibility window races its own redelivery
        budget = self.kubernetes.call_budget()
        if budget >= self.queue.visibility_timeout:
            msg = (
                f"Worst-case Kubernetes call time ({budget:g}s: K8S_MAX_RETRIES x K8S_REQUEST_TIMEOUT "
                f"plus backoff) must be shorter than QUEUE_VISIBILITY_TIMEOUT ({self.queue.visibility_timeout}s)"
            )
            raise ValueError(msg)
        return self

    @classmethod
    def from_env(cls) -> "Settings":
        """Create Settings from environment variables.

        Raises:
            ValueError: If a required variable is missing or values are
                inconsistent (pydantic's ValidationError is a ValueError).
        """
        return cls(
            queue=QueueConfig.from_env(),
            kubernetes=KubernetesConfig.from_env(),
            spec_builder=SpecBuilderConfig.from_env(),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load and return application settings (cached per process).

    Returns:
        A frozen `Settings` instance with all configuration values.
    """
    return Settings.from_env()
