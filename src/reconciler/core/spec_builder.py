"""Translation of request bodies into cluster custom resource specs.

The reconciliation core treats a spec as opaque: it asks a `SpecBuilder` for
one and hands it to the cluster API unchanged. `PostgresClusterSpecBuilder`
produces the spec of a Crunchy `PostgresCluster`.

Builders must be deterministic. A replayed message has to produce an equal
spec so that the cluster API recognises the write as a no-op.
"""

from abc import ABC, abstractmethod
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from reconciler.config import SpecBuilderConfig
from reconciler.core.exceptions import MalformedMessageError

# Compute requests per size tier: (cpu, memory)
SIZE_TIERS: dict[str, tuple[str, str]] = {
    "small": ("1", "2Gi"),
    "medium": ("2", "4Gi"),
    "large": ("4", "8Gi"),
}


class ClusterRequestBody(BaseModel):
    """Fields of a Create/Update body that shape the cluster spec.

    Unknown fields are ignored so producers can add fields ahead of the
    reconciler.
    """

    resource_name: str = Field(min_length=1)
    image: str | None = None
    postgres_version: int | None = Field(default=None, ge=10)
    replicas: int | None = Field(default=None, ge=1)
    storage: str | None = Field(default=None, min_length=1)
    backup_storage: str | None = Field(default=None, min_length=1)
    size: Literal["small", "medium", "large"] | None = None
    cpu: str | None = Field(default=None, min_length=1)
    memory: str | None = Field(default=None, min_length=1)

    model_config = ConfigDict(extra="ignore", frozen=True)


class SpecBuilder(ABC):
    """Builds the spec of a cluster custom resource from a message body."""

    @abstractmethod
    def build_spec(self, body: dict[str, Any]) -> dict[str, Any]:
        """Build a spec from a Create/Update body.

        Args:
            body: Message body.

        Returns:
            The spec, ready to be written to the cluster resource.

        Raises:
            MalformedMessageError: The body holds invalid values.
        """


class PostgresClusterSpecBuilder(SpecBuilder):
    """Builds `PostgresCluster` specs (postgres-operator.crunchydata.com/v1beta1).

    Args:
        config: Images, versions and sizes used where the body is silent.

    Example:
        ```python
        builder = PostgresClusterSpecBuilder(SpecBuilderConfig())
        spec = builder.build_spec({"resource_name": "db1", "size": "large"})
        spec["instances"][0]["resources"]
        # {"requests": {"cpu": "4", "memory": "8Gi"}, "limits": {...}}
        ```
    """

    def __init__(self, config: SpecBuilderConfig | None = None) -> None:
        self.config = config or SpecBuilderConfig()

    def _parse(self, body: dict[str, Any]) -> ClusterRequestBody:
        try:
            return ClusterRequestBody.model_validate(body)
        except ValidationError as e:
            fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
            msg = f"Invalid cluster request body ({fields}): {e.error_count()} validation error(s)"
            raise MalformedMessageError(msg, payload=body) from e

    @staticmethod
    def _resources(request: ClusterRequestBody) -> dict[str, Any] | None:
        tier_cpu, tier_memory = SIZE_TIERS.get(request.size or "", (None, None))
        cpu = request.cpu or tier_cpu
        memory = request.memory or tier_memory
        compute = {k: v for k, v in (("cpu", cpu), ("memory", memory)) if v is not None}
        if not compute:
            return None
        return {"requests": dict(compute), "limits": dict(compute)}

    def build_spec(self, body: dict[str, Any]) -> dict[str, Any]:
        request = self._parse(body)
        cfg = self.config

        instance: dict[str, Any] = {
            "name": "instance1",
            "replicas": request.replicas or cfg.default_replicas,
            "dataVolumeClaimSpec": {
                "accessModes": ["ReadWriteOnce"],
                "resources": {"requests": {"storage": request.storage or cfg.default_storage}},
            },
        }
        resources = self._resources(request)
        if resources is not None:
            instance["resources"] = resources

        return {
            "image": request.image or cfg.postgres_image,
            "postgresVersion": request.postgres_version or cfg.postgres_version,
            "instances": [instance],
            "backups": {
                "pgbackrest": {
                    "image": cfg.pgbackrest_image,
                    "repos": [
                        {
                            "name": "repo1",
                            "volume": {
                                "volumeClaimSpec": {
                                    "accessModes": ["ReadWriteOnce"],
                                    "resources": {
                                        "requests": {
                                            "storage": request.backup_storage or cfg.default_backup_storage
                                        }
                                    },
                                }
                            },
                        }
                    ],
                }
            },
        }
