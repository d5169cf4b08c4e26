from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping, Union

API_GROUP = "postgresql.k8s.enterprisedb.io"
API_VERSION = "v1"


class BackupPhase:
    PENDING = "pending"
    STARTED = "started"
    RUNNING = "running"
    WAL_ARCHIVING_FAILING = "walArchivingFailing"
    COMPLETED = "completed"
    FAILED = "failed"


RESTORE_POSTGRESQL_PARAMETERS: Mapping[str, str] = MappingProxyType(
    {
        "log_checkpoints": "on",
        "log_lock_waits": "on",
        "log_min_duration_statement": "1000",
        "log_statement": "ddl",
        "log_temp_files": "1024",
        "log_autovacuum_min_duration": "1s",
        "log_replication_commands": "on",
    }
)


@dataclass(frozen=True)
class BackupRequest:
    namespace: str
    manifest_path: Path
    name: str


@dataclass(frozen=True)
class BackupRecord:
    namespace: str
    name: str
    phase: str = ""
    begin_lsn: str = ""
    end_lsn: str = ""
    begin_wal: str = ""
    end_wal: str = ""
    error: str = ""

    @classmethod
    def from_resource(cls, resource: Mapping[str, Any]) -> BackupRecord:
        metadata = resource.get("metadata") or {}
        status = resource.get("status") or {}
        return cls(
            namespace=str(metadata.get("namespace") or ""),
            name=str(metadata.get("name") or ""),
            phase=str(status.get("phase") or ""),
            begin_lsn=str(status.get("beginLSN") or ""),
            end_lsn=str(status.get("endLSN") or ""),
            begin_wal=str(status.get("beginWal") or ""),
            end_wal=str(status.get("endWal") or ""),
            error=str(status.get("error") or ""),
        )

    def missing_recovery_metadata(self) -> list[str]:
        fields = (
            ("beginLSN", self.begin_lsn),
            ("beginWal", self.begin_wal),
            ("endLSN", self.end_lsn),
            ("endWal", self.end_wal),
        )
        return [name for name, value in fields if not value]

    @property
    def has_recovery_metadata(self) -> bool:
        return not self.missing_recovery_metadata()


@dataclass(frozen=True)
class SecretKeySelector:
    name: str
    key: str

    def to_dict(self) -> dict[str, str]:
        return {"name": self.name, "key": self.key}


@dataclass(frozen=True)
class ManagedAzureBackend:
    """Azure Blob Storage addressed by storage account, authenticated by an account id/key pair."""

    destination_path: str
    storage_account: SecretKeySelector
    storage_key: SecretKeySelector

    def to_object_store(self) -> dict[str, Any]:
        return {
            "destinationPath": self.destination_path,
            "azureCredentials": {
                "storageAccount": self.storage_account.to_dict(),
                "storageKey": self.storage_key.to_dict(),
            },
        }


@dataclass(frozen=True)
class AzuriteBackend:
    """Azurite emulator, authenticated by a single connection string."""

    destination_path: str
    endpoint_ca: SecretKeySelector
    connection_string: SecretKeySelector

    def to_object_store(self) -> dict[str, Any]:
        return {
            "destinationPath": self.destination_path,
            "endpointCA": self.endpoint_ca.to_dict(),
            "azureCredentials": {
                "connectionString": self.connection_string.to_dict(),
            },
        }


@dataclass(frozen=True)
class MinioBackend:
    """S3-compatible Minio endpoint, authenticated by an access/secret key pair."""

    destination_path: str
    endpoint_url: str
    endpoint_ca: SecretKeySelector
    access_key_id: SecretKeySelector
    secret_access_key: SecretKeySelector

    def to_object_store(self) -> dict[str, Any]:
        return {
            "destinationPath": self.destination_path,
            "endpointURL": self.endpoint_url,
            "endpointCA": self.endpoint_ca.to_dict(),
            "s3Credentials": {
                "accessKeyId": self.access_key_id.to_dict(),
                "secretAccessKey": self.secret_access_key.to_dict(),
            },
        }


StorageBackendConfig = Union[ManagedAzureBackend, AzuriteBackend, MinioBackend]


@dataclass(frozen=True)
class ExternalClusterDefinition:
    name: str
    backend: StorageBackendConfig

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "barmanObjectStore": self.backend.to_object_store()}


@dataclass(frozen=True)
class BackupSource:
    backup_name: str

    def to_recovery(self) -> dict[str, Any]:
        return {"backup": {"name": self.backup_name}}


@dataclass(frozen=True)
class ExternalClusterSource:
    cluster_name: str

    def to_recovery(self) -> dict[str, Any]:
        return {"source": self.cluster_name}


RecoverySource = Union[BackupSource, ExternalClusterSource]


@dataclass(frozen=True)
class ClusterRestoreSpec:
    name: str
    namespace: str
    storage_class: str
    recovery: RecoverySource
    target_time: str | None = None
    external_clusters: tuple[ExternalClusterDefinition, ...] = ()
    instances: int = 3
    storage_size: str = "1Gi"
    postgresql_parameters: Mapping[str, str] = field(default_factory=lambda: RESTORE_POSTGRESQL_PARAMETERS)

    def to_manifest(self) -> dict[str, Any]:
        recovery = self.recovery.to_recovery()
        if self.target_time:
            recovery["recoveryTarget"] = {"targetTime": self.target_time}

        spec: dict[str, Any] = {
            "instances": self.instances,
            "storage": {"size": self.storage_size, "storageClass": self.storage_class},
            "postgresql": {"parameters": dict(self.postgresql_parameters)},
            "bootstrap": {"recovery": recovery},
        }
        if self.external_clusters:
            spec["externalClusters"] = [cluster.to_dict() for cluster in self.external_clusters]

        return {
            "apiVersion": f"{API_GROUP}/{API_VERSION}",
            "kind": "Cluster",
            "metadata": {"name": self.name, "namespace": self.namespace},
            "spec": spec,
        }


@dataclass(frozen=True)
class CommandResult:
    command: str
    stdout: str
    stderr: str
    returncode: int


@dataclass(frozen=True)
class ArtifactCount:
    count: int
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None
