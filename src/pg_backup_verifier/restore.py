from __future__ import annotations

from pathlib import Path
from typing import Any

from .config import VerifierConfig
from .k8s import ResourceClient
from .manifests import resource_name_from_yaml
from .models import (
    AzuriteBackend,
    BackupSource,
    ClusterRestoreSpec,
    ExternalClusterDefinition,
    ExternalClusterSource,
    ManagedAzureBackend,
    MinioBackend,
    SecretKeySelector,
    StorageBackendConfig,
)

CA_CERTIFICATE_KEY = "ca.crt"
CREDENTIAL_ID_KEY = "ID"
CREDENTIAL_SECRET_KEY = "KEY"

MINIO_DESTINATION_PATH = "s3://cluster-backups/"
MINIO_ENDPOINT_URL = "https://minio-service:9000"
MINIO_CA_SECRET_NAME = "minio-server-ca-secret"
MINIO_CREDENTIALS_SECRET_NAME = "backup-storage-creds"

AZURITE_ENDPOINT = "https://azurite:10000/storageaccountname"
AZURITE_CA_SECRET_NAME = "azurite-ca-secret"
AZURITE_CONNECTION_SECRET_NAME = "azurite"
AZURITE_CONNECTION_STRING_KEY = "AZURE_CONNECTION_STRING"


def azure_destination_path(storage_account: str, source_cluster_name: str) -> str:
    return f"https://{storage_account}.blob.core.windows.net/{source_cluster_name}/"


def azurite_destination_path(source_cluster_name: str) -> str:
    return f"{AZURITE_ENDPOINT}/{source_cluster_name}"


def managed_azure_backend(*, storage_account: str, source_cluster_name: str, credentials_secret: str) -> ManagedAzureBackend:
    return ManagedAzureBackend(
        destination_path=azure_destination_path(storage_account, source_cluster_name),
        storage_account=SecretKeySelector(name=credentials_secret, key=CREDENTIAL_ID_KEY),
        storage_key=SecretKeySelector(name=credentials_secret, key=CREDENTIAL_SECRET_KEY),
    )


def minio_backend() -> MinioBackend:
    return MinioBackend(
        destination_path=MINIO_DESTINATION_PATH,
        endpoint_url=MINIO_ENDPOINT_URL,
        endpoint_ca=SecretKeySelector(name=MINIO_CA_SECRET_NAME, key=CA_CERTIFICATE_KEY),
        access_key_id=SecretKeySelector(name=MINIO_CREDENTIALS_SECRET_NAME, key=CREDENTIAL_ID_KEY),
        secret_access_key=SecretKeySelector(name=MINIO_CREDENTIALS_SECRET_NAME, key=CREDENTIAL_SECRET_KEY),
    )


def azurite_backend(*, source_cluster_name: str) -> AzuriteBackend:
    return AzuriteBackend(
        destination_path=azurite_destination_path(source_cluster_name),
        endpoint_ca=SecretKeySelector(name=AZURITE_CA_SECRET_NAME, key=CA_CERTIFICATE_KEY),
        connection_string=SecretKeySelector(
            name=AZURITE_CONNECTION_SECRET_NAME,
            key=AZURITE_CONNECTION_STRING_KEY,
        ),
    )


class RestoreSpecBuilder:
    """Build and submit Cluster resources bootstrapped from a backup with PITR.

    Every mode shares instance count, storage and PostgreSQL parameters; only
    the recovery source and, for external clusters, the storage backend vary.
    """

    def __init__(self, *, resource_client: ResourceClient, config: VerifierConfig) -> None:
        self.resource_client = resource_client
        self.config = config

    def build_from_backup_with_pitr(
        self,
        *,
        namespace: str,
        cluster_name: str,
        backup_name: str,
        target_time: str,
    ) -> ClusterRestoreSpec:
        return ClusterRestoreSpec(
            name=cluster_name,
            namespace=namespace,
            storage_class=self.config.default_storage_class,
            recovery=BackupSource(backup_name=backup_name),
            target_time=target_time,
        )

    def build_from_external_cluster(
        self,
        *,
        namespace: str,
        cluster_name: str,
        source_cluster_name: str,
        target_time: str,
        backend: StorageBackendConfig,
    ) -> ClusterRestoreSpec:
        return ClusterRestoreSpec(
            name=cluster_name,
            namespace=namespace,
            storage_class=self.config.default_storage_class,
            recovery=ExternalClusterSource(cluster_name=source_cluster_name),
            target_time=target_time,
            external_clusters=(ExternalClusterDefinition(name=source_cluster_name, backend=backend),),
        )

    def build_from_external_cluster_on_azure(
        self,
        *,
        namespace: str,
        cluster_name: str,
        source_cluster_name: str,
        target_time: str,
        storage_credentials_secret: str,
        storage_account: str,
    ) -> ClusterRestoreSpec:
        return self.build_from_external_cluster(
            namespace=namespace,
            cluster_name=cluster_name,
            source_cluster_name=source_cluster_name,
            target_time=target_time,
            backend=managed_azure_backend(
                storage_account=storage_account,
                source_cluster_name=source_cluster_name,
                credentials_secret=storage_credentials_secret,
            ),
        )

    def build_from_external_cluster_on_minio(
        self,
        *,
        namespace: str,
        cluster_name: str,
        source_cluster_name: str,
        target_time: str,
    ) -> ClusterRestoreSpec:
        return self.build_from_external_cluster(
            namespace=namespace,
            cluster_name=cluster_name,
            source_cluster_name=source_cluster_name,
            target_time=target_time,
            backend=minio_backend(),
        )

    def build_from_external_cluster_on_azurite(
        self,
        *,
        namespace: str,
        cluster_name: str,
        source_cluster_name: str,
        target_time: str,
    ) -> ClusterRestoreSpec:
        return self.build_from_external_cluster(
            namespace=namespace,
            cluster_name=cluster_name,
            source_cluster_name=source_cluster_name,
            target_time=target_time,
            backend=azurite_backend(source_cluster_name=source_cluster_name),
        )

    def create_from_backup_with_pitr(
        self,
        *,
        namespace: str,
        cluster_name: str,
        backup_manifest: str | Path,
        target_time: str,
    ) -> dict[str, Any]:
        spec = self.build_from_backup_with_pitr(
            namespace=namespace,
            cluster_name=cluster_name,
            backup_name=resource_name_from_yaml(backup_manifest),
            target_time=target_time,
        )
        return self.resource_client.create_cluster(spec)

    def create_from_external_cluster_on_azure(
        self,
        *,
        namespace: str,
        cluster_name: str,
        source_cluster_name: str,
        target_time: str,
        storage_credentials_secret: str,
        storage_account: str,
    ) -> dict[str, Any]:
        spec = self.build_from_external_cluster_on_azure(
            namespace=namespace,
            cluster_name=cluster_name,
            source_cluster_name=source_cluster_name,
            target_time=target_time,
            storage_credentials_secret=storage_credentials_secret,
            storage_account=storage_account,
        )
        return self.resource_client.create_cluster(spec)

    def create_from_external_cluster_on_minio(
        self,
        *,
        namespace: str,
        cluster_name: str,
        source_cluster_name: str,
        target_time: str,
    ) -> dict[str, Any]:
        spec = self.build_from_external_cluster_on_minio(
            namespace=namespace,
            cluster_name=cluster_name,
            source_cluster_name=source_cluster_name,
            target_time=target_time,
        )
        return self.resource_client.create_cluster(spec)

    def create_from_external_cluster_on_azurite(
        self,
        *,
        namespace: str,
        cluster_name: str,
        source_cluster_name: str,
        target_time: str,
    ) -> dict[str, Any]:
        spec = self.build_from_external_cluster_on_azurite(
            namespace=namespace,
            cluster_name=cluster_name,
            source_cluster_name=source_cluster_name,
            target_time=target_time,
        )
        return self.resource_client.create_cluster(spec)
