from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import logging
from typing import Any, Callable, TypeVar

from kubernetes import client, config
from kubernetes.client import ApiException
from urllib3.exceptions import HTTPError

from .models import API_GROUP, API_VERSION, BackupRecord, ClusterRestoreSpec

BACKUP_PLURAL = "backups"
CLUSTER_PLURAL = "clusters"
T = TypeVar("T")

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KubernetesClients:
    api_client: client.ApiClient
    custom_api: client.CustomObjectsApi


class KubernetesAuthenticationError(RuntimeError):
    """Raised when Kubernetes authentication configuration fails."""


class KubernetesResourceError(RuntimeError):
    """Raised when a custom resource cannot be read or created."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status

    @property
    def not_found(self) -> bool:
        return self.status == 404


def load_kubernetes_clients(
    *,
    kubeconfig_path: str | None,
    context: str | None,
    in_cluster: bool,
) -> KubernetesClients:
    expanded = _expand_kubeconfig_path(kubeconfig_path)
    try:
        if in_cluster:
            config.load_incluster_config()
        else:
            config.load_kube_config(config_file=expanded, context=context)
    except Exception as error:  # pylint: disable=broad-except
        raise KubernetesAuthenticationError(
            _format_authentication_error(
                in_cluster=in_cluster,
                kubeconfig_path=expanded,
                context=context,
                error=error,
            )
        ) from error

    api_client = client.ApiClient()
    return KubernetesClients(
        api_client=api_client,
        custom_api=client.CustomObjectsApi(api_client),
    )


class ResourceClient:
    """Create and fetch operator custom resources by namespaced name."""

    def __init__(self, custom_api: client.CustomObjectsApi) -> None:
        self.custom_api = custom_api

    @classmethod
    def from_clients(cls, clients: KubernetesClients) -> ResourceClient:
        return cls(clients.custom_api)

    def get_backup(self, namespace: str, name: str) -> BackupRecord:
        resource = _safe_resource_call(
            operation=f"get Backup '{namespace}/{name}'",
            func=lambda: self.custom_api.get_namespaced_custom_object(
                group=API_GROUP,
                version=API_VERSION,
                namespace=namespace,
                plural=BACKUP_PLURAL,
                name=name,
            ),
        )
        return BackupRecord.from_resource(resource)

    def create_cluster(self, spec: ClusterRestoreSpec) -> dict[str, Any]:
        logger.info("Creating Cluster %s/%s", spec.namespace, spec.name)
        return _safe_resource_call(
            operation=f"create Cluster '{spec.namespace}/{spec.name}'",
            func=lambda: self.custom_api.create_namespaced_custom_object(
                group=API_GROUP,
                version=API_VERSION,
                namespace=spec.namespace,
                plural=CLUSTER_PLURAL,
                body=spec.to_manifest(),
            ),
        )


def _safe_resource_call(*, operation: str, func: Callable[[], T]) -> T:
    try:
        return func()
    except ApiException as error:
        raise KubernetesResourceError(
            _format_api_exception_message(operation=operation, error=error),
            status=error.status,
        ) from error
    except HTTPError as error:
        reason = str(error).strip() or error.__class__.__name__
        raise KubernetesResourceError(
            f"Kubernetes API call failed while trying to {operation}: connection error ({reason}).",
            status=None,
        ) from error


def _format_api_exception_message(*, operation: str, error: ApiException) -> str:
    status = error.status if error.status is not None else "unknown"
    reason = error.reason or "no reason provided"
    return f"Kubernetes API call failed while trying to {operation}: API status {status} ({reason})."


def _expand_kubeconfig_path(kubeconfig_path: str | None) -> str | None:
    if kubeconfig_path is None:
        return None
    stripped = kubeconfig_path.strip()
    if not stripped:
        return None
    return str(Path(stripped).expanduser())


def _format_authentication_error(
    *,
    in_cluster: bool,
    kubeconfig_path: str | None,
    context: str | None,
    error: Exception,
) -> str:
    reason = str(error).strip() or error.__class__.__name__
    if in_cluster:
        return (
            "Kubernetes authentication setup failed while loading in-cluster service account credentials: "
            f"{reason}. Ensure the pod has a mounted service account token."
        )

    kubeconfig_source = kubeconfig_path or "default kubeconfig search path"
    context_message = f" with context '{context}'" if context else ""
    return (
        "Kubernetes authentication setup failed while loading kubeconfig "
        f"from '{kubeconfig_source}'{context_message}: {reason}. "
        "Verify the kubeconfig path and context are valid."
    )
