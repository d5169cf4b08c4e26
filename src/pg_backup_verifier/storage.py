from __future__ import annotations

import json
import logging
import shlex

from .commands import CommandRunner
from .models import ArtifactCount

AZ_CLI_POD_NAME = "az-cli"
MINIO_CLIENT_POD_NAME = "mc"
MINIO_ALIAS = "minio"

logger = logging.getLogger(__name__)


class StorageListingError(RuntimeError):
    """Raised when a listing command produced output that is not a JSON array of names."""


def compose_az_blob_list_cmd(storage_account: str, storage_key: str, container_name: str, path: str) -> str:
    return (
        f"az storage blob list --account-name {storage_account} "
        f"--account-key {storage_key} "
        f'--container-name {container_name} --query "[?contains(@.name, `{path}`)].name"'
    )


def compose_az_blob_list_azurite_cmd(container_name: str, path: str) -> str:
    # Runs under bash inside the pod, so backticks stay escaped.
    return (
        f'az storage blob list --container-name {container_name} --query "[?contains(@.name, \\`{path}\\`)].name" '
        "--connection-string $AZURE_CONNECTION_STRING"
    )


def compose_pod_exec_cmd(namespace: str, pod_name: str, command: str) -> str:
    return f"kubectl exec -n {namespace} {pod_name} -- /bin/bash -c {shlex.quote(command)}"


def compose_minio_find_cmd(namespace: str, path: str) -> str:
    return f"kubectl exec -n {namespace} {MINIO_CLIENT_POD_NAME} -- mc find {MINIO_ALIAS} --name {path}"


class StorageInspector:
    """Count backup artifacts through each object store's own CLI.

    Every count is returned as an ``ArtifactCount``; callers must check
    ``error`` before trusting ``count``.
    """

    def __init__(self, command_runner: CommandRunner) -> None:
        self.command_runner = command_runner

    def count_files_on_azure_blob_storage(
        self,
        storage_account: str,
        storage_key: str,
        container_name: str,
        path: str,
    ) -> ArtifactCount:
        command = compose_az_blob_list_cmd(storage_account, storage_key, container_name, path)
        return self._count_json_listing(command)

    def count_files_on_azurite_blob_storage(self, namespace: str, container_name: str, path: str) -> ArtifactCount:
        command = compose_pod_exec_cmd(
            namespace,
            AZ_CLI_POD_NAME,
            compose_az_blob_list_azurite_cmd(container_name, path),
        )
        return self._count_json_listing(command)

    def count_files_on_minio(self, namespace: str, path: str) -> ArtifactCount:
        result, error = self.command_runner.run_unchecked(compose_minio_find_cmd(namespace, path))
        if error is not None:
            return ArtifactCount(count=-1, error=error)
        lines = [line for line in result.stdout.splitlines() if line.strip()]
        return ArtifactCount(count=len(lines))

    def _count_json_listing(self, command: str) -> ArtifactCount:
        result, error = self.command_runner.run_unchecked(command)
        if error is not None:
            return ArtifactCount(count=-1, error=error)

        count, parse_error = _count_name_array(result.stdout)
        if parse_error is not None:
            logger.debug("Unparseable listing output for command: %s", command)
        return ArtifactCount(count=count, error=parse_error)


def _count_name_array(output: str) -> tuple[int, StorageListingError | None]:
    """Count a JSON array of names; ``null`` is an empty listing.

    Arrays holding non-string items still report their length alongside the error.
    """
    try:
        parsed = json.loads(output)
    except json.JSONDecodeError as error:
        return 0, StorageListingError(f"listing output is not valid JSON: {error}")

    if parsed is None:
        return 0, None
    if not isinstance(parsed, list):
        return 0, StorageListingError(f"listing output must be a JSON array, got {type(parsed).__name__}")
    if not all(isinstance(item, str) for item in parsed):
        return len(parsed), StorageListingError("listing output must be a JSON array of strings")
    return len(parsed), None
