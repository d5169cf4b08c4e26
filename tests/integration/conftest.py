from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator
import os
import shlex
import shutil
import subprocess

import pytest

from pg_backup_verifier.config import VerifierConfig
from pg_backup_verifier.k8s import KubernetesClients, ResourceClient, load_kubernetes_clients

_ENV_RUN_FLAG = "PGBV_RUN_E2E"
_ENV_KUBECONFIG = "PGBV_E2E_KUBECONFIG"
_ENV_CONTEXT = "PGBV_E2E_CONTEXT"
_ENV_SOURCE_CLUSTER = "PGBV_E2E_SOURCE_CLUSTER"
_ENV_NAMESPACE = "PGBV_E2E_NAMESPACE"
_ENV_BACKEND = "PGBV_E2E_BACKEND"
_ENV_AZURE_ACCOUNT = "PGBV_E2E_AZURE_STORAGE_ACCOUNT"
_ENV_AZURE_KEY = "PGBV_E2E_AZURE_STORAGE_KEY"
_ENV_AZURE_SECRET = "PGBV_E2E_AZURE_CREDENTIALS_SECRET"
_SUPPORTED_BACKENDS = ("azure", "azurite", "minio")
_REQUIRED_BINARIES = ("kubectl",)


def _flag_enabled(value: str | None) -> bool:
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _render_command(command: list[str]) -> str:
    return " ".join(shlex.quote(token) for token in command)


def _run_command(
    command: list[str],
    *,
    timeout_seconds: int,
    check: bool = True,
) -> subprocess.CompletedProcess[str]:
    completed = subprocess.run(
        command,
        check=False,
        capture_output=True,
        text=True,
        timeout=timeout_seconds,
    )

    if check and completed.returncode != 0:
        stdout = completed.stdout.strip() or "<empty>"
        stderr = completed.stderr.strip() or "<empty>"
        raise RuntimeError(
            f"Command failed with exit code {completed.returncode}: {_render_command(command)}\n"
            f"stdout:\n{stdout}\n"
            f"stderr:\n{stderr}"
        )

    return completed


def _verify_prerequisites() -> None:
    if not _flag_enabled(os.getenv(_ENV_RUN_FLAG)):
        pytest.skip(
            "Operator e2e tests are disabled by default. "
            f"Set {_ENV_RUN_FLAG}=1 and point {_ENV_KUBECONFIG} at a cluster running the operator.",
            allow_module_level=True,
        )

    missing = [binary for binary in _REQUIRED_BINARIES if shutil.which(binary) is None]
    if missing:
        pytest.skip(
            f"Operator e2e prerequisites are missing: {', '.join(sorted(missing))}.",
            allow_module_level=True,
        )

    if not os.getenv(_ENV_SOURCE_CLUSTER):
        pytest.skip(
            f"Set {_ENV_SOURCE_CLUSTER} to an existing Cluster with a configured backup object store.",
            allow_module_level=True,
        )


@dataclass(frozen=True)
class OperatorTestContext:
    namespace: str
    source_cluster_name: str
    harness_dir: Path
    clients: KubernetesClients
    resource_client: ResourceClient
    config: VerifierConfig
    kubeconfig_path: Path
    kube_context: str | None = None
    backend: str | None = None
    created_resources: list[tuple[str, str]] = field(default_factory=list)

    def kubectl_args(self) -> list[str]:
        args = ["kubectl", "--kubeconfig", str(self.kubeconfig_path)]
        if self.kube_context:
            args.extend(["--context", self.kube_context])
        return args

    def track(self, kind: str, name: str) -> None:
        self.created_resources.append((kind, name))

    def write_backup_manifest(self, *, backup_name: str) -> Path:
        manifest_path = self.harness_dir / f"{backup_name}.yaml"
        manifest_path.write_text(
            "apiVersion: postgresql.k8s.enterprisedb.io/v1\n"
            "kind: Backup\n"
            "metadata:\n"
            f"  name: {backup_name}\n"
            "spec:\n"
            "  cluster:\n"
            f"    name: {self.source_cluster_name}\n",
            encoding="utf-8",
        )
        return manifest_path


def _source_kubeconfig_path() -> Path:
    explicit = os.getenv(_ENV_KUBECONFIG, "").strip()
    if explicit:
        return Path(explicit).expanduser()
    ambient = os.getenv("KUBECONFIG", "").strip()
    if ambient:
        return Path(ambient.split(os.pathsep)[0]).expanduser()
    return Path("~/.kube/config").expanduser()


def _isolated_kubeconfig(*, harness_dir: Path, context: str | None) -> Path:
    source = _source_kubeconfig_path()
    if not source.is_file():
        raise RuntimeError(f"Expected a kubeconfig for operator e2e tests at {source}.")

    isolated = harness_dir / "kubeconfig"
    shutil.copyfile(source, isolated)
    os.chmod(isolated, 0o600)
    if context:
        _run_command(
            ["kubectl", "--kubeconfig", str(isolated), "config", "use-context", context],
            timeout_seconds=30,
        )
    return isolated


@pytest.fixture(scope="session")
def operator_context(tmp_path_factory: pytest.TempPathFactory) -> Iterator[OperatorTestContext]:
    _verify_prerequisites()
    harness_dir = tmp_path_factory.mktemp("pgbv-harness")
    kube_context = os.getenv(_ENV_CONTEXT) or None
    kubeconfig_path = _isolated_kubeconfig(harness_dir=harness_dir, context=kube_context)
    namespace = os.getenv(_ENV_NAMESPACE, "default")
    backend = (os.getenv(_ENV_BACKEND) or "").strip().lower() or None
    if backend is not None and backend not in _SUPPORTED_BACKENDS:
        raise RuntimeError(f"{_ENV_BACKEND} must be one of {', '.join(_SUPPORTED_BACKENDS)}, got {backend!r}.")

    clients = load_kubernetes_clients(
        kubeconfig_path=str(kubeconfig_path),
        context=kube_context,
        in_cluster=False,
    )
    context = OperatorTestContext(
        namespace=namespace,
        source_cluster_name=os.environ[_ENV_SOURCE_CLUSTER],
        harness_dir=harness_dir,
        clients=clients,
        resource_client=ResourceClient.from_clients(clients),
        config=VerifierConfig(),
        kubeconfig_path=kubeconfig_path,
        kube_context=kube_context,
        backend=backend,
    )

    # kubectl and az subprocesses spawned by the verifier inherit this kubeconfig.
    environment = pytest.MonkeyPatch()
    environment.setenv("KUBECONFIG", str(kubeconfig_path))
    try:
        yield context
    finally:
        for kind, name in reversed(context.created_resources):
            _run_command(
                [*context.kubectl_args(), "-n", namespace, "delete", kind, name, "--ignore-not-found"],
                timeout_seconds=120,
                check=False,
            )
        environment.undo()
        clients.api_client.close()


@dataclass(frozen=True)
class AzureStorageCredentials:
    storage_account: str
    storage_key: str
    credentials_secret: str


@pytest.fixture(scope="session")
def storage_backend(operator_context: OperatorTestContext) -> str:
    if operator_context.backend is None:
        pytest.skip(f"Set {_ENV_BACKEND} to one of {', '.join(_SUPPORTED_BACKENDS)} to run object store checks.")
    return operator_context.backend


@pytest.fixture(scope="session")
def azure_credentials(storage_backend: str) -> AzureStorageCredentials | None:
    if storage_backend != "azure":
        return None
    if shutil.which("az") is None:
        pytest.skip("Azure object store checks need the az CLI on PATH.")

    values = {name: os.getenv(name, "").strip() for name in (_ENV_AZURE_ACCOUNT, _ENV_AZURE_KEY, _ENV_AZURE_SECRET)}
    missing = sorted(name for name, value in values.items() if not value)
    if missing:
        pytest.skip(f"Azure object store checks need {', '.join(missing)}.")
    return AzureStorageCredentials(
        storage_account=values[_ENV_AZURE_ACCOUNT],
        storage_key=values[_ENV_AZURE_KEY],
        credentials_secret=values[_ENV_AZURE_SECRET],
    )
