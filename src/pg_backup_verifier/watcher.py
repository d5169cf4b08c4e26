from __future__ import annotations

from pathlib import Path
import logging
import shlex
import time
from typing import Callable

from .commands import CommandRunner
from .config import VerifierConfig
from .k8s import KubernetesResourceError, ResourceClient
from .manifests import resource_name_from_yaml
from .models import BackupPhase, BackupRecord, BackupRequest
from .polling import PollOutcome, poll_until

logger = logging.getLogger(__name__)


class BackupVerificationError(RuntimeError):
    def __init__(self, message: str, *, record: BackupRecord | None = None) -> None:
        super().__init__(message)
        self.record = record


class BackupCompletionWatcher:
    """Submit a Backup manifest and wait for the operator to report it completed.

    A backup stuck in ``failed`` is not reported early; it times out exactly
    like one that is still ``running``.
    """

    def __init__(
        self,
        *,
        resource_client: ResourceClient,
        command_runner: CommandRunner,
        config: VerifierConfig,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.resource_client = resource_client
        self.command_runner = command_runner
        self.config = config
        self._clock = clock
        self._sleep = sleep

    def execute_backup(self, namespace: str, backup_manifest: str | Path) -> BackupRecord:
        request = BackupRequest(
            namespace=namespace,
            manifest_path=Path(backup_manifest),
            name=resource_name_from_yaml(backup_manifest),
        )
        self.command_runner.run(
            f"kubectl apply -n {request.namespace} -f {shlex.quote(str(request.manifest_path))}"
        )
        logger.info("Applied Backup %s/%s, waiting for completion", request.namespace, request.name)
        return self.wait_for_completion(request)

    def wait_for_completion(self, request: BackupRequest) -> BackupRecord:
        completed = self._poll(request, lambda record: record.phase == BackupPhase.COMPLETED)
        if not completed.satisfied:
            raise BackupVerificationError(
                _timeout_message(
                    request,
                    expectation=f"reach phase '{BackupPhase.COMPLETED}'",
                    timeout_seconds=self.config.backup_timeout_seconds,
                    outcome=completed,
                ),
                record=completed.value,
            )

        # The phase can flip before the LSN/WAL fields are written.
        populated = self._poll(request, lambda record: bool(record.begin_lsn))
        record = populated.value
        if not populated.satisfied or record is None:
            raise BackupVerificationError(
                _timeout_message(
                    request,
                    expectation="report beginLSN",
                    timeout_seconds=self.config.backup_timeout_seconds,
                    outcome=populated,
                ),
                record=populated.value,
            )

        missing = record.missing_recovery_metadata()
        if missing:
            raise BackupVerificationError(
                f"Backup {request.namespace}/{request.name} completed without recovery metadata: "
                f"{', '.join(missing)} empty.",
                record=record,
            )

        logger.info(
            "Backup %s/%s completed (beginLSN=%s endLSN=%s beginWal=%s endWal=%s)",
            request.namespace,
            request.name,
            record.begin_lsn,
            record.end_lsn,
            record.begin_wal,
            record.end_wal,
        )
        return record

    def _poll(self, request: BackupRequest, predicate: Callable[[BackupRecord], bool]) -> PollOutcome[BackupRecord]:
        return poll_until(
            lambda: self.resource_client.get_backup(request.namespace, request.name),
            predicate,
            timeout_seconds=self.config.backup_timeout_seconds,
            interval_seconds=self.config.poll_interval_seconds,
            retry_on=(KubernetesResourceError,),
            clock=self._clock,
            sleep=self._sleep,
        )


def _timeout_message(
    request: BackupRequest,
    *,
    expectation: str,
    timeout_seconds: float,
    outcome: PollOutcome[BackupRecord],
) -> str:
    last_phase = outcome.value.phase if outcome.value is not None and outcome.value.phase else "unknown"
    detail = f"last observed phase={last_phase}; attempts={outcome.attempts}"
    if outcome.value is not None and outcome.value.error:
        detail = f"{detail}; operator error: {outcome.value.error}"
    if outcome.last_error is not None:
        detail = f"{detail}; last error: {outcome.last_error}"
    return (
        f"Backup {request.namespace}/{request.name} did not {expectation} "
        f"within {timeout_seconds} seconds ({detail})"
    )
