from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from app.models.provisioning import (
    CleanupOutcome,
    CleanupResult,
    ProvisioningReport,
    ResourceKind,
    RunOutcome,
    StepOutcome,
    StepResult,
    WorkflowState,
    WorkflowStep,
)
from app.services.config import FailurePolicy, ProvisioningConfig
from app.services.iam_service import (
    ACCESS_KEY_ACTIVE,
    AccessKey,
    DuplicateResourceError,
    IamService,
    IamServiceError,
    QuotaExceededError,
    ResourceNotFoundError,
)
from app.services.notifications import LoggingNotifier, WorkflowNotifier
from app.services.resource_ledger import LedgerEntry, ResourceLedger
from app.services.s3_service import S3Service


logger = logging.getLogger(__name__)


class NonSuccessStatusError(IamServiceError):
    pass


class AccessKeyActivationTimeoutError(RuntimeError):
    pass


class ProvisioningError(RuntimeError):
    """A provisioning run did not end cleanly. `report` holds everything that happened."""

    def __init__(self, message: str, *, report: ProvisioningReport) -> None:
        super().__init__(message)
        self.report = report


class ProvisioningAbortedError(ProvisioningError):
    pass


class CleanupIncompleteError(ProvisioningError):
    pass


S3ServiceFactory = Callable[[AccessKey], S3Service]
Sleep = Callable[[float], Awaitable[None]]


@dataclass
class _Run:
    report: ProvisioningReport
    ledger: ResourceLedger = field(default_factory=ResourceLedger)
    current_step: Optional[WorkflowStep] = None
    access_key: Optional[AccessKey] = None

    def advance(self, state: WorkflowState) -> None:
        self.report.last_state = state


def _is_success(status: int) -> bool:
    return 200 <= status < 300


def _cleanup_result(entry: LedgerEntry, outcome: CleanupOutcome, *, error: Optional[str] = None) -> CleanupResult:
    return CleanupResult(kind=entry.kind, name=entry.name, outcome=outcome, adopted=entry.adopted, error=error)


class ProvisioningWorkflow:
    """Create group, policy, user and key; prove the key works; tear it all down.

    Steps run strictly in order because each consumes what the previous one
    produced. Everything created is written to a `ResourceLedger`, and teardown
    runs from a `finally` block against exactly those entries, so it fires on
    success, on a fatal step failure and on cancellation alike.

    Usage:

        workflow = ProvisioningWorkflow(iam=iam, s3_factory=factory, config=config)
        report = await workflow.run()
    """

    def __init__(
        self,
        *,
        iam: IamService,
        s3_factory: S3ServiceFactory,
        config: ProvisioningConfig,
        notifier: Optional[WorkflowNotifier] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._iam = iam
        self._s3_factory = s3_factory
        self._config = config
        self._notifier = notifier or LoggingNotifier()
        self._sleep = sleep

    async def run(self) -> ProvisioningReport:
        cfg = self._config
        run = _Run(
            report=ProvisioningReport(
                group_name=cfg.group_name,
                user_name=cfg.user_name,
                policy_name=cfg.policy_name,
            )
        )

        fatal: Optional[Exception] = None
        try:
            await self._provision(run)
        except asyncio.CancelledError:
            self._abort(run, "run cancelled")
            raise
        except Exception as exc:
            fatal = exc
            self._abort(run, str(exc))
        finally:
            await self._cleanup(run)

        report = run.report
        if fatal is not None:
            raise ProvisioningAbortedError(
                f"Provisioning aborted after {report.last_state.value}: {fatal}", report=report
            ) from fatal
        if report.cleanup_failures:
            names = ", ".join(f"{c.kind.value}:{c.name}" for c in report.cleanup_failures)
            raise CleanupIncompleteError(f"Cleanup left resources behind: {names}", report=report)
        return report

    # -----------------
    # Provisioning
    # -----------------

    async def _provision(self, run: _Run) -> None:
        cfg = self._config
        report = run.report

        self._begin(run, WorkflowStep.CREATE_GROUP)
        group = await self._iam.create_group(group_name=cfg.group_name)
        run.ledger.record(ResourceKind.GROUP, group.group_name)
        run.advance(WorkflowState.GROUP_CREATED)
        self._end(run, StepOutcome.SUCCEEDED, f"created group {group.group_name}")

        self._begin(run, WorkflowStep.ATTACH_POLICY)
        status = await self._iam.put_group_policy(
            group_name=cfg.group_name,
            policy_name=cfg.policy_name,
            policy_document=cfg.policy_document,
        )
        if not _is_success(status):
            raise NonSuccessStatusError(f"put_group_policy returned HTTP {status} for {cfg.group_name}")
        run.ledger.record(ResourceKind.GROUP_POLICY, cfg.policy_name)
        run.advance(WorkflowState.POLICY_ATTACHED)
        self._end(run, StepOutcome.SUCCEEDED, f"attached {cfg.policy_name} to {cfg.group_name} (HTTP {status})")

        self._begin(run, WorkflowStep.CREATE_USER)
        try:
            user = await self._iam.create_user(user_name=cfg.user_name)
        except DuplicateResourceError as exc:
            if cfg.on_duplicate_user == FailurePolicy.ABORT:
                raise
            # The existing user is taken over: later steps act on it and teardown deletes it.
            logger.warning("User %s already exists, continuing without a new user: %s", cfg.user_name, exc)
            run.ledger.record(ResourceKind.USER, cfg.user_name, adopted=True)
            self._end(run, StepOutcome.RECOVERED, f"user {cfg.user_name} already exists")
        else:
            run.ledger.record(ResourceKind.USER, user.user_name)
            run.advance(WorkflowState.USER_CREATED)
            self._end(run, StepOutcome.SUCCEEDED, f"created user {user.user_name} (arn={user.arn})")

        self._begin(run, WorkflowStep.CREATE_ACCESS_KEY)
        try:
            run.access_key = await self._iam.create_access_key(user_name=cfg.user_name)
        except QuotaExceededError as exc:
            if cfg.on_key_quota == FailurePolicy.ABORT:
                raise
            logger.warning("Access key quota reached for %s, continuing without a key: %s", cfg.user_name, exc)
            self._end(run, StepOutcome.RECOVERED, f"access key quota exceeded for {cfg.user_name}")
        else:
            key = run.access_key
            run.ledger.record(ResourceKind.ACCESS_KEY, key.access_key_id)
            report.access_key_id = key.access_key_id
            run.advance(WorkflowState.KEY_CREATED)
            self._end(run, StepOutcome.SUCCEEDED, f"created access key {key.access_key_id} ({key.status})")

        self._begin(run, WorkflowStep.ADD_USER_TO_GROUP)
        status = await self._iam.add_user_to_group(user_name=cfg.user_name, group_name=cfg.group_name)
        if not _is_success(status):
            raise NonSuccessStatusError(
                f"add_user_to_group returned HTTP {status} for {cfg.user_name} -> {cfg.group_name}"
            )
        run.ledger.record(ResourceKind.MEMBERSHIP, f"{cfg.user_name}->{cfg.group_name}")
        run.advance(WorkflowState.MEMBERED)
        self._end(run, StepOutcome.SUCCEEDED, f"added {cfg.user_name} to {cfg.group_name} (HTTP {status})")

        self._begin(run, WorkflowStep.WAIT_FOR_ACTIVE_KEY)
        if run.access_key is None:
            self._end(run, StepOutcome.SKIPPED, "no access key to wait for")
        else:
            checks = await self._wait_for_active_key(run.access_key)
            run.advance(WorkflowState.KEY_ACTIVE)
            self._end(run, StepOutcome.SUCCEEDED, f"access key active after {checks} status check(s)")

        self._begin(run, WorkflowStep.VERIFY)
        if run.access_key is None:
            self._end(run, StepOutcome.SKIPPED, "no access key to authenticate with")
        elif not self._notifier.confirm_verification():
            self._end(run, StepOutcome.SKIPPED, "verification declined")
        else:
            report.buckets = await self._s3_factory(run.access_key).list_buckets()
            run.advance(WorkflowState.VERIFIED)
            self._end(run, StepOutcome.SUCCEEDED, f"listed {len(report.buckets)} bucket(s) as {cfg.user_name}")

        if any(s.outcome != StepOutcome.SUCCEEDED for s in report.steps):
            report.outcome = RunOutcome.PARTIAL

    async def _wait_for_active_key(self, key: AccessKey) -> int:
        """Poll IAM with exponential backoff until `key` reports `Active`.

        Returns the number of status observations made, counting the status
        returned by `create_access_key` as the first one.
        """

        if key.is_active:
            return 1

        activation = self._config.activation
        checks = 1
        for delay in activation.delays():
            await self._sleep(delay)
            checks += 1
            try:
                status = await self._iam.get_access_key_status(
                    user_name=key.user_name,
                    access_key_id=key.access_key_id,
                )
            except ResourceNotFoundError:
                # Not visible yet.
                status = None
            logger.debug("Access key %s status check %d: %s", key.access_key_id, checks, status)
            if status == ACCESS_KEY_ACTIVE:
                return checks

        raise AccessKeyActivationTimeoutError(
            f"Access key {key.access_key_id} not Active after {checks} check(s) "
            f"(max_attempts={activation.max_attempts}, max_wait_seconds={activation.max_wait_seconds})"
        )

    # -----------------
    # Teardown
    # -----------------

    async def _cleanup(self, run: _Run) -> None:
        results: list[CleanupResult] = []
        for entry in run.ledger.in_cleanup_order():
            try:
                await self._delete(entry, run)
            except ResourceNotFoundError:
                run.ledger.release(entry)
                results.append(_cleanup_result(entry, CleanupOutcome.ALREADY_GONE))
            except Exception as exc:
                logger.error("Cleanup of %s %s failed: %s", entry.kind.value, entry.name, exc)
                results.append(_cleanup_result(entry, CleanupOutcome.FAILED, error=str(exc)))
            else:
                run.ledger.release(entry)
                results.append(_cleanup_result(entry, CleanupOutcome.DELETED))

        report = run.report
        report.cleanup = results
        if report.outcome == RunOutcome.ABORTED:
            report.final_state = WorkflowState.ABORTED
        elif len(run.ledger) == 0:
            report.final_state = WorkflowState.CLEANED_UP
        else:
            report.final_state = report.last_state
        self._notifier.cleanup_finished(results)

    async def _delete(self, entry: LedgerEntry, run: _Run) -> None:
        cfg = self._config
        if entry.kind == ResourceKind.MEMBERSHIP:
            await self._iam.remove_user_from_group(user_name=cfg.user_name, group_name=cfg.group_name)
        elif entry.kind == ResourceKind.ACCESS_KEY:
            await self._iam.delete_access_key(user_name=cfg.user_name, access_key_id=entry.name)
        elif entry.kind == ResourceKind.USER:
            await self._iam.delete_user(user_name=entry.name)
        elif entry.kind == ResourceKind.GROUP_POLICY:
            await self._iam.delete_group_policy(group_name=cfg.group_name, policy_name=entry.name)
        elif entry.kind == ResourceKind.GROUP:
            await self._iam.delete_group(group_name=entry.name)
        else:  # pragma: no cover
            raise ValueError(f"Unknown resource kind: {entry.kind!r}")

    # -----------------
    # Private helpers
    # -----------------

    def _begin(self, run: _Run, step: WorkflowStep) -> None:
        run.current_step = step
        self._notifier.step_started(step)

    def _end(self, run: _Run, outcome: StepOutcome, detail: str) -> None:
        step = run.current_step
        if step is None:  # pragma: no cover
            raise RuntimeError("No provisioning step in progress")
        run.report.steps.append(StepResult(step=step, outcome=outcome, detail=detail))
        run.current_step = None
        self._notifier.step_finished(step, outcome, detail)

    def _abort(self, run: _Run, reason: str) -> None:
        report = run.report
        report.outcome = RunOutcome.ABORTED
        report.error = reason
        logger.error("Provisioning run aborted after %s: %s", report.last_state.value, reason)
        if run.current_step is not None:
            self._end(run, StepOutcome.FAILED, reason)
