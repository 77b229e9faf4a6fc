from __future__ import annotations

import logging

from app.models.provisioning import CleanupOutcome, CleanupResult, StepOutcome, WorkflowStep


logger = logging.getLogger(__name__)


class WorkflowNotifier:
    """Hooks the provisioning workflow calls at every step boundary.

    The base class is silent and always confirms the pause point; subclasses
    override what they need (logging, terminal output, ...).
    """

    def step_started(self, step: WorkflowStep) -> None:
        pass

    def step_finished(self, step: WorkflowStep, outcome: StepOutcome, detail: str) -> None:
        pass

    def cleanup_finished(self, results: list[CleanupResult]) -> None:
        pass

    def confirm_verification(self) -> bool:
        """Pause point before listing buckets with the new key. False skips verification."""

        return True


class LoggingNotifier(WorkflowNotifier):
    def step_started(self, step: WorkflowStep) -> None:
        logger.info("Provisioning step started: %s", step.value)

    def step_finished(self, step: WorkflowStep, outcome: StepOutcome, detail: str) -> None:
        if outcome == StepOutcome.FAILED:
            logger.error("Provisioning step %s failed: %s", step.value, detail)
        elif outcome == StepOutcome.SUCCEEDED:
            logger.info("Provisioning step %s succeeded: %s", step.value, detail)
        else:
            logger.warning("Provisioning step %s %s: %s", step.value, outcome.value, detail)

    def cleanup_finished(self, results: list[CleanupResult]) -> None:
        failed = sum(1 for r in results if r.outcome == CleanupOutcome.FAILED)
        logger.info("Provisioning cleanup complete: attempted=%d, failed=%d", len(results), failed)
