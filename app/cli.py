import asyncio
import sys
from dataclasses import replace

import click

from app.main import _ensure_logging
from app.models.provisioning import (
    CleanupOutcome,
    CleanupResult,
    ProvisioningReport,
    StepOutcome,
    WorkflowStep,
)
from app.services.config import AwsClientConfig, FailurePolicy, ProvisioningConfig
from app.services.dependencies import build_provisioning_workflow
from app.services.notifications import LoggingNotifier
from app.services.provisioning_service import ProvisioningError

SEPARATOR = "-" * 110

_STEP_TITLES = {
    WorkflowStep.CREATE_GROUP: "Creating the group",
    WorkflowStep.ATTACH_POLICY: "Adding the access policy to the group",
    WorkflowStep.CREATE_USER: "Creating the user",
    WorkflowStep.CREATE_ACCESS_KEY: "Creating an access key for the user",
    WorkflowStep.ADD_USER_TO_GROUP: "Adding the user to the group",
    WorkflowStep.WAIT_FOR_ACTIVE_KEY: "Waiting for the access key to be Active",
    WorkflowStep.VERIFY: "Listing S3 buckets as the new user",
}

_OUTCOME_COLORS = {
    StepOutcome.SUCCEEDED: "green",
    StepOutcome.RECOVERED: "yellow",
    StepOutcome.SKIPPED: "yellow",
    StepOutcome.FAILED: "red",
}


class ConsoleNotifier(LoggingNotifier):
    """Prints step banners and optionally pauses before verification."""

    def __init__(self, *, pause: bool = True) -> None:
        self._pause = pause

    def step_started(self, step: WorkflowStep) -> None:
        super().step_started(step)
        click.echo(SEPARATOR)
        click.echo(f"{_STEP_TITLES[step]}...")

    def step_finished(self, step: WorkflowStep, outcome: StepOutcome, detail: str) -> None:
        super().step_finished(step, outcome, detail)
        click.secho(f"[{outcome.value}] {detail}", fg=_OUTCOME_COLORS[outcome])

    def cleanup_finished(self, results: list[CleanupResult]) -> None:
        super().cleanup_finished(results)
        click.echo(SEPARATOR)
        click.echo("Cleaning up the resources created by this run:")
        for result in results:
            line = f"  {result.kind.value} {result.name}: {result.outcome.value}"
            if result.adopted:
                line += " [pre-existing]"
            if result.error:
                line += f" ({result.error})"
            click.secho(line, fg="red" if result.outcome == CleanupOutcome.FAILED else None)

    def confirm_verification(self) -> bool:
        if self._pause:
            click.pause(info="Press <Enter> to list the S3 buckets using the new user.")
        return True


def _print_report(report: ProvisioningReport) -> None:
    click.echo(SEPARATOR)
    if report.buckets:
        click.echo("Listing S3 buckets:")
        for bucket in report.buckets:
            click.echo(f"  Bucket name: {bucket.name}, created on: {bucket.creation_date}")
    click.echo(f"Run outcome: {report.outcome.value} (final state: {report.final_state.value})")
    if report.error:
        click.secho(f"Error: {report.error}", fg="red")


@click.group(name="iam-provisioner", help="Provision, verify and tear down a throwaway IAM user")
def cli():
    _ensure_logging()


@cli.command(name="run", help="Run the full provisioning workflow once")
@click.option("--group-name", type=str, help="Override PROVISIONING_GROUP_NAME")
@click.option("--user-name", type=str, help="Override PROVISIONING_USER_NAME")
@click.option("--policy-name", type=str, help="Override PROVISIONING_POLICY_NAME")
@click.option(
    "--on-duplicate-user",
    type=click.Choice(["continue", "abort"]),
    help="What to do if the user already exists",
)
@click.option(
    "--on-key-quota",
    type=click.Choice(["continue", "abort"]),
    help="What to do if the user already has the maximum number of access keys",
)
@click.option("--yes", "-y", is_flag=True, help="Do not pause before listing buckets")
def cmd_run(group_name, user_name, policy_name, on_duplicate_user, on_key_quota, yes):
    overrides = {
        "group_name": group_name,
        "user_name": user_name,
        "policy_name": policy_name,
        "on_duplicate_user": on_duplicate_user,
        "on_key_quota": on_key_quota,
    }
    try:
        config = _with_overrides(ProvisioningConfig.from_env(), {k: v for k, v in overrides.items() if v})
        aws_config = AwsClientConfig.from_env()
    except ValueError as e:
        raise click.UsageError(str(e))

    workflow = build_provisioning_workflow(
        aws_config=aws_config,
        config=config,
        notifier=ConsoleNotifier(pause=not yes),
    )

    try:
        report = asyncio.run(workflow.run())
    except ProvisioningError as e:
        _print_report(e.report)
        click.secho(str(e), fg="red", err=True)
        sys.exit(1)

    _print_report(report)


def _with_overrides(config: ProvisioningConfig, overrides: dict) -> ProvisioningConfig:
    for key in ("on_duplicate_user", "on_key_quota"):
        if key in overrides:
            overrides[key] = FailurePolicy(overrides[key])
    return replace(config, **overrides)


def main():
    cli()


if __name__ == "__main__":
    main()
