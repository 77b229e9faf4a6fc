from __future__ import annotations

from functools import partial

from app.services.config import AwsClientConfig, ProvisioningConfig
from app.services.iam_service import IamService
from app.services.notifications import LoggingNotifier, WorkflowNotifier
from app.services.provisioning_service import ProvisioningWorkflow
from app.services.s3_service import s3_service_for_key


def get_aws_client_config() -> AwsClientConfig:
    return AwsClientConfig.from_env()


def get_provisioning_config() -> ProvisioningConfig:
    return ProvisioningConfig.from_env()


def build_provisioning_workflow(
    *,
    aws_config: AwsClientConfig,
    config: ProvisioningConfig,
    notifier: WorkflowNotifier,
) -> ProvisioningWorkflow:
    """Provider for non-request contexts (e.g. the CLI)."""

    return ProvisioningWorkflow(
        iam=IamService(aws_config),
        s3_factory=partial(s3_service_for_key, aws_config),
        config=config,
        notifier=notifier,
    )


def get_provisioning_workflow() -> ProvisioningWorkflow:
    """Dependency provider for a workflow wired from environment configuration."""

    return build_provisioning_workflow(
        aws_config=get_aws_client_config(),
        config=get_provisioning_config(),
        notifier=LoggingNotifier(),
    )
