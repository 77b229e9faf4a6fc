from __future__ import annotations

from fastapi import APIRouter, Depends

from app.models.provisioning import ProvisioningConfigResponse, ProvisioningReport
from app.services.config import AwsClientConfig, ProvisioningConfig
from app.services.dependencies import (
    get_aws_client_config,
    get_provisioning_config,
    get_provisioning_workflow,
)
from app.services.provisioning_service import ProvisioningWorkflow

router = APIRouter(prefix="/provisioning", tags=["provisioning"])


@router.post("/runs", response_model=ProvisioningReport)
async def run_provisioning(
    workflow: ProvisioningWorkflow = Depends(get_provisioning_workflow),
) -> ProvisioningReport:
    return await workflow.run()


@router.get("/config", response_model=ProvisioningConfigResponse)
async def get_config(
    config: ProvisioningConfig = Depends(get_provisioning_config),
    aws: AwsClientConfig = Depends(get_aws_client_config),
) -> ProvisioningConfigResponse:
    return ProvisioningConfigResponse(
        group_name=config.group_name,
        user_name=config.user_name,
        policy_name=config.policy_name,
        policy_document=config.policy_document,
        on_duplicate_user=config.on_duplicate_user.value,
        on_key_quota=config.on_key_quota.value,
        region_name=aws.region_name,
    )
