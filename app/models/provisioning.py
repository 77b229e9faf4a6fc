from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class WorkflowStep(str, Enum):
    CREATE_GROUP = "create_group"
    ATTACH_POLICY = "attach_policy"
    CREATE_USER = "create_user"
    CREATE_ACCESS_KEY = "create_access_key"
    ADD_USER_TO_GROUP = "add_user_to_group"
    WAIT_FOR_ACTIVE_KEY = "wait_for_active_key"
    VERIFY = "verify"


class StepOutcome(str, Enum):
    SUCCEEDED = "succeeded"
    RECOVERED = "recovered"
    SKIPPED = "skipped"
    FAILED = "failed"


class WorkflowState(str, Enum):
    IDLE = "idle"
    GROUP_CREATED = "group_created"
    POLICY_ATTACHED = "policy_attached"
    USER_CREATED = "user_created"
    KEY_CREATED = "key_created"
    MEMBERED = "membered"
    KEY_ACTIVE = "key_active"
    VERIFIED = "verified"
    CLEANED_UP = "cleaned_up"
    ABORTED = "aborted"


class RunOutcome(str, Enum):
    SUCCEEDED = "succeeded"
    PARTIAL = "partial"
    ABORTED = "aborted"


class ResourceKind(str, Enum):
    GROUP = "group"
    GROUP_POLICY = "group_policy"
    USER = "user"
    ACCESS_KEY = "access_key"
    MEMBERSHIP = "membership"


class CleanupOutcome(str, Enum):
    DELETED = "deleted"
    ALREADY_GONE = "already_gone"
    FAILED = "failed"


class BucketItem(BaseModel):
    name: str = Field(..., description="S3 bucket name")
    creation_date: Optional[datetime] = None

    @staticmethod
    def from_s3_bucket(bucket: dict[str, Any]) -> "BucketItem":
        return BucketItem(
            name=str(bucket.get("Name")),
            creation_date=bucket.get("CreationDate"),
        )


class StepResult(BaseModel):
    step: WorkflowStep
    outcome: StepOutcome
    detail: str = ""


class CleanupResult(BaseModel):
    kind: ResourceKind
    name: str
    outcome: CleanupOutcome
    # True for a resource that existed before the run and was taken over by it.
    adopted: bool = False
    error: Optional[str] = None


class ProvisioningReport(BaseModel):
    group_name: str
    user_name: str
    policy_name: str
    access_key_id: Optional[str] = None
    outcome: RunOutcome = RunOutcome.SUCCEEDED
    last_state: WorkflowState = WorkflowState.IDLE
    final_state: WorkflowState = WorkflowState.IDLE
    steps: list[StepResult] = Field(default_factory=list)
    buckets: list[BucketItem] = Field(default_factory=list)
    cleanup: list[CleanupResult] = Field(default_factory=list)
    error: Optional[str] = None

    @property
    def cleanup_failures(self) -> list[CleanupResult]:
        return [c for c in self.cleanup if c.outcome == CleanupOutcome.FAILED]


class ProvisioningConfigResponse(BaseModel):
    group_name: str
    user_name: str
    policy_name: str
    policy_document: str
    on_duplicate_user: str
    on_key_quota: str
    region_name: str
