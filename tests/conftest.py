from __future__ import annotations

import itertools
from datetime import datetime, timezone
from typing import Optional

import pytest

from app.models.provisioning import BucketItem
from app.services.config import ActivationPollConfig, ProvisioningConfig
from app.services.iam_service import (
    AccessKey,
    DuplicateResourceError,
    IamGroup,
    IamUser,
    QuotaExceededError,
    ResourceNotFoundError,
)
from app.services.notifications import WorkflowNotifier
from app.services.provisioning_service import ProvisioningWorkflow

DELETE_CALLS = (
    "remove_user_from_group",
    "delete_access_key",
    "delete_user",
    "delete_group_policy",
    "delete_group",
)


class FakeIamService:
    """In-memory IAM double that records every call in order."""

    def __init__(
        self,
        *,
        existing_groups: tuple[str, ...] = (),
        existing_users: tuple[str, ...] = (),
        quota_exceeded: bool = False,
        initial_key_status: str = "Active",
        key_statuses: tuple[str, ...] = (),
        attach_status: int = 200,
        membership_status: int = 200,
    ) -> None:
        self.calls: list[tuple[str, tuple]] = []
        self.groups: set[str] = set(existing_groups)
        self.users: set[str] = set(existing_users)
        self.group_policies: dict[tuple[str, str], str] = {}
        self.access_keys: dict[str, str] = {}
        self.memberships: set[tuple[str, str]] = set()
        self.failures: dict[str, Exception] = {}
        self._quota_exceeded = quota_exceeded
        self._initial_key_status = initial_key_status
        self._key_statuses = list(key_statuses)
        self._attach_status = attach_status
        self._membership_status = membership_status
        self._key_ids = (f"AKIAFAKE{i:04d}" for i in itertools.count(1))

    @property
    def resources(self) -> dict[str, object]:
        return {
            "groups": self.groups,
            "users": self.users,
            "group_policies": self.group_policies,
            "access_keys": self.access_keys,
            "memberships": self.memberships,
        }

    @property
    def delete_calls(self) -> list[str]:
        return [op for op, _ in self.calls if op in DELETE_CALLS]

    def _record(self, op: str, *args) -> None:
        self.calls.append((op, args))
        if op in self.failures:
            raise self.failures[op]

    async def create_group(self, *, group_name: str) -> IamGroup:
        self._record("create_group", group_name)
        if group_name in self.groups:
            raise DuplicateResourceError(f"Group with name {group_name} already exists.")
        self.groups.add(group_name)
        return IamGroup(group_name=group_name, arn=f"arn:aws:iam::000000000000:group/{group_name}")

    async def put_group_policy(self, *, group_name: str, policy_name: str, policy_document: str) -> int:
        self._record("put_group_policy", group_name, policy_name)
        if self._attach_status == 200:
            self.group_policies[(group_name, policy_name)] = policy_document
        return self._attach_status

    async def create_user(self, *, user_name: str) -> IamUser:
        self._record("create_user", user_name)
        if user_name in self.users:
            raise DuplicateResourceError(f"User with name {user_name} already exists.")
        self.users.add(user_name)
        return IamUser(user_name=user_name, arn=f"arn:aws:iam::000000000000:user/{user_name}")

    async def create_access_key(self, *, user_name: str) -> AccessKey:
        self._record("create_access_key", user_name)
        if self._quota_exceeded:
            raise QuotaExceededError("Cannot exceed quota for AccessKeysPerUser: 2")
        key_id = next(self._key_ids)
        self.access_keys[key_id] = user_name
        return AccessKey(
            access_key_id=key_id,
            secret_access_key="fake-secret",
            user_name=user_name,
            status=self._initial_key_status,
        )

    async def get_access_key_status(self, *, user_name: str, access_key_id: str) -> Optional[str]:
        self._record("get_access_key_status", user_name, access_key_id)
        if self._key_statuses:
            return self._key_statuses.pop(0)
        return self._initial_key_status

    async def add_user_to_group(self, *, user_name: str, group_name: str) -> int:
        self._record("add_user_to_group", user_name, group_name)
        if self._membership_status == 200:
            self.memberships.add((user_name, group_name))
        return self._membership_status

    async def remove_user_from_group(self, *, user_name: str, group_name: str) -> None:
        self._record("remove_user_from_group", user_name, group_name)
        self.memberships.discard((user_name, group_name))

    async def delete_access_key(self, *, user_name: str, access_key_id: str) -> None:
        self._record("delete_access_key", user_name, access_key_id)
        self.access_keys.pop(access_key_id, None)

    async def delete_user(self, *, user_name: str) -> None:
        self._record("delete_user", user_name)
        if user_name not in self.users:
            raise ResourceNotFoundError(f"The user with name {user_name} cannot be found.")
        self.users.discard(user_name)

    async def delete_group_policy(self, *, group_name: str, policy_name: str) -> None:
        self._record("delete_group_policy", group_name, policy_name)
        self.group_policies.pop((group_name, policy_name), None)

    async def delete_group(self, *, group_name: str) -> None:
        self._record("delete_group", group_name)
        self.groups.discard(group_name)


class FakeS3Service:
    def __init__(self, buckets: list[BucketItem], *, error: Optional[Exception] = None) -> None:
        self._buckets = buckets
        self._error = error
        self.used_keys: list[AccessKey] = []

    def for_key(self, access_key: AccessKey) -> "FakeS3Service":
        self.used_keys.append(access_key)
        return self

    async def list_buckets(self) -> list[BucketItem]:
        if self._error is not None:
            raise self._error
        return list(self._buckets)


class RecordingNotifier(WorkflowNotifier):
    def __init__(self, *, confirm: bool = True) -> None:
        self.events: list[tuple] = []
        self._confirm = confirm

    def step_started(self, step):
        self.events.append(("started", step))

    def step_finished(self, step, outcome, detail):
        self.events.append(("finished", step, outcome))

    def cleanup_finished(self, results):
        self.events.append(("cleanup", len(results)))

    def confirm_verification(self) -> bool:
        self.events.append(("confirm",))
        return self._confirm


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def buckets() -> list[BucketItem]:
    return [
        BucketItem(name="amzn-s3-demo-bucket", creation_date=datetime(2021, 3, 4, 12, 0, tzinfo=timezone.utc)),
        BucketItem(name="team-reports", creation_date=datetime(2022, 7, 19, 8, 30, tzinfo=timezone.utc)),
    ]


@pytest.fixture
def config() -> ProvisioningConfig:
    return ProvisioningConfig(
        activation=ActivationPollConfig(
            initial_delay_seconds=0.5,
            backoff_multiplier=2.0,
            max_delay_seconds=8.0,
            max_attempts=5,
            max_wait_seconds=60.0,
        )
    )


@pytest.fixture
def make_workflow(config, buckets):
    def _make(iam: FakeIamService, **kwargs) -> tuple[ProvisioningWorkflow, FakeS3Service, RecordingSleep]:
        s3 = kwargs.pop("s3", None) or FakeS3Service(buckets)
        sleep = RecordingSleep()
        workflow = ProvisioningWorkflow(
            iam=iam,
            s3_factory=s3.for_key,
            config=kwargs.pop("config", config),
            notifier=kwargs.pop("notifier", None),
            sleep=sleep,
        )
        return workflow, s3, sleep

    return _make
