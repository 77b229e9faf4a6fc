from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, NoReturn, Optional

import aioboto3
from botocore.exceptions import BotoCoreError, ClientError

from app.services.config import AwsClientConfig


logger = logging.getLogger(__name__)


class IamServiceError(RuntimeError):
    """Transport, auth or otherwise unexpected IAM failure."""


class DuplicateResourceError(IamServiceError):
    pass


class QuotaExceededError(IamServiceError):
    pass


class ResourceNotFoundError(IamServiceError):
    pass


_ERROR_TYPES: dict[str, type[IamServiceError]] = {
    "EntityAlreadyExists": DuplicateResourceError,
    "LimitExceeded": QuotaExceededError,
    "NoSuchEntity": ResourceNotFoundError,
}

ACCESS_KEY_ACTIVE = "Active"


@dataclass(frozen=True)
class IamGroup:
    group_name: str
    arn: Optional[str] = None
    group_id: Optional[str] = None

    @staticmethod
    def from_response(group: dict[str, Any]) -> "IamGroup":
        return IamGroup(group_name=str(group.get("GroupName")), arn=group.get("Arn"), group_id=group.get("GroupId"))


@dataclass(frozen=True)
class IamUser:
    user_name: str
    arn: Optional[str] = None
    user_id: Optional[str] = None
    created_at: Optional[datetime] = None

    @staticmethod
    def from_response(user: dict[str, Any]) -> "IamUser":
        return IamUser(
            user_name=str(user.get("UserName")),
            arn=user.get("Arn"),
            user_id=user.get("UserId"),
            created_at=user.get("CreateDate"),
        )


@dataclass(frozen=True)
class AccessKey:
    """Credential pair for one user. `repr` hides the secret so it never reaches logs."""

    access_key_id: str
    secret_access_key: str
    user_name: str
    status: str

    @property
    def is_active(self) -> bool:
        return self.status == ACCESS_KEY_ACTIVE

    def __repr__(self) -> str:
        return f"AccessKey(access_key_id={self.access_key_id!r}, user_name={self.user_name!r}, status={self.status!r})"

    @staticmethod
    def from_response(key: dict[str, Any]) -> "AccessKey":
        return AccessKey(
            access_key_id=str(key.get("AccessKeyId")),
            secret_access_key=str(key.get("SecretAccessKey")),
            user_name=str(key.get("UserName")),
            status=str(key.get("Status")),
        )


def _status_code(response: dict[str, Any]) -> int:
    return int((response.get("ResponseMetadata") or {}).get("HTTPStatusCode") or 0)


def _raise_translated(exc: Exception, *, operation: str, target: str) -> NoReturn:
    if isinstance(exc, ClientError):
        error = exc.response.get("Error") or {}
        code = str(error.get("Code") or "")
        message = str(error.get("Message") or code or "unknown error")
        error_type = _ERROR_TYPES.get(code, IamServiceError)
        if error_type is IamServiceError:
            logger.exception("IAM %s failed (target=%s)", operation, target)
        else:
            logger.warning("IAM %s failed (target=%s): %s", operation, target, message)
        raise error_type(f"IAM {operation} failed for {target}: {message}") from exc

    logger.exception("IAM %s failed (target=%s)", operation, target)
    raise IamServiceError(f"IAM {operation} failed for {target}") from exc


class IamService:
    """Thin async wrapper over the IAM operations used by the provisioning workflow.

    Every method opens a short-lived client, the same way the S3 service does, and
    translates botocore errors into the `IamServiceError` hierarchy.
    """

    def __init__(self, config: AwsClientConfig) -> None:
        self._config = config
        self._session = aioboto3.Session()

    def _client(self) -> Any:
        return self._session.client(
            "iam",
            region_name=self._config.region_name,
            endpoint_url=self._config.iam_endpoint_url,
        )

    async def _call(self, operation: str, *, target: str, **kwargs: Any) -> dict[str, Any]:
        try:
            iam_client: Any = self._client()
            async with iam_client as iam:
                return await getattr(iam, operation)(**kwargs)
        except (ClientError, BotoCoreError) as exc:
            _raise_translated(exc, operation=operation, target=target)

    async def create_group(self, *, group_name: str) -> IamGroup:
        response = await self._call("create_group", target=group_name, GroupName=group_name)
        return IamGroup.from_response(response.get("Group") or {"GroupName": group_name})

    async def put_group_policy(self, *, group_name: str, policy_name: str, policy_document: str) -> int:
        """Attach an inline policy to the group and return the HTTP status code."""

        response = await self._call(
            "put_group_policy",
            target=f"{group_name}/{policy_name}",
            GroupName=group_name,
            PolicyName=policy_name,
            PolicyDocument=policy_document,
        )
        return _status_code(response)

    async def create_user(self, *, user_name: str) -> IamUser:
        response = await self._call("create_user", target=user_name, UserName=user_name)
        return IamUser.from_response(response.get("User") or {"UserName": user_name})

    async def create_access_key(self, *, user_name: str) -> AccessKey:
        response = await self._call("create_access_key", target=user_name, UserName=user_name)
        return AccessKey.from_response(response["AccessKey"])

    async def get_access_key_status(self, *, user_name: str, access_key_id: str) -> Optional[str]:
        """Return the current status of one key, or None if IAM does not list it yet."""

        response = await self._call("list_access_keys", target=user_name, UserName=user_name)
        for metadata in response.get("AccessKeyMetadata") or []:
            if metadata.get("AccessKeyId") == access_key_id:
                return metadata.get("Status")
        return None

    async def add_user_to_group(self, *, user_name: str, group_name: str) -> int:
        response = await self._call(
            "add_user_to_group",
            target=f"{user_name}->{group_name}",
            UserName=user_name,
            GroupName=group_name,
        )
        return _status_code(response)

    async def remove_user_from_group(self, *, user_name: str, group_name: str) -> None:
        await self._call(
            "remove_user_from_group",
            target=f"{user_name}->{group_name}",
            UserName=user_name,
            GroupName=group_name,
        )

    async def delete_access_key(self, *, user_name: str, access_key_id: str) -> None:
        await self._call("delete_access_key", target=access_key_id, UserName=user_name, AccessKeyId=access_key_id)

    async def delete_user(self, *, user_name: str) -> None:
        await self._call("delete_user", target=user_name, UserName=user_name)

    async def delete_group_policy(self, *, group_name: str, policy_name: str) -> None:
        await self._call(
            "delete_group_policy",
            target=f"{group_name}/{policy_name}",
            GroupName=group_name,
            PolicyName=policy_name,
        )

    async def delete_group(self, *, group_name: str) -> None:
        await self._call("delete_group", target=group_name, GroupName=group_name)
