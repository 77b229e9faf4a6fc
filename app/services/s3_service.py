from __future__ import annotations

import logging
from typing import Any

import aioboto3

from app.models.provisioning import BucketItem
from app.services.config import AwsClientConfig
from app.services.iam_service import AccessKey


logger = logging.getLogger(__name__)


class S3ServiceError(RuntimeError):
    pass


class S3Service:
    """S3 calls made *as* a freshly provisioned user.

    The session is bound to the given access key only, never to the ambient
    credentials the IAM client uses, so a successful call proves the key works.
    """

    def __init__(self, config: AwsClientConfig, *, access_key: AccessKey) -> None:
        self._config = config
        self._access_key_id = access_key.access_key_id
        self._session = aioboto3.Session(
            aws_access_key_id=access_key.access_key_id,
            aws_secret_access_key=access_key.secret_access_key,
            region_name=config.region_name,
        )

    def _client(self) -> Any:
        return self._session.client(
            "s3",
            region_name=self._config.region_name,
            endpoint_url=self._config.s3_endpoint_url,
        )

    async def list_buckets(self) -> list[BucketItem]:
        try:
            s3_client: Any = self._client()
            async with s3_client as s3:
                response = await s3.list_buckets()

            return [BucketItem.from_s3_bucket(b) for b in response.get("Buckets", [])]
        except Exception as exc:
            logger.exception("S3 list_buckets failed (access_key_id=%s)", self._access_key_id)
            raise S3ServiceError("Failed to list S3 buckets with the provisioned access key") from exc


def s3_service_for_key(config: AwsClientConfig, access_key: AccessKey) -> S3Service:
    return S3Service(config, access_key=access_key)
