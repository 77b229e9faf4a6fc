from __future__ import annotations

import os
from dataclasses import dataclass
from typing import ClassVar, Optional


@dataclass(frozen=True)
class AwsClientConfig:
    """Where the IAM and S3 clients connect.

    Endpoint overrides are optional and mostly useful against a local emulator,
    e.g. "http://localhost:4566".
    """

    _DEFAULT_REGION: ClassVar[str] = "us-west-2"

    region_name: str = _DEFAULT_REGION
    iam_endpoint_url: Optional[str] = None
    s3_endpoint_url: Optional[str] = None

    @staticmethod
    def from_env() -> "AwsClientConfig":
        region_name = os.getenv("AWS_REGION") or os.getenv("AWS_DEFAULT_REGION") or AwsClientConfig._DEFAULT_REGION

        iam_endpoint_url = (os.getenv("IAM_ENDPOINT_URL") or "").strip().rstrip("/") or None
        s3_endpoint_url = (os.getenv("S3_ENDPOINT_URL") or "").strip().rstrip("/") or None

        return AwsClientConfig(
            region_name=region_name,
            iam_endpoint_url=iam_endpoint_url,
            s3_endpoint_url=s3_endpoint_url,
        )
