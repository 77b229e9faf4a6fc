from __future__ import annotations

import json
import math
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar


DEFAULT_POLICY_DOCUMENT = json.dumps(
    {
        "Statement": [
            {
                "Action": ["s3:*"],
                "Effect": "Allow",
                "Resource": "*",
            }
        ]
    }
)


class FailurePolicy(str, Enum):
    """What the workflow does when a recoverable step fails."""

    CONTINUE = "continue"
    ABORT = "abort"


def _env_failure_policy(name: str, default: FailurePolicy) -> FailurePolicy:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return default
    try:
        return FailurePolicy(raw)
    except ValueError as exc:
        raise ValueError(f"Invalid {name}; must be one of: continue, abort") from exc


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ValueError(f"Invalid {name}; must be a number") from exc
    if not math.isfinite(value):
        raise ValueError(f"Invalid {name}; must be a finite number")
    if value < 0:
        raise ValueError(f"Invalid {name}; must not be negative")
    return value


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValueError(f"Invalid {name}; must be an integer") from exc
    if value <= 0:
        raise ValueError(f"Invalid {name}; must be positive")
    return value


@dataclass(frozen=True)
class ActivationPollConfig:
    """Backoff budget for waiting on a new access key to report `Active`."""

    initial_delay_seconds: float = 0.5
    backoff_multiplier: float = 2.0
    max_delay_seconds: float = 8.0
    max_attempts: int = 10
    max_wait_seconds: float = 60.0

    def __post_init__(self) -> None:
        for attr in (
            "initial_delay_seconds",
            "backoff_multiplier",
            "max_delay_seconds",
            "max_wait_seconds",
        ):
            if not math.isfinite(getattr(self, attr)):
                raise ValueError(f"{attr} must be a finite number")
        if self.initial_delay_seconds <= 0 or self.max_delay_seconds <= 0:
            raise ValueError("initial_delay_seconds and max_delay_seconds must be positive")
        if self.backoff_multiplier < 1:
            raise ValueError("backoff_multiplier must be at least 1")
        if self.max_wait_seconds < 0:
            raise ValueError("max_wait_seconds must not be negative")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def delays(self) -> list[float]:
        """Sleep durations between consecutive status checks.

        The list never has more than `max_attempts - 1` entries and its sum never
        exceeds `max_wait_seconds`.
        """

        delays: list[float] = []
        delay = self.initial_delay_seconds
        waited = 0.0
        for _ in range(self.max_attempts - 1):
            step = min(delay, self.max_delay_seconds, self.max_wait_seconds - waited)
            if step <= 0:
                break
            delays.append(step)
            waited += step
            delay *= self.backoff_multiplier
        return delays

    @staticmethod
    def from_env() -> "ActivationPollConfig":
        defaults = ActivationPollConfig()
        return ActivationPollConfig(
            initial_delay_seconds=_env_float(
                "PROVISIONING_ACTIVATION_INITIAL_DELAY_SECONDS", defaults.initial_delay_seconds
            ),
            backoff_multiplier=_env_float("PROVISIONING_ACTIVATION_BACKOFF_MULTIPLIER", defaults.backoff_multiplier),
            max_delay_seconds=_env_float("PROVISIONING_ACTIVATION_MAX_DELAY_SECONDS", defaults.max_delay_seconds),
            max_attempts=_env_int("PROVISIONING_ACTIVATION_MAX_ATTEMPTS", defaults.max_attempts),
            max_wait_seconds=_env_float("PROVISIONING_ACTIVATION_MAX_WAIT_SECONDS", defaults.max_wait_seconds),
        )


@dataclass(frozen=True)
class ProvisioningConfig:
    """Names, policy and failure policies for one provisioning run.

    This is service wiring, not an API schema, so it stays a frozen dataclass like
    the other config types in this package.
    """

    _DEFAULT_GROUP_NAME: ClassVar[str] = "S3ReadonlyGroup"
    _DEFAULT_USER_NAME: ClassVar[str] = "S3ReadOnlyUser"
    _DEFAULT_POLICY_NAME: ClassVar[str] = "S3ReadOnlyAccess"

    group_name: str = _DEFAULT_GROUP_NAME
    user_name: str = _DEFAULT_USER_NAME
    policy_name: str = _DEFAULT_POLICY_NAME
    policy_document: str = DEFAULT_POLICY_DOCUMENT
    on_duplicate_user: FailurePolicy = FailurePolicy.CONTINUE
    on_key_quota: FailurePolicy = FailurePolicy.CONTINUE
    activation: ActivationPollConfig = field(default_factory=ActivationPollConfig)

    def __post_init__(self) -> None:
        for attr in ("group_name", "user_name", "policy_name"):
            if not getattr(self, attr).strip():
                raise ValueError(f"{attr} must be provided")
        try:
            json.loads(self.policy_document)
        except ValueError as exc:
            raise ValueError(
                "policy_document must be a valid JSON document (PROVISIONING_POLICY_DOCUMENT)"
            ) from exc

    @staticmethod
    def from_env() -> "ProvisioningConfig":
        return ProvisioningConfig(
            group_name=(os.getenv("PROVISIONING_GROUP_NAME") or "").strip() or ProvisioningConfig._DEFAULT_GROUP_NAME,
            user_name=(os.getenv("PROVISIONING_USER_NAME") or "").strip() or ProvisioningConfig._DEFAULT_USER_NAME,
            policy_name=(os.getenv("PROVISIONING_POLICY_NAME") or "").strip()
            or ProvisioningConfig._DEFAULT_POLICY_NAME,
            policy_document=os.getenv("PROVISIONING_POLICY_DOCUMENT") or DEFAULT_POLICY_DOCUMENT,
            on_duplicate_user=_env_failure_policy("PROVISIONING_ON_DUPLICATE_USER", FailurePolicy.CONTINUE),
            on_key_quota=_env_failure_policy("PROVISIONING_ON_KEY_QUOTA", FailurePolicy.CONTINUE),
            activation=ActivationPollConfig.from_env(),
        )
