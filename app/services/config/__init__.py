"""Configuration package (Facade).

This package acts as a small *Facade* over the underlying configuration modules.
Instead of requiring callers to know the exact module that defines each config
object (for example, ``provisioning_config.py``), we re-export the public config
types here so the rest of the codebase can import from a single, stable path:

	from app.services.config import ProvisioningConfig

Benefits:
- Keeps imports consistent and shorter.
- Allows internal module layout changes without touching all call sites.
- Clearly defines the public API of this package (via ``__all__``).
"""

from app.services.config.aws_config import AwsClientConfig
from app.services.config.provisioning_config import (
	DEFAULT_POLICY_DOCUMENT,
	ActivationPollConfig,
	FailurePolicy,
	ProvisioningConfig,
)

__all__ = [
	"ActivationPollConfig",
	"AwsClientConfig",
	"DEFAULT_POLICY_DOCUMENT",
	"FailurePolicy",
	"ProvisioningConfig",
]
