from .naming import call_prefix_for, sanitize_identity_name
from .provisioner import ProvisioningDefaults, ProvisionResult, SessionProvisioner

__all__ = [
    "ProvisionResult",
    "ProvisioningDefaults",
    "SessionProvisioner",
    "call_prefix_for",
    "sanitize_identity_name",
]
