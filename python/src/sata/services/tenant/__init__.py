"""
Tenant lifecycle and demo seeding.
"""

from .lifecycle import OwnerRegistration, TenantLifecycleManager
from .seed import build_seed

__all__ = ["OwnerRegistration", "TenantLifecycleManager", "build_seed"]
