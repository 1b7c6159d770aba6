"""
Account status and administration.
"""

from .admin import AccountAdminService
from .status_machine import AccountStatusMachine, StatusTrigger

__all__ = ["AccountAdminService", "AccountStatusMachine", "StatusTrigger"]
