"""
Core package for devdock operation management
"""

from .operation_manager import OperationManager, create_services
from .status_poller import StatusPoller

__all__ = ["OperationManager", "create_services", "StatusPoller"]
