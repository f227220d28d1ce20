"""
Worker lifecycle: install, activate and control messages per worker version,
plus the registration that decides when a waiting version takes over.
"""

from .clients import ClientRegistry
from .manager import LifecycleManager
from .registration import WorkerRegistration

__all__ = ["ClientRegistry", "LifecycleManager", "WorkerRegistration"]
