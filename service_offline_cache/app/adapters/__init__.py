"""
Adapters for the offline cache worker's external collaborators.
"""

from .network_client import NetworkClient

__all__ = ["NetworkClient"]
