"""
Domain types shared across the offline cache worker.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Tuple

import httpx
from pydantic import BaseModel


SKIP_WAITING = "SKIP_WAITING"


class HandlingClass(str, Enum):
    """Handling bucket assigned to an incoming request."""

    BYPASS = "bypass"
    DOCUMENT = "document"
    ASSET = "asset"
    DEFAULT = "default"


class WorkerState(str, Enum):
    """Lifecycle states of a single worker version."""

    NEW = "new"
    INSTALLING = "installing"
    WAITING = "waiting"
    ACTIVATING = "activating"
    ACTIVE = "active"
    REDUNDANT = "redundant"


@dataclass(frozen=True)
class CacheVersion:
    """A generation of named caches, e.g. ``kontrollitud-static-v3``."""

    prefix: str
    number: int

    @property
    def tag(self) -> str:
        return f"v{self.number}"

    @property
    def umbrella_name(self) -> str:
        return f"{self.prefix}-v{self.number}"

    @property
    def static_name(self) -> str:
        return f"{self.prefix}-static-v{self.number}"

    @property
    def dynamic_name(self) -> str:
        return f"{self.prefix}-dynamic-v{self.number}"

    @property
    def names(self) -> Tuple[str, str, str]:
        """The three cache names owned by this version."""
        return (self.static_name, self.dynamic_name, self.umbrella_name)

    def owns(self, cache_name: str) -> bool:
        return cache_name in self.names


@dataclass(frozen=True)
class ClassifiedRequest:
    """A request together with the bucket the classifier assigned to it."""

    request: httpx.Request
    handling_class: HandlingClass
    reason: str

    @property
    def url(self) -> str:
        return str(self.request.url)


class ControlMessage(BaseModel):
    """Message posted from a page to a worker instance."""

    type: str


class VersionUpdate(BaseModel):
    """Request body for installing a new worker version."""

    version: int
